"""
Test suite for EventChain execution engine.
Tests: 1) Event execution order 2) Hook dispatch 3) Chain guards 4) Cancellation
"""
import asyncio

import pytest

from x402_checkout.engine.events import (
    EventBus,
    BaseEvent,
    Dependencies,
    FlowContext,
    RequestSpec,
    DiscoverEvent,
    PayingEvent,
    ProofAttachedEvent,
    GrantedEvent,
)
from x402_checkout.engine.exceptions import Cancelled, InvalidTransition
from x402_checkout.engine.executors import EventChain


def _context() -> FlowContext:
    return FlowContext(request=RequestSpec(url="http://testserver/api/paid"))


async def handle_discover(event: DiscoverEvent, deps: Dependencies):
    return PayingEvent(context=event.context)


async def handle_paying(event: PayingEvent, deps: Dependencies):
    return ProofAttachedEvent(context=event.context.evolve(transaction_hash="0xabc"))


async def handle_proof_attached(event: ProofAttachedEvent, deps: Dependencies):
    return GrantedEvent(context=event.context)


def _bus() -> EventBus:
    event_bus = EventBus()
    event_bus.subscribe(DiscoverEvent, handle_discover)
    event_bus.subscribe(PayingEvent, handle_paying)
    event_bus.subscribe(ProofAttachedEvent, handle_proof_attached)
    return event_bus


@pytest.mark.asyncio
async def test_chain_yields_every_event_in_order():
    chain = EventChain(_bus(), Dependencies())

    events = [event async for event in chain.execute(DiscoverEvent(context=_context()))]

    assert [type(e) for e in events] == [DiscoverEvent, PayingEvent, ProofAttachedEvent, GrantedEvent]
    assert events[-1].context.transaction_hash == "0xabc"


@pytest.mark.asyncio
async def test_hooks_run_before_yield_wildcards_first():
    event_bus = _bus()
    seen = []

    async def on_any(event, deps):
        seen.append(("any", type(event).__name__))

    async def on_paying(event, deps):
        seen.append(("paying", type(event).__name__))

    event_bus.hook(PayingEvent, on_paying)
    event_bus.hook(BaseEvent, on_any)

    async for event in EventChain(event_bus, Dependencies()).execute(DiscoverEvent(context=_context())):
        assert seen[-1][1] == type(event).__name__

    assert ("any", "PayingEvent") in seen
    assert seen.index(("any", "PayingEvent")) < seen.index(("paying", "PayingEvent"))


def test_one_handler_per_event():
    event_bus = _bus()
    with pytest.raises(ValueError):
        event_bus.subscribe(DiscoverEvent, handle_discover)


def test_handlers_must_be_coroutines():
    event_bus = EventBus()
    with pytest.raises(TypeError):
        event_bus.subscribe(DiscoverEvent, lambda event, deps: None)
    with pytest.raises(TypeError):
        event_bus.hook(DiscoverEvent, lambda event, deps: None)


@pytest.mark.asyncio
async def test_paying_twice_is_rejected():
    async def pay_again(event: PayingEvent, deps: Dependencies):
        return PayingEvent(context=event.context)

    event_bus = EventBus()
    event_bus.subscribe(PayingEvent, pay_again)

    with pytest.raises(InvalidTransition):
        async for _ in EventChain(event_bus, Dependencies()).execute(PayingEvent(context=_context())):
            pass


@pytest.mark.asyncio
async def test_handler_must_return_an_event():
    async def bad(event, deps):
        return "granted"

    event_bus = EventBus()
    event_bus.subscribe(DiscoverEvent, bad)

    with pytest.raises(TypeError):
        async for _ in EventChain(event_bus, Dependencies()).execute(DiscoverEvent(context=_context())):
            pass


@pytest.mark.asyncio
async def test_cancel_event_aborts_running_handler():
    cancel_event = asyncio.Event()
    started = asyncio.Event()
    finished = []

    async def slow(event, deps):
        started.set()
        await asyncio.sleep(3600)
        finished.append(event)

    event_bus = EventBus()
    event_bus.subscribe(DiscoverEvent, slow)

    async def run():
        async for _ in EventChain(event_bus, Dependencies(cancel_event=cancel_event)).execute(
            DiscoverEvent(context=_context())
        ):
            pass

    task = asyncio.ensure_future(run())
    await started.wait()
    cancel_event.set()

    with pytest.raises(Cancelled) as exc_info:
        await asyncio.wait_for(task, 1)
    assert exc_info.value.state == "discover"
    assert finished == []


@pytest.mark.asyncio
async def test_preset_cancel_event_runs_no_handler():
    cancel_event = asyncio.Event()
    cancel_event.set()
    calls = []

    async def handler(event, deps):
        calls.append(event)

    event_bus = EventBus()
    event_bus.subscribe(DiscoverEvent, handler)

    with pytest.raises(Cancelled):
        async for _ in EventChain(event_bus, Dependencies(cancel_event=cancel_event)).execute(
            DiscoverEvent(context=_context())
        ):
            pass
    assert calls == []


def test_with_headers_replaces_header_case_insensitively():
    spec = RequestSpec(
        url="http://testserver/api/paid",
        kwargs={"headers": {"authorization": "stale", "Accept": "application/json"}},
    )

    kwargs = spec.with_headers({"Authorization": "Exact abc"})

    assert kwargs["headers"].get_list("authorization") == ["Exact abc"]
    assert kwargs["headers"]["accept"] == "application/json"
    assert spec.kwargs["headers"]["authorization"] == "stale"
