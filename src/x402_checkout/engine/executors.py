"""
Event chain execution engine.

Provides workflow orchestration on top of EventBus, following handler
results one event at a time until a terminal event (one without a handler).
"""

import asyncio
from typing import AsyncGenerator, Awaitable, Set, TypeVar

from .events import BaseEvent, EventBus, Dependencies
from .exceptions import Cancelled, InvalidTransition

T = TypeVar("T")


class EventChain:
    """Executes event-driven workflows by chaining event handler results.

    The chain is strictly sequential. When `deps.cancel_event` is set, every
    handler races the event: a set event aborts the handler at its current
    suspension point and the chain raises Cancelled.
    """

    def __init__(
        self,
        event_bus: EventBus,
        deps: Dependencies,
    ) -> None:
        """
        Initialize event chain executor.

        Args:
            event_bus: The event bus holding handlers and hooks.
            deps: Dependencies container to pass to handlers.
        """
        self.event_bus = event_bus
        self.deps = deps

    async def execute(self, initial_event: BaseEvent) -> AsyncGenerator[BaseEvent, None]:
        """
        Execute event chain starting from initial event.

        Yields:
            Every event of the chain, the initial and terminal ones included,
            after its hooks have run.

        Raises:
            Cancelled: If the cancel event is set before the chain terminates.
            InvalidTransition: If a once-per-chain event occurs twice.
            TypeError: If a handler returns something other than an event.
        """
        seen_once: Set[type] = set()
        event = initial_event

        while event is not None:
            if event.once_per_chain:
                if type(event) in seen_once:
                    raise InvalidTransition(f"{type(event).__name__} may occur only once per operation")
                seen_once.add(type(event))

            await self.event_bus.notify(event, self.deps)
            yield event

            handler = self.event_bus.handler_for(event)
            if handler is None:
                return

            self._check_cancelled(event)
            result = await self._run_cancellable(handler(event, self.deps), event)
            if result is not None and not isinstance(result, BaseEvent):
                raise TypeError(f"Handler returned unsupported type: {type(result).__name__}")
            event = result

    def _check_cancelled(self, event: BaseEvent) -> None:
        cancel_event = self.deps.cancel_event
        if cancel_event is not None and cancel_event.is_set():
            raise Cancelled("Operation cancelled by caller", state=_state_name(event))

    async def _run_cancellable(self, coro: Awaitable[T], event: BaseEvent) -> T:
        """Await `coro` unless the cancel event fires first."""
        cancel_event = self.deps.cancel_event
        if cancel_event is None:
            return await coro

        task = asyncio.ensure_future(coro)
        waiter = asyncio.ensure_future(cancel_event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            waiter.cancel()
            raise

        if task.done():
            waiter.cancel()
            return task.result()

        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise Cancelled("Operation cancelled by caller", state=_state_name(event))


def _state_name(event: BaseEvent) -> str:
    return event.state.value if event.state is not None else type(event).__name__
