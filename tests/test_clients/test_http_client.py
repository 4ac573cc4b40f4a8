"""
Test suite for Http402Client discovery -> pay -> retry flow.

The resource server is scripted with httpx.MockTransport and the chain is a
FakeHub, so every test observes exactly which requests and transfers happen.
"""
import asyncio

import httpx
import pytest

from x402_checkout.adapters.schemes import ExactEvmScheme, SchemeRegistry
from x402_checkout.clients.http_client import Http402Client
from x402_checkout.engine.events import PayingEvent, RetryWaitEvent
from x402_checkout.engine.exceptions import (
    Cancelled,
    MissingRequirements,
    PaymentTransferFailed,
    UnexpectedStatus,
    UnsupportedScheme,
    VerificationTimeout,
)
from x402_checkout.schemas.bases import TransactionStatus
from x402_checkout.schemas.headers import (
    AUTHENTICATION_INFO_HEADER,
    PAYMENT_REQUIRED_HEADER,
    PAYMENT_RESPONSE_HEADER,
    decode_header,
    encode_header,
    split_scheme,
)
from x402_checkout.schemas.https import FlowState

from conftest import (
    FakeHub,
    OTHER_PAY_TO,
    PAY_TO,
    RESOURCE_URL,
    TX_HASH,
    ScriptedServer,
    make_requirements,
    payment_required_response,
)


def _client(server: ScriptedServer, hub: FakeHub, sleeps=None, **kwargs) -> Http402Client:
    client = Http402Client(adapter_hub=hub, transport=server.transport, **kwargs)
    if sleeps is not None:
        client._sleep_async = sleeps
    return client


def _granted(body=None, receipt=None) -> httpx.Response:
    headers = {AUTHENTICATION_INFO_HEADER: encode_header(receipt)} if receipt else {}
    return httpx.Response(200, json=body or {"ok": True}, headers=headers)


@pytest.mark.asyncio
async def test_free_resource_is_granted_without_payment(fake_hub):
    server = ScriptedServer([httpx.Response(200, content=b"free content")])

    async with _client(server, fake_hub) as client:
        result = await client.access(RESOURCE_URL)

    assert result.state == FlowState.GRANTED
    assert result.body == b"free content"
    assert result.transitions == [FlowState.DISCOVER, FlowState.GRANTED]
    assert fake_hub.transfers == []
    assert "authorization" not in server.requests[0].headers


@pytest.mark.asyncio
async def test_pays_first_option_and_attaches_proof(fake_hub, sleeps):
    server = ScriptedServer([
        payment_required_response([
            make_requirements(payTo=PAY_TO, amount="900000"),
            make_requirements(payTo=OTHER_PAY_TO, amount="1"),
        ]),
        _granted({"delivered": "goods"}),
    ])

    async with _client(server, fake_hub, sleeps) as client:
        result = await client.access(RESOURCE_URL)

    assert result.granted
    assert result.response.json() == {"delivered": "goods"}
    assert [r.pay_to for r in fake_hub.transfers] == [PAY_TO]
    assert result.selected.amount == 900000
    assert result.transaction_hash == TX_HASH
    assert sleeps.calls == []

    authorization = server.requests[1].headers["authorization"]
    token, _ = split_scheme(authorization)
    proof = decode_header(authorization)
    assert token == "Exact"
    assert proof["transactionHash"] == TX_HASH
    assert proof["payload"]["authorization"]["to"] == PAY_TO
    assert proof["accepted"]["payTo"] == PAY_TO


@pytest.mark.asyncio
async def test_pending_verification_waits_between_attempts(fake_hub, sleeps):
    server = ScriptedServer([
        payment_required_response(),
        payment_required_response(error="pending"),
        payment_required_response(error="pending"),
        payment_required_response(error="pending"),
        _granted(),
    ])

    async with _client(server, fake_hub, sleeps) as client:
        result = await client.access(RESOURCE_URL)

    assert result.state == FlowState.GRANTED
    assert sleeps.calls == [2.0, 2.0, 2.0]
    assert len(fake_hub.transfers) == 1
    assert len(server.requests) == 5
    assert result.attempts == 4
    assert result.transitions.count(FlowState.PAYING) == 1
    assert result.transitions.count(FlowState.RETRY_WAIT) == 3


@pytest.mark.asyncio
async def test_verification_timeout_after_retry_budget(fake_hub, sleeps):
    server = ScriptedServer([payment_required_response()] + [payment_required_response(error="still pending") for _ in range(5)])

    async with _client(server, fake_hub, sleeps, retry_interval=0.5, max_verify_attempts=5) as client:
        result = await client.access(RESOURCE_URL)

    assert result.state == FlowState.DENIED
    assert isinstance(result.error, VerificationTimeout)
    assert result.error.attempts == 5
    assert result.error.status_code == 402
    assert result.error.transaction_hash == TX_HASH
    assert result.error.requirements.error == "still pending"
    assert len(server.requests) == 6
    assert sleeps.calls == [0.5] * 4
    assert len(fake_hub.transfers) == 1


@pytest.mark.asyncio
async def test_unparsable_requirements_never_pay(fake_hub):
    server = ScriptedServer([httpx.Response(402, headers={PAYMENT_REQUIRED_HEADER: "%%% not base64 %%%"})])

    async with _client(server, fake_hub) as client:
        result = await client.access(RESOURCE_URL)

    assert result.state == FlowState.DENIED
    assert isinstance(result.error, MissingRequirements)
    assert result.error.status_code == 402
    assert fake_hub.transfers == []
    assert len(server.requests) == 1


@pytest.mark.asyncio
async def test_402_without_header_is_missing_requirements(fake_hub):
    server = ScriptedServer([httpx.Response(402, json={"error": "pay up"})])

    async with _client(server, fake_hub) as client:
        result = await client.access(RESOURCE_URL)

    assert isinstance(result.error, MissingRequirements)
    assert fake_hub.transfers == []


@pytest.mark.asyncio
async def test_requirements_without_options_are_missing(fake_hub):
    document = {"x402Version": 2, "accepts": []}
    server = ScriptedServer([httpx.Response(402, headers={PAYMENT_REQUIRED_HEADER: encode_header(document)})])

    async with _client(server, fake_hub) as client:
        result = await client.access(RESOURCE_URL)

    assert isinstance(result.error, MissingRequirements)
    assert fake_hub.transfers == []


@pytest.mark.asyncio
async def test_cancel_during_retry_wait(fake_hub):
    cancel_event = asyncio.Event()
    server = ScriptedServer([payment_required_response(), payment_required_response(error="pending")])

    async def cancel_while_sleeping(seconds):
        cancel_event.set()
        await asyncio.sleep(3600)

    async with _client(server, fake_hub, cancel_while_sleeping) as client:
        result = await client.access(RESOURCE_URL, cancel_event=cancel_event)

    assert result.state == FlowState.CANCELLED
    assert isinstance(result.error, Cancelled)
    assert result.error.state == FlowState.RETRY_WAIT.value
    assert len(server.requests) == 2
    assert len(fake_hub.transfers) == 1
    assert result.transaction_hash == TX_HASH


@pytest.mark.asyncio
async def test_deadline_cancels_the_operation(fake_hub):
    server = ScriptedServer([payment_required_response(), payment_required_response(error="pending")])

    async with _client(server, fake_hub, retry_interval=30) as client:
        result = await client.access(RESOURCE_URL, deadline=0.2)

    assert result.state == FlowState.CANCELLED
    assert isinstance(result.error, Cancelled)
    assert len(server.requests) == 2


@pytest.mark.asyncio
async def test_unexpected_status_on_discovery(fake_hub):
    server = ScriptedServer([httpx.Response(500, text="boom")])

    async with _client(server, fake_hub) as client:
        result = await client.access(RESOURCE_URL)

    assert isinstance(result.error, UnexpectedStatus)
    assert result.error.status_code == 500
    assert result.status_code == 500


@pytest.mark.asyncio
async def test_unexpected_status_during_verification_keeps_terms(fake_hub, sleeps):
    server = ScriptedServer([payment_required_response(), httpx.Response(403)])

    async with _client(server, fake_hub, sleeps) as client:
        result = await client.access(RESOURCE_URL)

    assert isinstance(result.error, UnexpectedStatus)
    assert result.error.status_code == 403
    assert result.error.requirements.first_option().pay_to == PAY_TO


@pytest.mark.asyncio
async def test_failed_transfer_is_fatal():
    hub = FakeHub(status=TransactionStatus.FAILED)
    server = ScriptedServer([payment_required_response()])

    async with _client(server, hub) as client:
        result = await client.access(RESOURCE_URL)

    assert result.state == FlowState.DENIED
    assert isinstance(result.error, PaymentTransferFailed)
    assert result.error.transaction_hash == TX_HASH
    assert len(hub.transfers) == 1
    assert len(server.requests) == 1


@pytest.mark.asyncio
async def test_transfer_exception_is_fatal():
    hub = FakeHub(raises=RuntimeError("rpc down"))
    server = ScriptedServer([payment_required_response()])

    async with _client(server, hub) as client:
        result = await client.access(RESOURCE_URL)

    assert isinstance(result.error, PaymentTransferFailed)
    assert "rpc down" in str(result.error)


@pytest.mark.asyncio
async def test_unsupported_network_is_denied(fake_hub):
    server = ScriptedServer([payment_required_response([make_requirements(network="solana:mainnet")])])

    async with _client(server, fake_hub) as client:
        result = await client.access(RESOURCE_URL)

    assert isinstance(result.error, UnsupportedScheme)
    assert fake_hub.transfers == []


class ExactSolanaScheme(ExactEvmScheme):
    namespace = "solana"


@pytest.mark.asyncio
async def test_registered_scheme_without_adapter_is_unsupported(fake_hub):
    server = ScriptedServer([payment_required_response([make_requirements(network="solana:mainnet")])])

    async with _client(server, fake_hub, schemes=SchemeRegistry([ExactSolanaScheme()])) as client:
        result = await client.access(RESOURCE_URL)

    assert result.state == FlowState.DENIED
    assert isinstance(result.error, UnsupportedScheme)
    assert result.transitions == [FlowState.DISCOVER, FlowState.REQUIREMENTS_RECEIVED, FlowState.DENIED]
    assert fake_hub.transfers == []
    assert len(server.requests) == 1


@pytest.mark.asyncio
async def test_settlement_receipt_is_decoded(fake_hub, sleeps):
    receipt = {"success": True, "transaction": TX_HASH, "network": "eip155:84532"}
    server = ScriptedServer([
        payment_required_response(),
        httpx.Response(200, json={}, headers={PAYMENT_RESPONSE_HEADER: encode_header(receipt)}),
    ])

    async with _client(server, fake_hub, sleeps) as client:
        result = await client.access(RESOURCE_URL)

    assert result.settlement == receipt


@pytest.mark.asyncio
async def test_get_returns_granted_response(fake_hub, sleeps):
    server = ScriptedServer([payment_required_response(), _granted({"ok": True})])

    async with _client(server, fake_hub, sleeps) as client:
        response = await client.get(RESOURCE_URL, headers={"X-Trace": "1"})

    assert response.status_code == 200
    assert response.json() == {"ok": True}
    assert server.requests[1].headers["x-trace"] == "1"
    assert server.requests[1].headers["authorization"].startswith("Exact ")


@pytest.mark.asyncio
async def test_get_raises_on_denial(fake_hub):
    server = ScriptedServer([httpx.Response(402)])

    async with _client(server, fake_hub) as client:
        with pytest.raises(MissingRequirements):
            await client.get(RESOURCE_URL)


@pytest.mark.asyncio
async def test_hooks_observe_states(fake_hub, sleeps):
    server = ScriptedServer([payment_required_response(), payment_required_response(), _granted()])
    observed = []

    async def on_paying(event, deps):
        observed.append(("paying", event.context.selected.pay_to))

    async def on_retry(event, deps):
        observed.append(("retry", event.context.attempts))

    async with _client(server, fake_hub, sleeps) as client:
        client.add_hook(PayingEvent, on_paying)
        client.add_hook(RetryWaitEvent, on_retry)
        await client.access(RESOURCE_URL)

    assert observed == [("paying", PAY_TO), ("retry", 1)]


@pytest.mark.asyncio
async def test_concurrent_operations_are_independent(sleeps):
    hub = FakeHub()

    def answer(request: httpx.Request) -> httpx.Response:
        if "authorization" in request.headers:
            return _granted({"path": request.url.path})
        return payment_required_response()

    transport = httpx.MockTransport(answer)
    async with Http402Client(adapter_hub=hub, transport=transport) as client:
        client._sleep_async = sleeps
        results = await asyncio.gather(
            client.access("http://testserver/a"),
            client.access("http://testserver/b"),
        )

    assert all(r.granted for r in results)
    assert len(hub.transfers) == 2


def test_rejects_invalid_retry_settings(fake_hub):
    with pytest.raises(ValueError):
        Http402Client(adapter_hub=fake_hub, max_verify_attempts=0)
    with pytest.raises(ValueError):
        Http402Client(adapter_hub=fake_hub, retry_interval=-1)
