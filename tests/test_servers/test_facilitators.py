"""
Test suite for facilitators.
"""
import json

import httpx
import pytest

from x402_checkout.engine.exceptions import PaymentVerificationError
from x402_checkout.schemas.bases import VerificationStatus
from x402_checkout.schemas.payments import PaymentProof, PaymentRequirements
from x402_checkout.servers.facilitators import HTTPFacilitatorClient, LocalFacilitator, check_proof_terms

from conftest import FakeVerifyHub, OTHER_PAY_TO, PAY_TO, PAYER, TX_HASH, make_requirements


FACILITATOR_URL = "https://facilitator.test/"


def _requirements() -> PaymentRequirements:
    return PaymentRequirements.model_validate(make_requirements())


def _proof(to: str = PAY_TO, network: str = "eip155:84532", tx_hash=TX_HASH) -> PaymentProof:
    return PaymentProof.model_validate({
        "scheme": "exact",
        "network": network,
        "transactionHash": tx_hash,
        "payload": {"authorization": {"from": PAYER, "to": to, "value": "500000"}},
    })


def _facilitator(handler) -> HTTPFacilitatorClient:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HTTPFacilitatorClient(FACILITATOR_URL, client=client)


@pytest.mark.parametrize("proof, status", [
    (_proof(to=OTHER_PAY_TO), VerificationStatus.INVALID_DESTINATION),
    (_proof(network="eip155:8453"), VerificationStatus.NETWORK_MISMATCH),
    (_proof(tx_hash=None), VerificationStatus.UNKNOWN_ERROR),
])
def test_proof_terms_mismatch(proof, status):
    result = check_proof_terms(proof, _requirements())
    assert result.status == status
    assert not result.is_success()


def test_proof_terms_destination_is_case_insensitive():
    assert check_proof_terms(_proof(to=PAY_TO.upper().replace("0X", "0x")), _requirements()) is None


@pytest.mark.asyncio
async def test_local_facilitator_checks_chain_after_terms():
    hub = FakeVerifyHub([VerificationStatus.SUCCESS])
    facilitator = LocalFacilitator(hub)

    assert (await facilitator.verify(_proof(), _requirements())).is_success()
    assert not (await facilitator.verify(_proof(to=OTHER_PAY_TO), _requirements())).is_success()
    assert hub.calls == [TX_HASH]

    receipt = await facilitator.settle(_proof(), _requirements())
    assert receipt.success and receipt.transaction == TX_HASH and receipt.payer == PAYER


@pytest.mark.asyncio
async def test_http_facilitator_verify_posts_payload():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.url.path, json.loads(request.content)))
        return httpx.Response(200, json={"isValid": True, "payer": PAYER})

    result = await _facilitator(handler).verify(_proof(), _requirements())

    assert result.is_success()
    assert result.payer == PAYER
    path, body = seen[0]
    assert path == "/verify"
    assert body["x402Version"] == 2
    assert body["paymentPayload"]["transactionHash"] == TX_HASH
    assert body["paymentRequirements"]["payTo"] == PAY_TO
    assert body["paymentRequirements"]["amount"] == "500000"


@pytest.mark.asyncio
async def test_http_facilitator_rejection():
    facilitator = _facilitator(lambda request: httpx.Response(200, json={"isValid": False, "invalidReason": "insufficient_funds"}))

    result = await facilitator.verify(_proof(), _requirements())

    assert not result.is_success()
    assert "insufficient_funds" in result.message


@pytest.mark.asyncio
async def test_http_facilitator_skips_call_for_mismatched_terms():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={"isValid": True})

    result = await _facilitator(handler).verify(_proof(to=OTHER_PAY_TO), _requirements())

    assert result.status == VerificationStatus.INVALID_DESTINATION
    assert calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize("response", [
    httpx.Response(500, text="oops"),
    httpx.Response(200, text="not json"),
    httpx.Response(200, json=[1, 2]),
])
async def test_http_facilitator_failures_raise(response):
    with pytest.raises(PaymentVerificationError):
        await _facilitator(lambda request: response).verify(_proof(), _requirements())


@pytest.mark.asyncio
async def test_http_facilitator_settle():
    def handler(request):
        assert request.url.path == "/settle"
        return httpx.Response(200, json={"success": True, "transaction": TX_HASH, "network": "eip155:84532"})

    receipt = await _facilitator(handler).settle(_proof(), _requirements())

    assert receipt.success
    assert receipt.transaction == TX_HASH


@pytest.mark.asyncio
async def test_http_facilitator_invalid_receipt():
    facilitator = _facilitator(lambda request: httpx.Response(200, json={"transaction": TX_HASH}))

    with pytest.raises(PaymentVerificationError):
        await facilitator.settle(_proof(), _requirements())


def test_http_facilitator_needs_url():
    with pytest.raises(ValueError):
        HTTPFacilitatorClient("")
