"""
Shared fixtures and fakes for the x402 checkout test suite.

The fakes stand in for the two external collaborators: the chain (an adapter
hub that records transfers instead of broadcasting them) and the resource
server (an httpx handler replaying scripted responses).
"""

from typing import Any, Callable, Dict, List, Optional, Union

import httpx
import pytest

from x402_checkout.adapters.evm.schemas import EVMTransactionConfirmation, EVMVerificationResult
from x402_checkout.schemas.bases import TransactionStatus, VerificationStatus
from x402_checkout.schemas.headers import PAYMENT_REQUIRED_HEADER, encode_header
from x402_checkout.schemas.payments import PaymentRequirements


NETWORK = "eip155:84532"
ASSET = "0x036CbD53842c5426634e7929541eC2318f3dCF7e"
PAY_TO = "0x" + "ab" * 20
OTHER_PAY_TO = "0x" + "cd" * 20
PAYER = "0x" + "ef" * 20
TX_HASH = "0x" + "11" * 32
RESOURCE_URL = "http://testserver/api/paid"


def make_requirements(**overrides) -> Dict[str, Any]:
    document = {
        "scheme": "exact",
        "network": NETWORK,
        "asset": ASSET,
        "payTo": PAY_TO,
        "amount": "500000",
        "price": "$0.50",
        "description": "Buy conceptual good (x402)",
        "mimeType": "application/json",
    }
    document.update(overrides)
    return document


def payment_required_response(accepts: Optional[List[Dict[str, Any]]] = None, error: Optional[str] = None) -> httpx.Response:
    document = {"x402Version": 2, "accepts": accepts or [make_requirements()]}
    if error:
        document["error"] = error
    return httpx.Response(402, headers={PAYMENT_REQUIRED_HEADER: encode_header(document)}, json=document)


class FakeHub:
    """Adapter hub double: records transfers, never touches a chain."""

    def __init__(self, status: TransactionStatus = TransactionStatus.SUCCESS, raises: Optional[Exception] = None):
        self.status = status
        self.raises = raises
        self.transfers: List[PaymentRequirements] = []

    def supports(self, network: str) -> bool:
        return network.startswith("eip155:")

    async def transfer(self, requirements: PaymentRequirements) -> EVMTransactionConfirmation:
        self.transfers.append(requirements)
        if self.raises is not None:
            raise self.raises
        return EVMTransactionConfirmation(
            status=self.status,
            tx_hash=TX_HASH,
            block_number=1,
            confirmations=1,
            from_address=PAYER,
            error_message=None if self.status == TransactionStatus.SUCCESS else "reverted",
        )


class FakeVerifyHub:
    """Adapter hub double for the receiving side: replays verification statuses."""

    def __init__(self, statuses: List[VerificationStatus]):
        self.statuses = list(statuses)
        self.calls: List[str] = []

    async def verify_transfer(self, tx_hash: str, requirements: PaymentRequirements) -> EVMVerificationResult:
        self.calls.append(tx_hash)
        status = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        return EVMVerificationResult(
            status=status,
            is_valid=status == VerificationStatus.SUCCESS,
            message=f"transfer is {status.value}",
            tx_hash=tx_hash,
            payer=PAYER,
        )


Scripted = Union[httpx.Response, Callable[[httpx.Request], httpx.Response]]


class ScriptedServer:
    """httpx handler answering with a fixed sequence of responses."""

    def __init__(self, responses: List[Scripted]):
        self.responses = list(responses)
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.responses:
            raise AssertionError(f"Unexpected request #{len(self.requests)}: {request.method} {request.url}")
        response = self.responses.pop(0)
        return response(request) if callable(response) else response

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


class SleepRecorder:
    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def fake_hub() -> FakeHub:
    return FakeHub()


@pytest.fixture
def sleeps() -> SleepRecorder:
    return SleepRecorder()
