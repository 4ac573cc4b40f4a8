"""
Facilitators: verify payment proofs and settle them for a resource server.

Two implementations share one interface:

- LocalFacilitator inspects the transfer on-chain through the adapter hub.
- HTTPFacilitatorClient delegates to a remote x402 facilitator service
  (`POST /verify`, `POST /settle`).
"""

from abc import ABC, abstractmethod
from typing import Dict, Literal, Optional

import httpx
from pydantic import Field, ValidationError

from ..adapters.adapters_hub import AdapterHub
from ..engine.exceptions import PaymentVerificationError
from ..schemas.bases import BaseVerificationResult, VerificationStatus
from ..schemas.payments import PaymentProof, PaymentRequirements, SettlementReceipt
from ..schemas.versions import CURRENT_VERSION
from ..utils import logger


class FacilitatorVerificationResult(BaseVerificationResult):
    """Verification outcome decided before or without touching a chain."""
    verification_type: Literal["facilitator"] = Field(default="facilitator")


def _rejected(status: VerificationStatus, message: str, payer: Optional[str] = None) -> FacilitatorVerificationResult:
    return FacilitatorVerificationResult(status=status, is_valid=False, message=message, payer=payer)


def check_proof_terms(proof: PaymentProof, requirements: PaymentRequirements) -> Optional[BaseVerificationResult]:
    """
    Checks a proof against the terms it claims to answer, without I/O.

    Returns:
        A failed result, or None when the proof is consistent with the terms.
    """
    payer = proof.payload.authorization.from_address
    if proof.network != requirements.network:
        return _rejected(
            VerificationStatus.NETWORK_MISMATCH,
            f"Proof is for {proof.network}, payment required on {requirements.network}",
            payer,
        )
    if proof.destination.lower() != requirements.pay_to.lower():
        return _rejected(
            VerificationStatus.INVALID_DESTINATION,
            f"Proof pays {proof.destination}, expected {requirements.pay_to}",
            payer,
        )
    if not proof.transaction_hash:
        return _rejected(VerificationStatus.UNKNOWN_ERROR, "Proof carries no transaction hash", payer)
    return None


class BaseFacilitator(ABC):
    """Verifies and settles proofs on behalf of a resource server."""

    @abstractmethod
    async def verify(self, proof: PaymentProof, requirements: PaymentRequirements) -> BaseVerificationResult:
        pass

    @abstractmethod
    async def settle(self, proof: PaymentProof, requirements: PaymentRequirements) -> SettlementReceipt:
        pass


class LocalFacilitator(BaseFacilitator):
    """
    Verifies "exact" proofs by reading the referenced transfer receipt.

    The client already moved the funds, so settling only reports the
    transaction that verification accepted.
    """

    def __init__(self, adapter_hub: Optional[AdapterHub] = None):
        self.adapter_hub = adapter_hub or AdapterHub(load_env_key=False)

    async def verify(self, proof: PaymentProof, requirements: PaymentRequirements) -> BaseVerificationResult:
        failed = check_proof_terms(proof, requirements)
        if failed is not None:
            return failed
        return await self.adapter_hub.verify_transfer(proof.transaction_hash, requirements)

    async def settle(self, proof: PaymentProof, requirements: PaymentRequirements) -> SettlementReceipt:
        return SettlementReceipt(
            success=True,
            transaction=proof.transaction_hash,
            network=requirements.network,
            payer=proof.payload.authorization.from_address,
        )


class HTTPFacilitatorClient(BaseFacilitator):
    """
    Client of a remote facilitator service.

    Example:
        facilitator = HTTPFacilitatorClient("https://x402.org/facilitator")
        result = await facilitator.verify(proof, requirements)
    """

    def __init__(
        self,
        url: str,
        timeout: float = 30.0,
        headers: Optional[Dict[str, str]] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            url: Facilitator base URL; `/verify` and `/settle` are appended.
            timeout: Request timeout in seconds.
            headers: Extra headers, e.g. API credentials.
            client: Shared httpx client (default: one client per call).
        """
        if not url:
            raise ValueError("Facilitator URL must not be empty")
        self.url = url.rstrip("/")
        self.timeout = timeout
        self.headers = headers or {}
        self._client = client

    def _body(self, proof: PaymentProof, requirements: PaymentRequirements) -> Dict:
        return {
            "x402Version": int(CURRENT_VERSION),
            "paymentPayload": proof.to_document(),
            "paymentRequirements": requirements.to_document(),
        }

    async def _post(self, path: str, body: Dict) -> Dict:
        try:
            if self._client is not None:
                response = await self._client.post(f"{self.url}{path}", json=body, headers=self.headers, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(f"{self.url}{path}", json=body, headers=self.headers)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            raise PaymentVerificationError(f"Facilitator {path} request failed: {e}") from e
        except ValueError as e:
            raise PaymentVerificationError(f"Facilitator {path} returned invalid JSON: {e}") from e

        if not isinstance(data, dict):
            raise PaymentVerificationError(f"Facilitator {path} returned {type(data).__name__}, expected an object")
        return data

    async def verify(self, proof: PaymentProof, requirements: PaymentRequirements) -> BaseVerificationResult:
        failed = check_proof_terms(proof, requirements)
        if failed is not None:
            return failed

        data = await self._post("/verify", self._body(proof, requirements))
        payer = data.get("payer") or proof.payload.authorization.from_address
        if data.get("isValid"):
            return FacilitatorVerificationResult(
                status=VerificationStatus.SUCCESS,
                is_valid=True,
                message="Verified by facilitator",
                payer=payer,
            )
        reason = data.get("invalidReason") or "unknown reason"
        logger.info(f"Facilitator rejected {proof.transaction_hash}: {reason}")
        return _rejected(VerificationStatus.UNKNOWN_ERROR, f"Facilitator rejected the proof: {reason}", payer)

    async def settle(self, proof: PaymentProof, requirements: PaymentRequirements) -> SettlementReceipt:
        data = await self._post("/settle", self._body(proof, requirements))
        try:
            return SettlementReceipt.model_validate(data)
        except ValidationError as e:
            raise PaymentVerificationError(f"Facilitator /settle returned an invalid receipt: {e}") from e
