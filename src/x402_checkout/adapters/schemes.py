"""
Payment scheme strategies: "payment terms -> proof".

Each scheme turns one selected PaymentRequirements into a PaymentProof by
paying through the adapter hub. Strategies are looked up by
(scheme, CAIP-2 namespace), so the flow itself never branches on schemes.
"""

from abc import ABC, abstractmethod
from typing import Dict, Iterable, Optional, Tuple

from ..engine.exceptions import ConfigurationError, PaymentTransferFailed, UnsupportedScheme
from ..schemas.bases import BaseTransactionConfirmation
from ..schemas.headers import scheme_token
from ..schemas.payments import PaymentProof, PaymentRequirements, ProofPayload, TransferAuthorization
from ..utils import error_context, logger
from .adapters_hub import AdapterHub


class PaymentScheme(ABC):
    """Strategy for one (scheme, namespace) pair."""

    scheme: str = ""
    namespace: str = ""

    @property
    def token(self) -> str:
        """Authorization header scheme token."""
        return scheme_token(self.scheme)

    @abstractmethod
    async def create_proof(
        self,
        requirements: PaymentRequirements,
        hub: AdapterHub,
    ) -> Tuple[PaymentProof, BaseTransactionConfirmation]:
        """
        Pay `requirements` and return the proof answering them.

        Raises:
            PaymentTransferFailed: Signing, broadcast or confirmation failed
        """
        pass


class ExactEvmScheme(PaymentScheme):
    """
    "exact" on EVM chains: one ERC20 transfer of exactly `amount` to `payTo`.

    The proof references the transaction hash and asserts the destination
    taken from the requirements, never from anywhere else.
    """

    scheme = "exact"
    namespace = "eip155"

    async def create_proof(
        self,
        requirements: PaymentRequirements,
        hub: AdapterHub,
    ) -> Tuple[PaymentProof, BaseTransactionConfirmation]:
        try:
            confirmation = await hub.transfer(requirements)
        except (ConfigurationError, UnsupportedScheme):
            raise
        except Exception as e:
            logger.error(f"Transfer raised at {error_context()}: {e}")
            raise PaymentTransferFailed(f"Transfer raised: {e}") from e

        tx_hash = getattr(confirmation, "tx_hash", None)
        if not confirmation.is_success():
            raise PaymentTransferFailed(
                f"Transfer did not confirm: {confirmation.get_confirmation_status()}",
                transaction_hash=tx_hash if tx_hash and tx_hash != "0x" else None,
            )

        proof = PaymentProof(
            scheme=requirements.scheme,
            network=requirements.network,
            transaction_hash=tx_hash,
            payload=ProofPayload(
                authorization=TransferAuthorization(
                    from_address=getattr(confirmation, "from_address", None),
                    to=requirements.pay_to,
                    value=requirements.amount,
                )
            ),
            accepted=requirements,
        )
        return proof, confirmation


class SchemeRegistry:
    """
    Registered payment scheme strategies.

    Example:
        registry = SchemeRegistry()            # exact/eip155 by default
        strategy = registry.get(requirements)  # UnsupportedScheme if unknown
    """

    def __init__(self, schemes: Optional[Iterable[PaymentScheme]] = None):
        self._schemes: Dict[Tuple[str, str], PaymentScheme] = {}
        for scheme in schemes if schemes is not None else [ExactEvmScheme()]:
            self.register(scheme)

    def register(self, scheme: PaymentScheme) -> None:
        if not scheme.scheme or not scheme.namespace:
            raise TypeError(f"{type(scheme).__name__} must declare scheme and namespace")
        self._schemes[(scheme.scheme.lower(), scheme.namespace)] = scheme

    def get(self, requirements: PaymentRequirements) -> PaymentScheme:
        strategy = self._schemes.get((requirements.scheme.lower(), requirements.namespace))
        if strategy is None:
            raise UnsupportedScheme(
                f"No payment scheme registered for {requirements.scheme!r} on {requirements.network}"
            )
        return strategy
