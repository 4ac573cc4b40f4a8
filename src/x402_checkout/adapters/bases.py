"""
Abstract Base Classes for Blockchain Adapters

Defines the interface that every chain adapter (EVM today, others later) must
implement. An adapter is the signing capability the payment flow consumes:
it moves tokens for the paying side and inspects transfers for the receiving
side. Private keys never leave the adapter.
"""

from abc import ABC, abstractmethod

from ..schemas.bases import BaseTransactionConfirmation, BaseVerificationResult
from ..schemas.payments import PaymentRequirements


class AdapterFactory(ABC):
    """
    Abstract Base Class for Blockchain Adapters.

    Key Responsibilities:
    1. transfer: Sign, broadcast and confirm a token transfer satisfying a
       set of payment requirements
    2. verify_transfer: Check that a transaction satisfies a set of payment
       requirements
    3. get_wallet_address: Report the adapter's own address

    Implementations must tolerate concurrent calls: two operations paying at
    the same time must not reuse a nonce.
    """

    #: CAIP-2 namespace served by the adapter (e.g. "eip155").
    namespace: str = ""

    @abstractmethod
    async def transfer(self, requirements: PaymentRequirements) -> BaseTransactionConfirmation:
        """
        Pay `requirements.amount` of `requirements.asset` to `requirements.pay_to`.

        Waits for on-chain confirmation before returning.

        Args:
            requirements: The selected payment option.

        Returns:
            BaseTransactionConfirmation: `is_success()` only once the transfer is
                confirmed. Failures are reported through the status, not raised.
        """
        pass

    @abstractmethod
    async def verify_transfer(
        self,
        tx_hash: str,
        requirements: PaymentRequirements,
    ) -> BaseVerificationResult:
        """
        Check that `tx_hash` pays at least `requirements.amount` of
        `requirements.asset` to `requirements.pay_to`.

        Returns:
            BaseVerificationResult: PENDING when the transaction is not yet
                visible, SUCCESS when it satisfies the requirements, a failure
                status otherwise.
        """
        pass

    @abstractmethod
    def get_wallet_address(self) -> str:
        """
        Get the adapter's wallet address.
        """
        pass
