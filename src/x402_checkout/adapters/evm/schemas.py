"""
EVM-specific result models.

Concrete subclasses of the base verification and confirmation models for
EVM chains: the receipt of an ERC20 transfer made by the paying side, and the
outcome of checking such a transfer on the receiving side.
"""

from typing import Optional, Dict, Any, Literal

from pydantic import Field

from ...schemas.bases import BaseVerificationResult, BaseTransactionConfirmation


class EVMVerificationResult(BaseVerificationResult):
    """
    Outcome of checking an ERC20 transfer against payment requirements.

    Attributes:
        verification_type: Always ``"evm"``.
        tx_hash:           Transaction that was inspected.
        receiver:          Destination found in the matching Transfer log.
        transferred_amount: Value found in the matching Transfer log.
        blockchain_state:  Optional snapshot (block number, confirmations).
    """

    verification_type: Literal["evm"] = Field(default="evm", description="Verification type identifier")
    tx_hash: Optional[str] = Field(None, description="Inspected transaction hash")
    receiver: Optional[str] = Field(None, description="Destination of the matching Transfer log")
    transferred_amount: Optional[int] = Field(None, ge=0, description="Value of the matching Transfer log")
    blockchain_state: Optional[Dict[str, Any]] = Field(None, description="Optional on-chain state snapshot")


class EVMTransactionConfirmation(BaseTransactionConfirmation):
    """
    EVM-Specific Transaction Confirmation.

    Returned by EVMAdapter.transfer().

    Attributes:
        tx_hash: Transaction hash (0x-prefixed hex string)
        block_number: Block number containing transaction
        gas_used: Actual gas consumed by transaction
        transaction_fee: Native token paid as fee (in wei)
        from_address: Transaction sender address
        to_address: Token contract address

    Example:
        confirmation = await evm_adapter.transfer(requirements)
        if confirmation.is_success():
            print(f"Paid in {confirmation.tx_hash}")
    """

    confirmation_type: Literal["evm"] = Field(default="evm", description="Confirmation type identifier")
    tx_hash: str = Field(..., description="Transaction hash (0x-prefixed hex string on EVM)")
    block_number: Optional[int] = Field(None, ge=0, description="Block number containing transaction")
    gas_used: Optional[int] = Field(None, ge=0, description="Actual gas consumed by transaction")
    transaction_fee: Optional[int] = Field(None, ge=0, description="Transaction fee in wei")
    from_address: Optional[str] = Field(None, description="Transaction sender address")
    to_address: Optional[str] = Field(None, description="Transaction receiver/contract address")
