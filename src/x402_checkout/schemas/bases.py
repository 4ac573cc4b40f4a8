"""
Base Schema Models for x402 Checkout

This module defines the fundamental base classes that all other schema models
inherit from. It provides the foundation for type safety, validation, and
consistent wire serialization across the package.

Core Classes:
    - CanonicalModel: RFC8785-style Pydantic base model for header documents
    - BaseVerificationResult: Outcome of checking a payment proof
    - BaseTransactionConfirmation: Outcome of an on-chain transfer

Dependencies:
    - pydantic: For data validation and serialization
"""

import json
from typing import Optional, Dict, Any, List
from abc import ABC
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class CanonicalModel(BaseModel):
    """
    RFC8785-compliant Pydantic base model with canonical JSON serialization.

    Wire documents (payment terms, proofs, receipts) use camelCase keys, so
    every model is dumped by alias. Python code may populate fields either by
    name or by alias.

    Example:
        class MyModel(CanonicalModel):
            pay_to: str = Field(..., alias="payTo")

        model = MyModel(pay_to="0xabc")
        model.to_canonical_json()  # '{"payTo":"0xabc"}'
    """

    model_config = ConfigDict(populate_by_name=True)

    def to_document(self) -> Dict[str, Any]:
        """
        Convert model to the JSON-ready dictionary carried on the wire.

        Returns:
            Dict[str, Any]: camelCase keys, None values dropped.
        """
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def to_canonical_json(self) -> str:
        """
        Convert model to RFC8785-compliant canonical JSON string.

        Returns:
            str: JSON with sorted keys and no extra whitespace.
        """
        return json.dumps(
            self.to_document(),
            separators=(",", ":"),
            sort_keys=True,
            ensure_ascii=False
        )


class VerificationStatus(str, Enum):
    """
    Enumeration of possible verification result statuses.

    Attributes:
        SUCCESS: Proof satisfies the payment requirements
        PENDING: Transaction not yet visible or not yet final; retry later
        INVALID_DESTINATION: Proof or transfer pays a different address
        INSUFFICIENT_AMOUNT: Transferred amount lower than required
        WRONG_ASSET: Transfer moved a different token
        NETWORK_MISMATCH: Proof names another network
        TRANSACTION_FAILED: Transaction reverted on-chain
        BLOCKCHAIN_ERROR: Error querying blockchain state
        UNKNOWN_ERROR: Unexpected error during verification
    """
    SUCCESS = "success"
    PENDING = "pending"
    INVALID_DESTINATION = "invalid_destination"
    INSUFFICIENT_AMOUNT = "insufficient_amount"
    WRONG_ASSET = "wrong_asset"
    NETWORK_MISMATCH = "network_mismatch"
    TRANSACTION_FAILED = "transaction_failed"
    BLOCKCHAIN_ERROR = "blockchain_error"
    UNKNOWN_ERROR = "unknown_error"


class BaseVerificationResult(CanonicalModel, ABC):
    """
    Abstract base class for payment proof verification results.

    Attributes:
        verification_type: Type of verification (e.g., "evm", "facilitator")
        status: Verification result status (VerificationStatus enum)
        is_valid: Boolean indicating if verification was successful
        message: Human-readable status message
        payer: Address that paid, when known
        error_details: Detailed error information if verification failed
        verified_at: Timestamp when verification was performed
    """

    verification_type: str = Field(..., description="Type of verification (e.g., evm, facilitator)")
    status: VerificationStatus = Field(..., description="Verification result status")
    is_valid: bool = Field(..., description="Whether the proof is valid")
    message: str = Field(..., description="Human-readable status message")
    payer: Optional[str] = Field(None, description="Paying address, when known")
    error_details: Optional[Dict[str, Any]] = Field(None, description="Detailed error information")
    verified_at: datetime = Field(default_factory=datetime.now, description="Verification timestamp")

    def is_success(self) -> bool:
        """
        Check if verification was successful.

        Returns:
            bool: True if verification was successful, False otherwise.
        """
        return self.is_valid and self.status == VerificationStatus.SUCCESS

    def is_pending(self) -> bool:
        return self.status == VerificationStatus.PENDING


class TransactionStatus(str, Enum):
    """
    Enumeration of possible transaction execution statuses.

    Attributes:
        SUCCESS: Transaction executed successfully on-chain
        FAILED: Transaction reverted or failed on-chain
        PENDING: Transaction is pending confirmation
        TIMEOUT: Transaction confirmation timed out
        NETWORK_ERROR: Network error during transaction submission
        INVALID_TRANSACTION: Transaction is malformed or invalid
        UNKNOWN_ERROR: Unexpected error during transaction execution
    """
    SUCCESS = "success"
    FAILED = "failed"
    PENDING = "pending"
    TIMEOUT = "timeout"
    NETWORK_ERROR = "network_error"
    INVALID_TRANSACTION = "invalid_transaction"
    UNKNOWN_ERROR = "unknown_error"


class BaseTransactionConfirmation(CanonicalModel, ABC):
    """
    Abstract base class for blockchain transaction confirmation/receipt data.

    Attributes:
        confirmation_type: Type of confirmation (e.g., "evm")
        status: Transaction execution status (TransactionStatus enum)
        execution_time: Time taken to confirm transaction (in seconds)
        confirmations: Number of block confirmations
        error_message: Error message if transaction failed
        logs: Optional transaction logs/events
        created_at: Timestamp when confirmation was recorded
    """

    confirmation_type: str = Field(..., description="Type of confirmation (e.g., evm)")
    status: TransactionStatus = Field(..., description="Transaction execution status")
    execution_time: Optional[float] = Field(None, ge=0, description="Time to confirm (seconds)")
    confirmations: int = Field(default=0, ge=0, description="Number of block confirmations")
    error_message: Optional[str] = Field(None, description="Error message if transaction failed")
    logs: Optional[List[Dict[str, Any]]] = Field(None, description="Transaction logs/events")
    created_at: datetime = Field(default_factory=datetime.now, description="Confirmation recording timestamp")

    def is_success(self) -> bool:
        """
        Check if transaction executed successfully on-chain.

        Returns:
            bool: True if transaction succeeded, False if failed or pending.
        """
        return self.status == TransactionStatus.SUCCESS

    def get_confirmation_status(self) -> str:
        """
        Get human-readable confirmation status message.
        """
        if self.status == TransactionStatus.SUCCESS:
            confirmations_text = f"with {self.confirmations} confirmations" if self.confirmations > 0 else "pending confirmations"
            return f"Transaction confirmed {confirmations_text}"
        elif self.status == TransactionStatus.PENDING:
            return "Transaction is pending confirmation"
        else:
            return f"Transaction failed: {self.error_message or self.status.value}"
