"""
HTTP-level Schema Models for the x402 Payment Flow

This module defines the models the client uses around the HTTP exchange:
request header injection, the states of one "access resource" operation,
and the outcome returned to the caller.

The flow consists of:
1. Discovery request without Authorization (402 + Payment-Required)
2. On-chain payment of the first accepted option
3. Retry with `Authorization: <Scheme> <base64 proof>` until granted
"""

from enum import Enum
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field

from .payments import PaymentRequired, PaymentRequirements


# ============================================================================
# Request Headers
# ============================================================================

class ClientRequestHeader(BaseModel):
    """HTTP request headers added by the client on the authorized retry.

    Attributes:
        authorization: `<SchemeToken> <base64 proof>`.
    """
    model_config = ConfigDict(populate_by_name=True)
    authorization: Optional[str] = Field(default=None, alias="Authorization")


# ============================================================================
# Flow States
# ============================================================================

class FlowState(str, Enum):
    """States of one discovery -> pay -> retry operation."""
    DISCOVER = "discover"
    REQUIREMENTS_RECEIVED = "requirements_received"
    PAYING = "paying"
    PROOF_ATTACHED = "proof_attached"
    VERIFYING = "verifying"
    RETRY_WAIT = "retry_wait"
    GRANTED = "granted"
    DENIED = "denied"
    CANCELLED = "cancelled"


# ============================================================================
# Operation Outcome
# ============================================================================

class AccessResult(BaseModel):
    """Outcome of `Http402Client.access`.

    Attributes:
        state: GRANTED, DENIED or CANCELLED.
        status_code: Status of the last response, if any.
        response: The last response, if any.
        requirements: Last decoded Payment-Required document, if any.
        selected: The option that was paid, if any.
        transaction_hash: Hash of the payment transfer, if one was made.
        settlement: Decoded Authentication-Info receipt, if any.
        attempts: Number of authorized (verification) requests issued.
        error: Exception describing a DENIED or CANCELLED outcome.
        transitions: Every state the operation passed through, in order.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    state: FlowState
    status_code: Optional[int] = None
    response: Optional[httpx.Response] = None
    requirements: Optional[PaymentRequired] = None
    selected: Optional[PaymentRequirements] = None
    transaction_hash: Optional[str] = None
    settlement: Optional[Dict[str, Any]] = None
    attempts: int = 0
    error: Optional[Exception] = None
    transitions: List[FlowState] = Field(default_factory=list)

    @property
    def granted(self) -> bool:
        return self.state == FlowState.GRANTED

    @property
    def body(self) -> Optional[bytes]:
        """Response body verbatim."""
        return self.response.content if self.response is not None else None
