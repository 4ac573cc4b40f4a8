"""
Payment Document Models for the x402 Protocol

Pydantic models for the three documents exchanged through HTTP headers:

1. PaymentRequired    -> `Payment-Required` response header (402)
2. PaymentProof       -> `Authorization` request header (retry)
3. SettlementReceipt  -> `Authentication-Info` response header (200)

Token amounts are arbitrary-precision unsigned integers. They are accepted
from JSON either as integers or as decimal strings and are always emitted as
decimal strings, so consumers limited to 53-bit numbers never lose precision.
"""

import re
from typing import Any, Dict, List, Optional

from pydantic import AfterValidator, BeforeValidator, ConfigDict, Field, PlainSerializer, field_validator
from typing_extensions import Annotated

from .bases import CanonicalModel
from .versions import CURRENT_VERSION, ProtocolVersion


_CAIP2_PATTERN = re.compile(r"^[a-z0-9]+:[a-zA-Z0-9]+$")


def _parse_token_amount(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError("amount must be an integer, not a boolean")
    if isinstance(value, int):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        if not text.isdigit():
            raise ValueError(f"amount must be a non-negative decimal integer string, got {value!r}")
        parsed = int(text)
    elif isinstance(value, float):
        if not value.is_integer():
            raise ValueError(f"amount must be integral, got {value!r}")
        parsed = int(value)
    else:
        raise ValueError(f"Unsupported amount type: {type(value).__name__}")
    if parsed < 0:
        raise ValueError("amount must be non-negative")
    return parsed


TokenAmount = Annotated[
    int,
    BeforeValidator(_parse_token_amount),
    PlainSerializer(lambda v: str(v), return_type=str, when_used="json"),
]


X402Version = Annotated[int, AfterValidator(lambda v: int(ProtocolVersion.from_value(v)))]

def validate_caip2(network: str) -> str:
    """
    Check that `network` has the CAIP-2 `namespace:reference` shape.

    Raises:
        ValueError: If the identifier is malformed.
    """
    if not isinstance(network, str) or not _CAIP2_PATTERN.match(network):
        raise ValueError(f'network must be CAIP-2 like "eip155:84532", got {network!r}')
    return network


# ============================================================================
# Payment-Required
# ============================================================================

class PaymentRequirements(CanonicalModel):
    """One accepted way of paying for a resource.

    Attributes:
        scheme: Payment scheme identifier (e.g. "exact").
        network: CAIP-2 network identifier (e.g. "eip155:84532").
        asset: Token contract address.
        pay_to: Destination address that must receive the payment.
        amount: Amount in the token's smallest unit.
        price: Human-readable price, display only.
        description: Human-readable description, display only.
        mime_type: MIME type of the protected resource.
        max_timeout_seconds: How long the server waits for settlement.
        extra: Scheme-specific metadata.
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    scheme: str = Field(..., min_length=1, description="Payment scheme identifier")
    network: str = Field(..., description="CAIP-2 network identifier")
    asset: str = Field(..., min_length=1, description="Token contract address")
    pay_to: str = Field(..., alias="payTo", min_length=1, description="Destination address")
    amount: TokenAmount = Field(..., description="Amount in the token's smallest unit")
    price: Optional[str] = Field(None, description="Human-readable price")
    description: Optional[str] = Field(None, description="Human-readable description")
    mime_type: Optional[str] = Field(None, alias="mimeType", description="Resource MIME type")
    max_timeout_seconds: Optional[int] = Field(None, alias="maxTimeoutSeconds", ge=0)
    extra: Optional[Dict[str, Any]] = Field(None, description="Scheme-specific metadata")

    @field_validator("network")
    @classmethod
    def _check_network(cls, value: str) -> str:
        return validate_caip2(value)

    @property
    def namespace(self) -> str:
        """CAIP-2 namespace, e.g. "eip155"."""
        return self.network.split(":", 1)[0]

    @property
    def reference(self) -> str:
        """CAIP-2 reference, e.g. "84532"."""
        return self.network.split(":", 1)[1]


class ResourceInfo(CanonicalModel):
    """Describes the protected resource."""
    url: str
    description: Optional[str] = None
    mime_type: Optional[str] = Field(None, alias="mimeType")


class PaymentRequired(CanonicalModel):
    """Document carried by the `Payment-Required` header of a 402 response.

    Attributes:
        x402_version: Protocol version.
        error: Why payment is (still) required, if the server says.
        resource: The resource being paid for.
        accepts: Accepted payment options, in the server's order of preference.
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    x402_version: X402Version = Field(default=int(CURRENT_VERSION), alias="x402Version")
    error: Optional[str] = None
    resource: Optional[ResourceInfo] = None
    accepts: List[PaymentRequirements] = Field(..., min_length=1)

    def first_option(self) -> PaymentRequirements:
        """First listed option wins; options are never scored."""
        return self.accepts[0]


# ============================================================================
# Authorization
# ============================================================================

class TransferAuthorization(CanonicalModel):
    """Who paid whom, and how much.

    `to` MUST equal the `payTo` of the requirements being answered.
    """
    from_address: Optional[str] = Field(None, alias="from")
    to: str = Field(..., min_length=1)
    value: Optional[TokenAmount] = None


class ProofPayload(CanonicalModel):
    authorization: TransferAuthorization
    signature: Optional[str] = None


class PaymentProof(CanonicalModel):
    """Document carried by the `Authorization` header on retry.

    Attributes:
        x402_version: Protocol version.
        scheme: Scheme of the answered requirements.
        network: Network of the answered requirements.
        transaction_hash: On-chain transfer satisfying the requirements.
        payload: Scheme payload; `payload.authorization.to` is the destination.
        accepted: Echo of the requirements this proof answers.
    """
    x402_version: X402Version = Field(default=int(CURRENT_VERSION), alias="x402Version")
    scheme: str
    network: str
    transaction_hash: Optional[str] = Field(None, alias="transactionHash")
    payload: ProofPayload
    accepted: Optional[PaymentRequirements] = None

    @property
    def destination(self) -> str:
        return self.payload.authorization.to


# ============================================================================
# Authentication-Info
# ============================================================================

class SettlementReceipt(CanonicalModel):
    """Settlement receipt returned with a granted response."""
    success: bool
    transaction: Optional[str] = None
    network: Optional[str] = None
    payer: Optional[str] = None
    error_reason: Optional[str] = Field(None, alias="errorReason")
