from .bases import CanonicalModel, VerificationStatus, BaseVerificationResult, TransactionStatus, BaseTransactionConfirmation
from .payments import (
    TokenAmount,
    validate_caip2,
    PaymentRequirements,
    ResourceInfo,
    PaymentRequired,
    TransferAuthorization,
    ProofPayload,
    PaymentProof,
    SettlementReceipt,
)
from .headers import (
    PAYMENT_REQUIRED_HEADER,
    AUTHORIZATION_HEADER,
    AUTHENTICATION_INFO_HEADER,
    PAYMENT_RESPONSE_HEADER,
    encode_header,
    decode_header,
    try_decode_header,
    split_scheme,
    scheme_token,
    encode_authorization,
)
from .https import ClientRequestHeader, FlowState, AccessResult
from .versions import ProtocolVersion, CURRENT_VERSION

__all__ = [
    "CanonicalModel",
    "VerificationStatus",
    "BaseVerificationResult",
    "TransactionStatus",
    "BaseTransactionConfirmation",
    "TokenAmount",
    "validate_caip2",
    "PaymentRequirements",
    "ResourceInfo",
    "PaymentRequired",
    "TransferAuthorization",
    "ProofPayload",
    "PaymentProof",
    "SettlementReceipt",
    "PAYMENT_REQUIRED_HEADER",
    "AUTHORIZATION_HEADER",
    "AUTHENTICATION_INFO_HEADER",
    "PAYMENT_RESPONSE_HEADER",
    "encode_header",
    "decode_header",
    "try_decode_header",
    "split_scheme",
    "scheme_token",
    "encode_authorization",
    "ClientRequestHeader",
    "FlowState",
    "AccessResult",
    "ProtocolVersion",
    "CURRENT_VERSION",
]
