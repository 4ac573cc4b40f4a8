"""
Exception and Error Definitions Module

Defines the exception hierarchy for the x402 discovery -> pay -> retry flow,
the challenge codec, the resource server and blockchain interactions. All
exceptions inherit from X402Error for unified exception handling.

Exception Hierarchy:
    X402Error (root)
    ├── MalformedHeader
    ├── PaymentFlowError
    │   ├── MissingRequirements
    │   ├── UnexpectedStatus
    │   ├── UnsupportedScheme
    │   ├── PaymentTransferFailed
    │   └── VerificationTimeout
    ├── Cancelled
    ├── PaymentVerificationError
    ├── ConfigurationError
    ├── InvalidTransition
    └── BlockchainInteractionError
"""

from typing import Any, Optional


class X402Error(Exception):
    """
    Root exception class for all project-specific exceptions.
    """
    pass


class MalformedHeader(X402Error):
    """
    Raised when a payment header cannot be decoded.

    This includes scenarios such as:
    - Empty header value
    - Invalid base64 payload
    - Decoded bytes that are not a JSON object

    Attributes:
        raw: The offending header value (possibly truncated)
    """

    def __init__(self, message: str, raw: Optional[str] = None):
        super().__init__(message)
        self.raw = raw[:120] if raw else raw


class PaymentFlowError(X402Error):
    """
    Base exception for terminal failures of an "access resource" operation.

    Every subclass preserves the diagnostics the caller needs to inspect the
    failure: the last HTTP status code, the decoded payment terms when they
    were available, and the last response object.

    Attributes:
        status_code: Status code of the last response, if any
        requirements: Decoded PaymentRequired document, if any
        response: The last httpx.Response, if any
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        requirements: Any = None,
        response: Any = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.requirements = requirements
        self.response = response


class MissingRequirements(PaymentFlowError):
    """
    Raised when a 402 response carries no usable payment terms.

    The Payment-Required header is absent, undecodable, or does not describe
    any accepted payment option. No payment is attempted.
    """
    pass


class UnexpectedStatus(PaymentFlowError):
    """
    Raised when the resource server answers with a status outside {2xx, 402}.
    """
    pass


class UnsupportedScheme(PaymentFlowError):
    """
    Raised when the selected payment option names a scheme or network that
    no registered strategy or chain adapter can pay.
    """
    pass


class PaymentTransferFailed(PaymentFlowError):
    """
    Raised when the on-chain transfer fails to sign, broadcast or confirm.

    Fatal to the whole operation; the transfer is never retried.

    Attributes:
        transaction_hash: Hash of the broadcast transaction, when one exists
    """

    def __init__(self, message: str, *, transaction_hash: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.transaction_hash = transaction_hash


class VerificationTimeout(PaymentFlowError):
    """
    Raised when the server still answers 402 after the verification retry
    budget has been exhausted.

    Attributes:
        attempts: Number of authorized requests that were issued
        transaction_hash: Hash of the payment the proof referenced
    """

    def __init__(
        self,
        message: str,
        *,
        attempts: int = 0,
        transaction_hash: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.attempts = attempts
        self.transaction_hash = transaction_hash


class Cancelled(X402Error):
    """
    Raised when the caller aborts an operation through its cancel token or
    deadline. Distinct from every denial.

    Attributes:
        state: Flow state that was active when the abort was observed
    """

    def __init__(self, message: str = "Operation cancelled", state: Optional[str] = None):
        super().__init__(message)
        self.state = state


class PaymentVerificationError(X402Error):
    """
    Raised on the server side when a payment proof cannot be verified.

    This includes scenarios such as:
    - Proof destination differs from the issued payTo
    - Transfer amount lower than required
    - Facilitator unreachable or returning malformed data
    """
    pass


class ConfigurationError(X402Error):
    """
    Raised when configuration is missing or invalid.

    This includes scenarios such as:
    - Missing private key
    - Network identifier not in CAIP-2 form
    - Unsupported network configuration
    """
    pass


class InvalidTransition(X402Error):
    """
    Raised when the flow state machine is asked to perform a transition it
    forbids, such as entering PAYING twice within one operation.
    """
    pass


class BlockchainInteractionError(X402Error):
    """
    Raised when blockchain interaction (RPC call) fails.

    This includes scenarios such as:
    - RPC call timeout
    - Network connectivity issues
    - Invalid contract address
    """
    pass

