"""
Event-driven system with typed events and clear data flow.

Events carry their own data, handlers return next events, and dependencies
are injected separately from business data. Hooks observe events without
influencing the flow; logging is attached as a hook.

Client events map one-to-one onto the states of a discovery -> pay -> retry
operation (see FlowState). Server events describe the handling of one request
to a protected resource.
"""

import asyncio
import inspect
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, ClassVar, Dict, List, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field

from ..schemas.bases import BaseVerificationResult, VerificationStatus
from ..schemas.https import FlowState
from ..schemas.payments import PaymentProof, PaymentRequired, PaymentRequirements, SettlementReceipt


# ==================== Base Event ====================

class BaseEvent(ABC):
    """Base class for all events in the system."""

    #: Flow state represented by the event, if any.
    state: ClassVar[Optional[FlowState]] = None
    #: Whether the event may appear at most once per chain execution.
    once_per_chain: ClassVar[bool] = False

    @abstractmethod
    def __repr__(self) -> str:
        """String representation of the event."""
        pass


# ==================== Client Flow Context ====================

class RequestSpec(BaseModel):
    """The request being paid for; replayed verbatim on every attempt."""
    method: str = "GET"
    url: str
    kwargs: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def with_headers(self, extra: Dict[str, str]) -> Dict[str, Any]:
        """Request keyword arguments with `extra` merged into the headers."""
        kwargs = dict(self.kwargs)
        headers = httpx.Headers(kwargs.get("headers"))
        headers.update(extra)
        kwargs["headers"] = headers
        return kwargs


class FlowContext(BaseModel):
    """Data accumulated while one operation moves through its states."""
    request: RequestSpec
    response: Optional[httpx.Response] = None
    requirements: Optional[PaymentRequired] = None
    selected: Optional[PaymentRequirements] = None
    proof: Optional[PaymentProof] = None
    authorization: Optional[str] = None
    transaction_hash: Optional[str] = None
    attempts: int = 0

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def evolve(self, **changes) -> "FlowContext":
        return self.model_copy(update=changes)


class FlowEvent(BaseModel, BaseEvent):
    """Base for client flow events."""
    context: FlowContext

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(url={self.context.request.url}, attempts={self.context.attempts})"


# ==================== Client Flow Events ====================

class DiscoverEvent(FlowEvent):
    """Trigger: issue the request without Authorization."""
    state: ClassVar[FlowState] = FlowState.DISCOVER


class RequirementsReceivedEvent(FlowEvent):
    """402 with decodable payment terms."""
    state: ClassVar[FlowState] = FlowState.REQUIREMENTS_RECEIVED


class PayingEvent(FlowEvent):
    """An option has been selected; the transfer is about to happen."""
    state: ClassVar[FlowState] = FlowState.PAYING
    once_per_chain: ClassVar[bool] = True

    def __repr__(self) -> str:
        selected = self.context.selected
        return f"PayingEvent(amount={selected.amount if selected else None}, pay_to={selected.pay_to if selected else None})"


class ProofAttachedEvent(FlowEvent):
    """The transfer confirmed; the proof is encoded into Authorization."""
    state: ClassVar[FlowState] = FlowState.PROOF_ATTACHED

    def __repr__(self) -> str:
        return f"ProofAttachedEvent(tx_hash={self.context.transaction_hash})"


class VerifyingEvent(FlowEvent):
    """Issue the authorized request."""
    state: ClassVar[FlowState] = FlowState.VERIFYING


class RetryWaitEvent(FlowEvent):
    """Verification still pending (402); wait before the next attempt."""
    state: ClassVar[FlowState] = FlowState.RETRY_WAIT


class GrantedEvent(FlowEvent):
    """Result: resource delivered."""
    state: ClassVar[FlowState] = FlowState.GRANTED
    settlement: Optional[Dict[str, Any]] = None

    def __repr__(self) -> str:
        status = self.context.response.status_code if self.context.response is not None else None
        return f"GrantedEvent(status={status}, tx_hash={self.context.transaction_hash})"


class DeniedEvent(FlowEvent):
    """Result: the operation failed for a protocol reason."""
    state: ClassVar[FlowState] = FlowState.DENIED
    error: Exception

    def __repr__(self) -> str:
        return f"DeniedEvent(error={type(self.error).__name__}: {self.error})"


class CancelledEvent(FlowEvent):
    """Result: the caller aborted the operation."""
    state: ClassVar[FlowState] = FlowState.CANCELLED
    error: Exception

    def __repr__(self) -> str:
        return f"CancelledEvent(reason={self.error})"


# ==================== Server Events ====================

class ResourceRequestEvent(BaseModel, BaseEvent):
    """Trigger: a request reached a protected resource."""
    resource: str
    authorization: Optional[str] = None

    def __repr__(self) -> str:
        return f"ResourceRequestEvent(resource={self.resource}, authorization={'***' if self.authorization else None})"


class PaymentRequiredEvent(BaseModel, BaseEvent):
    """Result: answer 402 with payment terms."""
    payment_required: PaymentRequired
    reason: str

    def __repr__(self) -> str:
        return f"PaymentRequiredEvent(reason={self.reason})"


class MalformedProofEvent(BaseModel, BaseEvent):
    """Result: the Authorization header could not be decoded."""
    error_message: str

    def __repr__(self) -> str:
        return f"MalformedProofEvent(error={self.error_message})"


class ProofReceivedEvent(BaseModel, BaseEvent):
    """A decoded proof, matched to the requirements it answers."""
    resource: str
    proof: PaymentProof
    requirements: PaymentRequirements

    def __repr__(self) -> str:
        return f"ProofReceivedEvent(tx_hash={self.proof.transaction_hash})"


class VerifySuccessEvent(BaseModel, BaseEvent):
    """Result: payment verification succeeded."""
    resource: str
    proof: PaymentProof
    requirements: PaymentRequirements
    verification_result: BaseVerificationResult

    def __repr__(self) -> str:
        return f"VerifySuccessEvent(tx_hash={self.proof.transaction_hash})"


class VerifyFailedEvent(BaseModel, BaseEvent):
    """Result: payment verification failed or is still pending."""
    resource: str
    error_message: str
    status: VerificationStatus = VerificationStatus.UNKNOWN_ERROR
    destination: Optional[str] = None

    def __repr__(self) -> str:
        return f"VerifyFailedEvent(status={self.status.value}, error={self.error_message})"


class AccessGrantedEvent(BaseModel, BaseEvent):
    """Result: serve the resource with a settlement receipt."""
    proof: PaymentProof
    receipt: SettlementReceipt

    def __repr__(self) -> str:
        return f"AccessGrantedEvent(transaction={self.receipt.transaction})"


# ==================== Dependencies Container ====================

@dataclass(frozen=True)
class Dependencies:
    """Container for infrastructure dependencies (read-only).

    Client fields:
        send: Coroutine issuing one HTTP request (method, url, **kwargs).
        adapters_hub: Signing capability used by scheme strategies.
        schemes: SchemeRegistry resolving the payment strategy.
        retry_interval: Seconds to wait between verification attempts.
        max_verify_attempts: Upper bound on authorized requests.
        sleep: Coroutine used for the retry wait.
        cancel_event: Caller cancel token.

    Server fields:
        facilitator: Verifies and settles proofs.
        payment_methods: PaymentMethods building accepted options per resource.
    """
    send: Optional[Callable[..., Awaitable[httpx.Response]]] = None
    adapters_hub: Any = None
    schemes: Any = None
    retry_interval: float = 2.0
    max_verify_attempts: int = 5
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    cancel_event: Optional[asyncio.Event] = None
    facilitator: Any = None
    payment_methods: Any = None


# ==================== Event Bus ====================

EventHandlerFunc = Callable[[BaseEvent, Dependencies], Awaitable[Optional[BaseEvent]]]
EventHookFunc = Callable[[BaseEvent, Dependencies], Awaitable[None]]


class EventBus:
    """Registry of one handler per event class plus any number of hooks."""

    def __init__(self) -> None:
        """Initialize with empty handlers and hooks."""
        self._handlers: Dict[type, EventHandlerFunc] = {}
        self._hooks: Dict[type, List[EventHookFunc]] = {}

    def subscribe(self, event_class: type[BaseEvent], handler: EventHandlerFunc) -> None:
        """
        Register the async handler for the given event class.

        Exactly one handler decides the successor of an event; events with no
        handler are terminal.

        Raises:
            TypeError: If handler is not a coroutine function.
            ValueError: If the event class already has a handler.
        """
        if not inspect.iscoroutinefunction(handler):
            raise TypeError(f"Handler must be a coroutine function, got {type(handler).__name__}")
        if event_class in self._handlers:
            raise ValueError(f"{event_class.__name__} already has a handler")
        self._handlers[event_class] = handler

    def hook(self, event_class: type[BaseEvent], hook_func: EventHookFunc) -> None:
        """
        Register a hook for the given event class.

        Hooks registered on BaseEvent observe every event.
        """
        if not inspect.iscoroutinefunction(hook_func):
            raise TypeError(f"Handler must be a coroutine function, got {type(hook_func).__name__}")

        if event_class not in self._hooks:
            self._hooks[event_class] = []
        self._hooks[event_class].append(hook_func)

    def handler_for(self, event: BaseEvent) -> Optional[EventHandlerFunc]:
        return self._handlers.get(type(event))

    async def notify(self, event: BaseEvent, deps: Dependencies) -> None:
        """Run the hooks observing `event`, wildcard hooks first."""
        hooks = self._hooks.get(BaseEvent, []) + self._hooks.get(type(event), [])
        for hook in hooks:
            await hook(event, deps)
