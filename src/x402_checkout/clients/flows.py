"""
Built-in event handlers for the client discovery -> pay -> retry flow.

One handler per state; each returns the next state's event. Handlers never
log: a logging hook observes every transition instead.
"""

from typing import Optional

import httpx
from pydantic import ValidationError

from ..engine.events import (
    EventBus,
    BaseEvent,
    Dependencies,
    FlowContext,
    DiscoverEvent,
    RequirementsReceivedEvent,
    PayingEvent,
    ProofAttachedEvent,
    VerifyingEvent,
    RetryWaitEvent,
    GrantedEvent,
    DeniedEvent,
    CancelledEvent,
)
from ..engine.exceptions import (
    MalformedHeader,
    MissingRequirements,
    UnexpectedStatus,
    UnsupportedScheme,
    PaymentTransferFailed,
    VerificationTimeout,
    ConfigurationError,
)
from ..schemas.headers import (
    PAYMENT_REQUIRED_HEADER,
    AUTHENTICATION_INFO_HEADER,
    PAYMENT_RESPONSE_HEADER,
    decode_header,
    encode_authorization,
    try_decode_header,
)
from ..schemas.https import ClientRequestHeader
from ..schemas.payments import PaymentRequired
from ..utils import logger


def _is_success(response: httpx.Response) -> bool:
    return 200 <= response.status_code < 300


def parse_payment_required(response: httpx.Response) -> PaymentRequired:
    """
    Decode the payment terms of a 402 response.

    Raises:
        MissingRequirements: If the header is absent, undecodable or does not
            describe at least one valid option.
    """
    raw = response.headers.get(PAYMENT_REQUIRED_HEADER)
    if not raw:
        raise MissingRequirements(
            "402 response without a Payment-Required header",
            status_code=response.status_code,
            response=response,
        )
    try:
        return PaymentRequired.model_validate(decode_header(raw))
    except MalformedHeader as e:
        raise MissingRequirements(
            f"Undecodable Payment-Required header: {e}",
            status_code=response.status_code,
            response=response,
        ) from e
    except ValidationError as e:
        raise MissingRequirements(
            f"Payment-Required header does not describe a payment: {e.error_count()} error(s)",
            status_code=response.status_code,
            response=response,
        ) from e


def peek_payment_required(response: httpx.Response) -> Optional[PaymentRequired]:
    """Best-effort decode for diagnostics; never raises."""
    document = try_decode_header(response.headers.get(PAYMENT_REQUIRED_HEADER), PAYMENT_REQUIRED_HEADER)
    if document is None:
        return None
    try:
        return PaymentRequired.model_validate(document)
    except ValidationError:
        logger.warning("Ignoring Payment-Required header with an invalid document")
        return None


def read_settlement(response: httpx.Response) -> Optional[dict]:
    """Decode the settlement receipt of a granted response, if any."""
    for name in (AUTHENTICATION_INFO_HEADER, PAYMENT_RESPONSE_HEADER):
        raw = response.headers.get(name)
        if raw:
            return try_decode_header(raw, name)
    return None


def _denied(context: FlowContext, error: Exception) -> DeniedEvent:
    return DeniedEvent(context=context, error=error)


# ==================== Event Handlers ====================

async def handle_discover(event: DiscoverEvent, deps: Dependencies) -> BaseEvent:
    """Issue the request without Authorization and classify the answer."""
    request = event.context.request
    response = await deps.send(request.method, request.url, **request.kwargs)
    context = event.context.evolve(response=response)

    if _is_success(response):
        return GrantedEvent(context=context, settlement=read_settlement(response))

    if response.status_code == 402:
        try:
            requirements = parse_payment_required(response)
        except MissingRequirements as e:
            return _denied(context, e)
        return RequirementsReceivedEvent(context=context.evolve(requirements=requirements))

    return _denied(context, UnexpectedStatus(
        f"Unexpected status {response.status_code} during discovery",
        status_code=response.status_code,
        response=response,
    ))


async def handle_requirements_received(event: RequirementsReceivedEvent, deps: Dependencies) -> BaseEvent:
    """Select the first accepted option."""
    requirements = event.context.requirements
    selected = requirements.first_option()
    try:
        deps.schemes.get(selected)
        if not deps.adapters_hub.supports(selected.network):
            raise UnsupportedScheme(f"No adapter can pay on {selected.network}")
    except UnsupportedScheme as e:
        return _denied(event.context, UnsupportedScheme(
            str(e),
            status_code=402,
            requirements=requirements,
            response=event.context.response,
        ))
    return PayingEvent(context=event.context.evolve(selected=selected))


async def handle_paying(event: PayingEvent, deps: Dependencies) -> BaseEvent:
    """Pay the selected option through its scheme strategy. Never retried."""
    context = event.context
    strategy = deps.schemes.get(context.selected)
    try:
        proof, confirmation = await strategy.create_proof(context.selected, deps.adapters_hub)
    except PaymentTransferFailed as e:
        return _denied(context, PaymentTransferFailed(
            str(e),
            transaction_hash=e.transaction_hash,
            status_code=402,
            requirements=context.requirements,
            response=context.response,
        ))
    except (ConfigurationError, UnsupportedScheme) as e:
        return _denied(context, PaymentTransferFailed(
            f"Cannot pay: {e}",
            status_code=402,
            requirements=context.requirements,
            response=context.response,
        ))

    authorization = encode_authorization(proof, strategy.token)
    return ProofAttachedEvent(context=context.evolve(
        proof=proof,
        authorization=authorization,
        transaction_hash=proof.transaction_hash,
    ))


async def handle_proof_attached(event: ProofAttachedEvent, deps: Dependencies) -> BaseEvent:
    return VerifyingEvent(context=event.context)


async def handle_verifying(event: VerifyingEvent, deps: Dependencies) -> BaseEvent:
    """Issue the authorized request; 402 means settlement is still pending."""
    context = event.context
    request = context.request
    auth_headers = ClientRequestHeader(authorization=context.authorization).model_dump(
        by_alias=True, exclude_none=True
    )
    response = await deps.send(request.method, request.url, **request.with_headers(auth_headers))
    context = context.evolve(response=response, attempts=context.attempts + 1)

    if _is_success(response):
        return GrantedEvent(context=context, settlement=read_settlement(response))

    if response.status_code == 402:
        latest = peek_payment_required(response)
        if latest is not None:
            context = context.evolve(requirements=latest)
        if context.attempts >= deps.max_verify_attempts:
            return _denied(context, VerificationTimeout(
                f"Payment not accepted after {context.attempts} attempt(s)",
                attempts=context.attempts,
                transaction_hash=context.transaction_hash,
                status_code=402,
                requirements=context.requirements,
                response=response,
            ))
        return RetryWaitEvent(context=context)

    return _denied(context, UnexpectedStatus(
        f"Unexpected status {response.status_code} during verification",
        status_code=response.status_code,
        requirements=context.requirements,
        response=response,
    ))


async def handle_retry_wait(event: RetryWaitEvent, deps: Dependencies) -> BaseEvent:
    await deps.sleep(deps.retry_interval)
    return VerifyingEvent(context=event.context)


# ==================== Observers ====================

async def log_transition(event: BaseEvent, deps: Dependencies) -> None:
    """Logging hook observing every client state."""
    if isinstance(event, DiscoverEvent):
        logger.info(f"{event.context.request.method} {event.context.request.url} (discovery, no Authorization)")
    elif isinstance(event, RequirementsReceivedEvent):
        logger.info("402 Payment Required, terms received")
        logger.debug(f"Requirements: {event.context.requirements.to_canonical_json()}")
    elif isinstance(event, PayingEvent):
        selected = event.context.selected
        logger.info(f"Paying {selected.amount} of {selected.asset} to {selected.pay_to} on {selected.network}")
    elif isinstance(event, ProofAttachedEvent):
        logger.info(f"Transfer confirmed: {event.context.transaction_hash}")
    elif isinstance(event, VerifyingEvent):
        logger.info(f"Retrying with Authorization (attempt {event.context.attempts + 1})")
    elif isinstance(event, RetryWaitEvent):
        logger.info(f"Verification pending (402), waiting {deps.retry_interval}s")
    elif isinstance(event, GrantedEvent):
        logger.info(f"Granted: {event.context.response.status_code}")
        if event.settlement:
            logger.info(f"Settlement receipt: {event.settlement}")
    elif isinstance(event, DeniedEvent):
        logger.error(f"Denied: {type(event.error).__name__}: {event.error}")
    elif isinstance(event, CancelledEvent):
        logger.warning(f"Cancelled: {event.error}")


# ==================== Event Bus Setup ====================

def setup_event_bus(enable_logging: bool = True) -> EventBus:
    """Initialize event bus with built-in handlers.

    Args:
        enable_logging: If True, every state is logged by an observer hook.
    """
    event_bus = EventBus()

    event_bus.subscribe(DiscoverEvent, handle_discover)
    event_bus.subscribe(RequirementsReceivedEvent, handle_requirements_received)
    event_bus.subscribe(PayingEvent, handle_paying)
    event_bus.subscribe(ProofAttachedEvent, handle_proof_attached)
    event_bus.subscribe(VerifyingEvent, handle_verifying)
    event_bus.subscribe(RetryWaitEvent, handle_retry_wait)

    if enable_logging:
        event_bus.hook(BaseEvent, log_transition)

    return event_bus
