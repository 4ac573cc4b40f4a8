"""
Built-in event handlers for the resource server.

Implements the handling of one request to a protected resource:
proof decoding → verification → settlement, or a 402 with fresh terms.
"""

from typing import Optional

from pydantic import ValidationError

from ..engine.events import (
    EventBus,
    BaseEvent,
    Dependencies,
    ResourceRequestEvent,
    PaymentRequiredEvent,
    MalformedProofEvent,
    ProofReceivedEvent,
    VerifySuccessEvent,
    VerifyFailedEvent,
    AccessGrantedEvent,
)
from ..engine.exceptions import (
    MalformedHeader,
    PaymentVerificationError,
    BlockchainInteractionError,
    ConfigurationError,
)
from ..schemas.bases import VerificationStatus
from ..schemas.headers import decode_header
from ..schemas.payments import PaymentProof, PaymentRequired, ResourceInfo
from ..utils import logger


async def build_payment_required(
    deps: Dependencies,
    resource: str,
    error: Optional[str] = None,
    asserted: Optional[str] = None,
) -> PaymentRequired:
    """Fresh payment terms for `resource`."""
    accepts = await deps.payment_methods.requirements_for(resource, asserted)
    first = accepts[0]
    return PaymentRequired(
        error=error,
        resource=ResourceInfo(url=resource, description=first.description, mime_type=first.mime_type),
        accepts=accepts,
    )


# ==================== Event Handlers ====================

async def handle_resource_request(event: ResourceRequestEvent, deps: Dependencies) -> BaseEvent:
    """Quote terms, or decode the proof loudly and match it to its terms."""
    if not event.authorization:
        return PaymentRequiredEvent(
            payment_required=await build_payment_required(deps, event.resource),
            reason="Missing payment proof",
        )

    try:
        proof = PaymentProof.model_validate(decode_header(event.authorization))
    except MalformedHeader as e:
        return MalformedProofEvent(error_message=str(e))
    except ValidationError as e:
        return MalformedProofEvent(error_message=f"Authorization does not hold a payment proof: {e.error_count()} error(s)")

    requirements = await deps.payment_methods.match(event.resource, proof)
    if requirements is None:
        return VerifyFailedEvent(
            resource=event.resource,
            error_message=f"No accepted payment method for {proof.scheme} on {proof.network}",
            status=VerificationStatus.NETWORK_MISMATCH,
        )

    return ProofReceivedEvent(resource=event.resource, proof=proof, requirements=requirements)


async def handle_proof_received(event: ProofReceivedEvent, deps: Dependencies) -> BaseEvent:
    """Ask the facilitator whether the proof pays the requirements."""
    try:
        result = await deps.facilitator.verify(event.proof, event.requirements)
    except (PaymentVerificationError, BlockchainInteractionError, ConfigurationError) as e:
        return VerifyFailedEvent(
            resource=event.resource,
            error_message=f"Verification failed: {e}",
            status=VerificationStatus.BLOCKCHAIN_ERROR,
            destination=event.requirements.pay_to,
        )

    if result.is_success():
        return VerifySuccessEvent(
            resource=event.resource,
            proof=event.proof,
            requirements=event.requirements,
            verification_result=result,
        )
    return VerifyFailedEvent(
        resource=event.resource,
        error_message=result.message,
        status=result.status,
        destination=event.requirements.pay_to,
    )


async def handle_verify_success(event: VerifySuccessEvent, deps: Dependencies) -> BaseEvent:
    """Settle the verified proof and grant access."""
    try:
        receipt = await deps.facilitator.settle(event.proof, event.requirements)
    except (PaymentVerificationError, BlockchainInteractionError) as e:
        return VerifyFailedEvent(
            resource=event.resource,
            error_message=f"Settlement failed: {e}",
            status=VerificationStatus.BLOCKCHAIN_ERROR,
            destination=event.requirements.pay_to,
        )

    if not receipt.success:
        return VerifyFailedEvent(
            resource=event.resource,
            error_message=f"Settlement failed: {receipt.error_reason or 'unknown reason'}",
            status=VerificationStatus.TRANSACTION_FAILED,
            destination=event.requirements.pay_to,
        )
    if receipt.payer is None:
        receipt = receipt.model_copy(update={"payer": event.verification_result.payer})
    return AccessGrantedEvent(proof=event.proof, receipt=receipt)


async def handle_verify_failed(event: VerifyFailedEvent, deps: Dependencies) -> PaymentRequiredEvent:
    """Answer 402 again; pending payments keep their destination."""
    return PaymentRequiredEvent(
        payment_required=await build_payment_required(
            deps, event.resource, error=event.error_message, asserted=event.destination
        ),
        reason=event.status.value,
    )


# ==================== Observers ====================

async def log_server_event(event: BaseEvent, deps: Dependencies) -> None:
    if isinstance(event, PaymentRequiredEvent):
        logger.info(f"402 for {event.payment_required.resource.url}: {event.reason}")
    elif isinstance(event, MalformedProofEvent):
        logger.warning(f"Rejected malformed Authorization: {event.error_message}")
    elif isinstance(event, VerifyFailedEvent):
        logger.info(f"Proof for {event.resource} not accepted ({event.status.value}): {event.error_message}")
    elif isinstance(event, AccessGrantedEvent):
        logger.info(f"Access granted, transaction {event.receipt.transaction}")


# ==================== Event Bus Setup ====================

def setup_event_bus(enable_logging: bool = True) -> EventBus:
    """Initialize event bus with built-in handlers.

    Args:
        enable_logging: If True, outcomes are logged by an observer hook.
    """
    event_bus = EventBus()

    event_bus.subscribe(ResourceRequestEvent, handle_resource_request)
    event_bus.subscribe(ProofReceivedEvent, handle_proof_received)
    event_bus.subscribe(VerifySuccessEvent, handle_verify_success)
    event_bus.subscribe(VerifyFailedEvent, handle_verify_failed)

    if enable_logging:
        event_bus.hook(BaseEvent, log_server_event)

    return event_bus
