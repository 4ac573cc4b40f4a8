"""
X402 Resource Server - Event-driven FastAPI wrapper.

Provides a simple interface for gating routes behind x402 payments with
typed events.
"""

from typing import Optional, Callable, Union, Dict, Any

from fastapi import FastAPI, Header, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from ..engine.events import (
    EventBus,
    Dependencies,
    BaseEvent,
    ResourceRequestEvent,
    PaymentRequiredEvent,
    MalformedProofEvent,
    AccessGrantedEvent,
)
from ..engine.executors import EventChain
from ..adapters.adapters_hub import AdapterHub
from ..schemas.headers import AUTHENTICATION_INFO_HEADER, PAYMENT_REQUIRED_HEADER, encode_header
from ..schemas.payments import PaymentRequirements
from .destinations import (
    DEFAULT_DESTINATION_CACHE_SIZE,
    DEFAULT_DESTINATION_TTL,
    DestinationCache,
    PaymentMethods,
    PayTo,
)
from .facilitators import BaseFacilitator, LocalFacilitator
from .flows import setup_event_bus


class Http402Server(FastAPI):
    """FastAPI server with x402 payment protocol support."""

    def __init__(
        self,
        facilitator: Optional[BaseFacilitator] = None,
        adapter_hub: Optional[AdapterHub] = None,
        destination_ttl: float = DEFAULT_DESTINATION_TTL,
        destination_cache_size: int = DEFAULT_DESTINATION_CACHE_SIZE,
        enable_logging: bool = True,
        **fastapi_kwargs
    ):
        """Initialize x402 resource server.

        Args:
            facilitator: Verifies and settles proofs (default: LocalFacilitator
                reading receipts through `adapter_hub`)
            adapter_hub: Chain access for the default facilitator
            destination_ttl: Seconds an issued payTo stays reusable
            destination_cache_size: Issued destinations remembered at most
            enable_logging: Log request outcomes through the package logger
            **fastapi_kwargs: FastAPI arguments (title, version, etc.)
        """
        self.adapter_hub = adapter_hub or AdapterHub(load_env_key=False)
        self.facilitator = facilitator or LocalFacilitator(self.adapter_hub)
        self.payment_methods = PaymentMethods(
            DestinationCache(maxsize=destination_cache_size, ttl=destination_ttl)
        )
        self.depends = Dependencies(
            facilitator=self.facilitator,
            payment_methods=self.payment_methods,
        )
        self.event_bus: EventBus = setup_event_bus(enable_logging=enable_logging)

        super().__init__(**fastapi_kwargs)

    def add_payment_method(
        self,
        payment_method: Union[PaymentRequirements, Dict[str, Any]],
        pay_to: Optional[PayTo] = None,
    ) -> None:
        """Register an accepted payment option.

        Options are listed in registration order; clients pay the first one.

        Args:
            payment_method: A ``PaymentRequirements`` instance or a plain dict
                that will be coerced into one. `payTo` may be an async resolver.
            pay_to: Destination address or async resolver, overriding `payTo`.
        """
        self.payment_methods.add(payment_method, pay_to=pay_to)

    def subscribe(self, event_class: type[BaseEvent], handler: Callable) -> None:
        """Register event handler.

        Args:
            event_class: Event type to handle
            handler: Async function(event, deps) -> Optional[BaseEvent]
        """
        self.event_bus.subscribe(event_class, handler)

    def add_hook(self, event_class: type[BaseEvent], hook: Callable) -> None:
        """Register event hook for side effects.

        Example:
            ```python
            async def log_event(event, deps):
                print(f"Event: {event}")

            app.add_hook(AccessGrantedEvent, log_event)
            ```
        """
        self.event_bus.hook(event_class, hook)

    def hook(self, event_class: type[BaseEvent]) -> Callable:
        """Decorator for registering event hooks.

        Example:
            @app.hook(AccessGrantedEvent)
            async def on_granted(event, deps):
                await record_sale(event.receipt)
        """
        def decorator(hook_func: Callable) -> Callable:
            self.event_bus.hook(event_class, hook_func)
            return hook_func
        return decorator

    def payment_required(self, route_handler):
        """Decorator to protect routes with payment verification.

        Answers 402 with `Payment-Required` terms until a valid proof arrives,
        400 for an undecodable `Authorization`, and otherwise runs the handler
        with the accepted proof and attaches the `Authentication-Info` receipt.

        Example:
            ```python
            @app.get("/data")
            @app.payment_required
            async def get_data(proof):
                return {"paid_with": proof.transaction_hash}
            ```
        """
        async def wrapper(request: Request, authorization: Optional[str] = Header(None)):
            event_chain = EventChain(self.event_bus, self.depends)
            executor = event_chain.execute(
                ResourceRequestEvent(resource=request.url.path, authorization=authorization)
            )
            async for event in executor:
                if isinstance(event, PaymentRequiredEvent):
                    document = event.payment_required.to_document()
                    return JSONResponse(
                        status_code=402,
                        content=document,
                        headers={PAYMENT_REQUIRED_HEADER: encode_header(document)},
                    )

                if isinstance(event, MalformedProofEvent):
                    return JSONResponse(
                        status_code=400,
                        content={"error": event.error_message}
                    )

                if isinstance(event, AccessGrantedEvent):
                    result = await route_handler(event.proof)
                    response = result if isinstance(result, Response) else JSONResponse(
                        content=jsonable_encoder(result)
                    )
                    response.headers[AUTHENTICATION_INFO_HEADER] = encode_header(event.receipt)
                    return response

            return JSONResponse(
                status_code=500,
                content={"error": "Payment verification failed"}
            )

        return wrapper
