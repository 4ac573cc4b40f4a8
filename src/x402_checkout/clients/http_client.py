"""
HTTP 402 Payment Flow Client

Provides a transparent layer over httpx that automatically handles
402 Payment Required responses: it pays the first accepted option on-chain,
attaches the payment proof as `Authorization` and retries until the resource
server accepts it.
"""

import asyncio
from typing import Any, List, Optional

import httpx

from ..adapters.adapters_hub import AdapterHub
from ..adapters.schemes import SchemeRegistry
from ..engine.events import (
    BaseEvent,
    CancelledEvent,
    DeniedEvent,
    Dependencies,
    DiscoverEvent,
    EventBus,
    FlowContext,
    FlowEvent,
    GrantedEvent,
    RequestSpec,
)
from ..engine.exceptions import Cancelled
from ..engine.executors import EventChain
from ..schemas.https import AccessResult
from .flows import setup_event_bus


DEFAULT_RETRY_INTERVAL = 2.0
DEFAULT_MAX_VERIFY_ATTEMPTS = 5


class Http402Client(httpx.AsyncClient):
    """
    Extended httpx.AsyncClient with automatic 402 payment handling.

    Every request runs one discovery -> pay -> retry operation:
    1. Send the request without Authorization
    2. On 402, decode Payment-Required and select the first accepted option
    3. Pay it once through the adapter hub
    4. Retry with the proof until 2xx, waiting between pending (402) answers

    Fully compatible with httpx.AsyncClient - supports all methods, properties,
    and can be used as an async context manager.

    Usage:
        ```python
        async with Http402Client(adapter_hub=AdapterHub(evm_private_key=pk)) as client:
            result = await client.access("https://api.example.com/paid")
            if result.granted:
                print(result.body)
        ```
    """

    def __init__(
        self,
        adapter_hub: Optional[AdapterHub] = None,
        schemes: Optional[SchemeRegistry] = None,
        retry_interval: float = DEFAULT_RETRY_INTERVAL,
        max_verify_attempts: int = DEFAULT_MAX_VERIFY_ATTEMPTS,
        event_bus: Optional[EventBus] = None,
        **kwargs
    ):
        """
        Initialize client with an optional payment adapter hub.

        Args:
            adapter_hub: Signing capability (default: hub with the EVM adapter
                configured from the environment)
            schemes: Payment scheme strategies (default: exact on EVM)
            retry_interval: Seconds between verification attempts
            max_verify_attempts: Upper bound on authorized requests
            event_bus: Custom bus (default: built-in handlers plus logging)
            **kwargs: All standard httpx.AsyncClient arguments (timeout, headers, etc.)
        """
        if max_verify_attempts < 1:
            raise ValueError("max_verify_attempts must be at least 1")
        if retry_interval < 0:
            raise ValueError("retry_interval must be non-negative")
        super().__init__(**kwargs)
        self._hub = adapter_hub or AdapterHub()
        self._schemes = schemes or SchemeRegistry()
        self.retry_interval = retry_interval
        self.max_verify_attempts = max_verify_attempts
        self.event_bus = event_bus or setup_event_bus()

    def add_hook(self, event_class: type[BaseEvent], hook) -> None:
        """Observe flow events, e.g. to report progress.

        Example:
            ```python
            async def on_paying(event, deps):
                print("paying", event.context.selected.amount)

            client.add_hook(PayingEvent, on_paying)
            ```
        """
        self.event_bus.hook(event_class, hook)

    # =========================================================================
    # Override httpx.AsyncClient.request to add 402 handling
    # =========================================================================

    async def request(
        self,
        method: str,
        url: httpx._types.URLTypes,
        **kwargs
    ) -> httpx.Response:
        """
        Execute HTTP request with automatic 402 handling.

        All other httpx methods (get, post, etc.) automatically use this.

        Returns:
            The granted httpx.Response

        Raises:
            PaymentFlowError: Subclass describing why access was denied
            Cancelled: If the operation was cancelled
        """
        result = await self.access(url, method=method, **kwargs)
        if result.granted:
            return result.response
        raise result.error

    # =========================================================================
    # Core 402 Handling Logic
    # =========================================================================

    async def access(
        self,
        url: httpx._types.URLTypes,
        method: str = "GET",
        *,
        cancel_event: Optional[asyncio.Event] = None,
        deadline: Optional[float] = None,
        **kwargs: Any,
    ) -> AccessResult:
        """
        Run one discovery -> pay -> retry operation.

        Args:
            url: Resource URL
            method: HTTP method
            cancel_event: Setting it aborts the operation at its next
                suspension point with a CANCELLED outcome
            deadline: Overall time budget in seconds; elapsing it also cancels
            **kwargs: Standard httpx request arguments, replayed on every attempt

        Returns:
            AccessResult in state GRANTED, DENIED or CANCELLED
        """
        deps = Dependencies(
            send=self._send_raw,
            adapters_hub=self._hub,
            schemes=self._schemes,
            retry_interval=self.retry_interval,
            max_verify_attempts=self.max_verify_attempts,
            sleep=self._sleep_async,
            cancel_event=cancel_event,
        )
        initial = DiscoverEvent(context=FlowContext(
            request=RequestSpec(method=method, url=str(url), kwargs=kwargs)
        ))
        events: List[FlowEvent] = []

        try:
            if deadline is None:
                await self._drive(deps, initial, events)
            else:
                await asyncio.wait_for(self._drive(deps, initial, events), deadline)
        except Cancelled as e:
            return await self._cancelled(deps, events, initial, e)
        except asyncio.TimeoutError:
            return await self._cancelled(
                deps, events, initial,
                Cancelled(f"Operation exceeded its {deadline}s deadline", state=_last_state(events)),
            )

        return _to_result(events)

    async def _drive(self, deps: Dependencies, initial: FlowEvent, events: List[FlowEvent]) -> None:
        chain = EventChain(self.event_bus, deps)
        async for event in chain.execute(initial):
            events.append(event)

    async def _cancelled(
        self,
        deps: Dependencies,
        events: List[FlowEvent],
        initial: FlowEvent,
        error: Cancelled,
    ) -> AccessResult:
        context = events[-1].context if events else initial.context
        event = CancelledEvent(context=context, error=error)
        await self.event_bus.notify(event, deps)
        events.append(event)
        return _to_result(events)

    async def _send_raw(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Plain httpx request, bypassing the 402 handling."""
        return await super().request(method, url, **kwargs)

    @staticmethod
    async def _sleep_async(seconds: float):
        """Retry wait."""
        await asyncio.sleep(seconds)


def _last_state(events: List[FlowEvent]) -> Optional[str]:
    return events[-1].state.value if events else None


def _to_result(events: List[FlowEvent]) -> AccessResult:
    final = events[-1]
    context = final.context
    response = context.response
    result = AccessResult(
        state=final.state,
        status_code=response.status_code if response is not None else None,
        response=response,
        requirements=context.requirements,
        selected=context.selected,
        transaction_hash=context.transaction_hash,
        attempts=context.attempts,
        transitions=[e.state for e in events],
    )
    if isinstance(final, GrantedEvent):
        result.settlement = final.settlement
    elif isinstance(final, (DeniedEvent, CancelledEvent)):
        result.error = final.error
    return result
