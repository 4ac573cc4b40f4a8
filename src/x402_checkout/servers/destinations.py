"""
Payment destinations and accepted payment methods of a resource server.

A payment method's `payTo` is either a fixed address or an async resolver
creating a fresh deposit address per purchase. Resolved addresses are
remembered per resource for a bounded time so that the proof of a purchase
can be matched against the destination it was issued for.

Reuse rule: a destination asserted by a proof is reused only when this
server issued it for the same resource and it has not expired. Anything else
triggers a fresh resolution, and the proof then fails destination matching.
"""

import inspect
import time
from collections import OrderedDict
from decimal import Decimal, InvalidOperation
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

from ..adapters.evm.constants import get_chain_config
from ..engine.exceptions import ConfigurationError
from ..schemas.payments import PaymentProof, PaymentRequirements
from ..utils import logger


PayToResolver = Callable[[str], Awaitable[str]]
PayTo = Union[str, PayToResolver]

DEFAULT_DESTINATION_TTL = 900.0
DEFAULT_DESTINATION_CACHE_SIZE = 1024


class DestinationCache:
    """
    Bounded record of destinations issued per resource.

    Entries expire `ttl` seconds after they were issued. When more than
    `maxsize` entries are held, the oldest ones are evicted first.
    """

    def __init__(
        self,
        maxsize: int = DEFAULT_DESTINATION_CACHE_SIZE,
        ttl: float = DEFAULT_DESTINATION_TTL,
        clock: Callable[[], float] = time.monotonic,
    ):
        if maxsize < 1:
            raise ValueError("maxsize must be at least 1")
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        self.maxsize = maxsize
        self.ttl = ttl
        self._clock = clock
        self._entries: "OrderedDict[Tuple[str, str], float]" = OrderedDict()

    @staticmethod
    def _key(resource: str, address: str) -> Tuple[str, str]:
        return resource, address.lower()

    def remember(self, resource: str, address: str) -> None:
        key = self._key(resource, address)
        self._entries.pop(key, None)
        self._entries[key] = self._clock() + self.ttl
        while len(self._entries) > self.maxsize:
            self._entries.popitem(last=False)

    def is_issued(self, resource: str, address: str) -> bool:
        """True if `address` was issued for `resource` and has not expired."""
        key = self._key(resource, address)
        expires_at = self._entries.get(key)
        if expires_at is None:
            return False
        if expires_at <= self._clock():
            del self._entries[key]
            return False
        return True

    def purge(self) -> None:
        now = self._clock()
        for key in [k for k, expires_at in self._entries.items() if expires_at <= now]:
            del self._entries[key]

    def __len__(self) -> int:
        return len(self._entries)


class DestinationResolver:
    """Resolves the `payTo` address of one payment method."""

    def __init__(self, pay_to: PayTo, cache: DestinationCache):
        if isinstance(pay_to, str):
            if not pay_to:
                raise ConfigurationError("payTo must not be empty")
        elif not (inspect.iscoroutinefunction(pay_to) or inspect.iscoroutinefunction(getattr(pay_to, "__call__", None))):
            raise ConfigurationError("payTo must be an address or an async resolver")
        self._pay_to = pay_to
        self._cache = cache

    @property
    def is_static(self) -> bool:
        return isinstance(self._pay_to, str)

    async def resolve(self, resource: str, asserted: Optional[str] = None) -> str:
        """
        Destination to quote for `resource`.

        Args:
            resource: Identity of the protected resource.
            asserted: Destination named by an incoming proof, if any.
        """
        if self.is_static:
            return self._pay_to

        if asserted and self._cache.is_issued(resource, asserted):
            return asserted

        address = await self._pay_to(resource)
        if not address:
            raise ConfigurationError(f"payTo resolver returned no address for {resource}")
        self._cache.remember(resource, address)
        logger.debug(f"Issued destination {address} for {resource}")
        return address


def price_to_terms(network: str, price: Any) -> Dict[str, Any]:
    """
    Asset and amount for a USD `price` such as "$0.50", paid in the USDC
    known for `network`.

    Raises:
        ConfigurationError: If the network has no known USDC or the price
            is not a positive amount representable in its decimals.
    """
    chain = get_chain_config(network) if isinstance(network, str) and network.startswith("eip155:") else None
    usdc = chain.assets.get("USDC") if chain else None
    if usdc is None:
        raise ConfigurationError(f"No known USDC on {network}; give asset and amount instead of price")

    try:
        value = Decimal(str(price).strip().lstrip("$").replace(",", ""))
    except InvalidOperation as e:
        raise ConfigurationError(f"Invalid price {price!r}") from e
    if not value.is_finite() or value <= 0:
        raise ConfigurationError(f"Price must be a positive amount, got {price!r}")

    units = value.scaleb(usdc.decimals)
    if units != units.to_integral_value():
        raise ConfigurationError(f"Price {price!r} has more than {usdc.decimals} decimals")
    return {"asset": usdc.address, "amount": int(units)}


class PaymentMethods:
    """
    Ordered accepted payment methods; the first registered is listed first.

    Example:
        methods = PaymentMethods()
        methods.add({
            "scheme": "exact",
            "network": "eip155:84532",
            "asset": "0x036CbD53842c5426634e7929541eC2318f3dCF7e",
            "amount": "500000",
            "payTo": create_deposit_address,
        })
        requirements = await methods.requirements_for("/api/paid")
    """

    def __init__(self, cache: Optional[DestinationCache] = None):
        self.cache = cache or DestinationCache()
        self._methods: List[Tuple[Dict[str, Any], DestinationResolver]] = []

    def add(self, method: Union[PaymentRequirements, Dict[str, Any]], pay_to: Optional[PayTo] = None) -> None:
        """
        Register a payment method.

        Args:
            method: Requirements model or dict; in a dict, `payTo` may be an
                async resolver instead of an address. Without `amount`, a USD
                `price` such as "$0.50" is charged in the network's USDC.
            pay_to: Overrides the method's destination.

        Raises:
            ConfigurationError: If the method is not a valid payment requirement.
        """
        if isinstance(method, PaymentRequirements):
            template = method.model_dump(by_alias=True, exclude_none=True)
        else:
            template = dict(method)

        if pay_to is None:
            pay_to = template.pop("payTo", None) or template.pop("pay_to", None)
        else:
            template.pop("payTo", None)
            template.pop("pay_to", None)
        if pay_to is None:
            raise ConfigurationError("Payment method has no payTo")

        if template.get("amount") is None and template.get("price") is not None:
            terms = price_to_terms(template.get("network"), template["price"])
            asset = template.get("asset")
            if asset is not None and asset.lower() != terms["asset"].lower():
                raise ConfigurationError("A price is paid in USDC; give amount together with any other asset")
            template.update(terms)

        resolver = DestinationResolver(pay_to, self.cache)
        try:
            # Validate the rest of the terms up front with a placeholder address.
            PaymentRequirements.model_validate({**template, "payTo": "0x0"})
        except ValueError as e:
            raise ConfigurationError(f"Invalid payment method: {e}") from e

        self._methods.append((template, resolver))

    def __len__(self) -> int:
        return len(self._methods)

    async def requirements_for(self, resource: str, asserted: Optional[str] = None) -> List[PaymentRequirements]:
        """Build the accepted options for `resource`, resolving destinations."""
        if not self._methods:
            raise ConfigurationError("No payment method registered")
        return [
            PaymentRequirements.model_validate({**template, "payTo": await resolver.resolve(resource, asserted)})
            for template, resolver in self._methods
        ]

    async def match(self, resource: str, proof: PaymentProof) -> Optional[PaymentRequirements]:
        """
        Requirements answered by `proof`, or None if no method matches.

        Methods are matched on scheme and network, then on the asset echoed in
        the proof when it carries one.
        """
        candidates = [
            (template, resolver) for template, resolver in self._methods
            if str(template.get("scheme", "")).lower() == proof.scheme.lower()
            and template.get("network") == proof.network
        ]
        if proof.accepted is not None:
            same_asset = [
                c for c in candidates
                if str(c[0].get("asset", "")).lower() == proof.accepted.asset.lower()
            ]
            candidates = same_asset or candidates
        if not candidates:
            return None

        template, resolver = candidates[0]
        destination = await resolver.resolve(resource, proof.destination)
        return PaymentRequirements.model_validate({**template, "payTo": destination})
