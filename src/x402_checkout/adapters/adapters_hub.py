"""
Adapter Hub - Unified Blockchain Adapter Gateway

Routes payment operations to the chain adapter serving the CAIP-2 namespace
of the payment requirements ("eip155" -> EVMAdapter).

The hub is the immutable signing capability shared by concurrent
operations; adapters are registered once at construction time.

Architecture:
    AdapterHub (you are here)
        └── EVMAdapter   (eip155)
"""

from typing import Dict, Iterable, Optional

from ..engine.exceptions import UnsupportedScheme
from ..schemas.bases import BaseTransactionConfirmation, BaseVerificationResult
from ..schemas.payments import PaymentRequirements
from .bases import AdapterFactory
from .evm.adapter import EVMAdapter


class AdapterHub:
    """
    Unified Blockchain Adapter Hub.

    Example:
        hub = AdapterHub(evm_private_key="0x...")
        confirmation = await hub.transfer(requirements)
    """

    def __init__(
        self,
        evm_private_key: Optional[str] = None,
        request_timeout: int = 60,
        adapters: Optional[Iterable[AdapterFactory]] = None,
        **evm_options,
    ):
        """
        Initialize the hub.

        Args:
            evm_private_key: Private key for the default EVM adapter.
            request_timeout: RPC timeout (seconds) for the default EVM adapter.
            adapters: Explicit adapters; replaces the default EVM adapter.
            **evm_options: Extra EVMAdapter keyword arguments (rpc_url, ...).
        """
        if adapters is None:
            adapters = [EVMAdapter(private_key=evm_private_key, request_timeout=request_timeout, **evm_options)]

        self._adapter_factories: Dict[str, AdapterFactory] = {}
        for adapter in adapters:
            if not adapter.namespace:
                raise TypeError(f"{type(adapter).__name__} does not declare a CAIP-2 namespace")
            self._adapter_factories[adapter.namespace] = adapter

    def get_adapter(self, requirements: PaymentRequirements) -> AdapterFactory:
        """
        Resolve the adapter for the network named by `requirements`.

        Raises:
            UnsupportedScheme: If no adapter serves the namespace
        """
        adapter = self._adapter_factories.get(requirements.namespace)
        if adapter is None:
            raise UnsupportedScheme(f"No adapter registered for network {requirements.network}")
        return adapter

    def supports(self, network: str) -> bool:
        return network.split(":", 1)[0] in self._adapter_factories

    async def transfer(self, requirements: PaymentRequirements) -> BaseTransactionConfirmation:
        return await self.get_adapter(requirements).transfer(requirements)

    async def verify_transfer(self, tx_hash: str, requirements: PaymentRequirements) -> BaseVerificationResult:
        return await self.get_adapter(requirements).verify_transfer(tx_hash, requirements)

    def get_wallet_address(self, network: str) -> str:
        adapter = self._adapter_factories.get(network.split(":", 1)[0])
        if adapter is None:
            raise UnsupportedScheme(f"No adapter registered for network {network}")
        return adapter.get_wallet_address()
