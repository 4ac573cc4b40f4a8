from .adapters_hub import AdapterHub
from .bases import AdapterFactory
from .schemes import PaymentScheme, ExactEvmScheme, SchemeRegistry
from .evm import (
    EVMAdapter,
    EVMVerificationResult,
    EVMTransactionConfirmation,
)

__all__ = [
    "AdapterHub",
    "AdapterFactory",
    "PaymentScheme",
    "ExactEvmScheme",
    "SchemeRegistry",
    "EVMAdapter",
    "EVMVerificationResult",
    "EVMTransactionConfirmation",
]
