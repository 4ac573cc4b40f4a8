from .apps import Http402Server
from .destinations import DestinationCache, DestinationResolver, PaymentMethods
from .facilitators import BaseFacilitator, LocalFacilitator, HTTPFacilitatorClient, FacilitatorVerificationResult

__all__ = [
    "Http402Server",
    "DestinationCache",
    "DestinationResolver",
    "PaymentMethods",
    "BaseFacilitator",
    "LocalFacilitator",
    "HTTPFacilitatorClient",
    "FacilitatorVerificationResult",
]
