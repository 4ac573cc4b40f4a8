"""
Client module for x402 payments.

Provides an httpx client that discovers payment terms, pays them on-chain
and retries with the payment proof until the resource is granted.
"""

from .http_client import Http402Client
from .flows import setup_event_bus, parse_payment_required, read_settlement

__all__ = ["Http402Client", "setup_event_bus", "parse_payment_required", "read_settlement"]
