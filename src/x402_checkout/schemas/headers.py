"""
Challenge codec for x402 payment headers.

Payment documents travel as base64(JSON) header values:

    Payment-Required:    <base64>
    Authorization:       <SchemeToken> <base64>
    Authentication-Info: <base64>

Producers are inconsistent about the scheme token, so decoding accepts values
with and without it.
"""

import json
from typing import Any, Dict, Optional, Tuple, Union

from pydantic import BaseModel

from ..engine.exceptions import MalformedHeader
from ..utils import b64decode_text, b64encode_text, canonical_json, logger


PAYMENT_REQUIRED_HEADER = "Payment-Required"
AUTHORIZATION_HEADER = "Authorization"
AUTHENTICATION_INFO_HEADER = "Authentication-Info"
# Emitted by some x402 servers instead of Authentication-Info.
PAYMENT_RESPONSE_HEADER = "Payment-Response"

Document = Dict[str, Any]


def _as_document(document: Union[BaseModel, Document]) -> Document:
    if isinstance(document, BaseModel):
        return document.model_dump(mode="json", by_alias=True, exclude_none=True)
    return document


def encode_header(document: Union[BaseModel, Document]) -> str:
    """
    Serialize a payment document into a header value.

    Args:
        document: A pydantic model (dumped by alias) or a plain dict.

    Returns:
        Standard base64 of the compact JSON, without whitespace or newlines.
    """
    return b64encode_text(canonical_json(_as_document(document)))


def split_scheme(raw: str) -> Tuple[Optional[str], str]:
    """
    Split `"<Scheme> <base64>"` into its token and payload.

    Base64 never contains spaces, so anything before the first space is the
    scheme token. Values without a space are returned as a bare payload.
    """
    value = raw.strip()
    if " " in value:
        token, payload = value.split(" ", 1)
        return token, payload.strip()
    return None, value


def decode_header(raw: Optional[str]) -> Document:
    """
    Decode a payment header value into its JSON document.

    Args:
        raw: Header value, optionally prefixed with a scheme token.

    Returns:
        The decoded JSON object.

    Raises:
        MalformedHeader: If the value is empty, not base64, not UTF-8 or
            not a JSON object.
    """
    if raw is None or not raw.strip():
        raise MalformedHeader("Empty payment header", raw=raw)

    _, payload = split_scheme(raw)
    if not payload:
        raise MalformedHeader("Payment header has a scheme token but no payload", raw=raw)

    decoded = b64decode_text(payload)
    if decoded is None:
        raise MalformedHeader("Payment header is not valid base64", raw=raw)

    try:
        document = json.loads(decoded.decode("utf-8"))
    except UnicodeDecodeError as e:
        raise MalformedHeader(f"Payment header is not UTF-8: {e}", raw=raw) from e
    except json.JSONDecodeError as e:
        raise MalformedHeader(f"Payment header is not valid JSON: {e}", raw=raw) from e

    if not isinstance(document, dict):
        raise MalformedHeader(
            f"Payment header must hold a JSON object, got {type(document).__name__}",
            raw=raw,
        )
    return document


def try_decode_header(raw: Optional[str], header_name: str = "payment header") -> Optional[Document]:
    """
    Decode for inspection only: failures are logged and swallowed.

    Use this for diagnostics and speculative reuse, never where the decoded
    document drives a protocol decision.
    """
    if raw is None:
        return None
    try:
        return decode_header(raw)
    except MalformedHeader as e:
        logger.warning(f"Ignoring undecodable {header_name}: {e}")
        return None


def scheme_token(scheme: str) -> str:
    """`exact` -> `Exact`."""
    return scheme[:1].upper() + scheme[1:]


def encode_authorization(proof: Union[BaseModel, Document], token: Optional[str] = None) -> str:
    """
    Build an `Authorization` header value for a payment proof.

    Args:
        proof: PaymentProof model or document.
        token: Scheme token; defaults to the proof's scheme, capitalized.
    """
    document = _as_document(proof)
    if token is None:
        scheme = document.get("scheme")
        if not scheme:
            raise ValueError("Cannot derive the scheme token: proof has no scheme")
        token = scheme_token(scheme)
    return f"{token} {encode_header(document)}"
