"""
Shared helpers: canonical JSON, base64 helpers and the package logger.
"""

import base64
import binascii
import json
import logging
import sys
import traceback
from typing import Any, Dict, Optional


logger = logging.getLogger("x402_checkout")

_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def setup_logger(level: str | int = "INFO", stream=None) -> logging.Logger:
    """
    Attach a stream handler to the package logger.

    Safe to call more than once; the handler is only added the first time.

    Args:
        level: Logging level name or number.
        stream: Output stream (default: stderr).

    Returns:
        The configured package logger.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    if not any(getattr(h, "_x402_checkout", False) for h in logger.handlers):
        handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(logging.Formatter(_LOG_FORMAT))
        handler._x402_checkout = True
        logger.addHandler(handler)
    logger.setLevel(level)
    return logger


def error_context() -> str:
    """Return `file:line in function` of the exception currently being handled."""
    _, _, tb = sys.exc_info()
    if tb is None:
        return "<no active exception>"
    frame = traceback.extract_tb(tb)[-1]
    return f"{frame.filename}:{frame.lineno} in {frame.name}"


def canonical_json(data: Dict[str, Any]) -> str:
    """
    RFC8785-ish: sort_keys + no whitespace
    """
    return json.dumps(data, separators=(",", ":"), sort_keys=True, ensure_ascii=False)


def b64encode_text(data: str) -> str:
    return base64.b64encode(data.encode("utf-8")).decode("ascii")


def b64decode_text(data: str) -> Optional[bytes]:
    """
    Decode standard or url-safe base64, tolerating stripped padding.

    Returns None when `data` is not base64 in either alphabet.
    """
    padded = data + "=" * (-len(data) % 4)
    try:
        return base64.b64decode(padded, validate=True)
    except (binascii.Error, ValueError):
        pass
    try:
        return base64.b64decode(padded, altchars=b"-_", validate=True)
    except (binascii.Error, ValueError):
        return None
