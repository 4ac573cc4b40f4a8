"""
Environment configuration.

Values are read from the process environment after loading a `.env` file
with python-dotenv, then validated into a `Settings` model.

Environment Variables:
    - PRIVATE_KEY / EVM_PRIVATE_KEY: Paying wallet key
    - EVM_RPC_URL: RPC endpoint overriding the built-in public ones
    - X402_NETWORK_ID: CAIP-2 network of the resource server, e.g. "eip155:84532"
    - X402_FACILITATOR_URL: Remote facilitator; local verification when unset
    - X402_PAY_TO / X402_ASSET / X402_AMOUNT: Terms quoted by the resource server
    - X402_RETRY_INTERVAL: Seconds between verification attempts (default 2)
    - X402_MAX_VERIFY_ATTEMPTS: Authorized requests at most (default 5)
    - X402_TARGET_URL: Default URL for the buyer CLI
"""

import os
from typing import Any, Dict, Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

from .engine.exceptions import ConfigurationError
from .schemas.payments import TokenAmount, validate_caip2


DEFAULT_TARGET_URL = "https://x402-demo-omega.vercel.app/api/paid"

_ENV_FIELDS = {
    "rpc_url": "EVM_RPC_URL",
    "network_id": "X402_NETWORK_ID",
    "facilitator_url": "X402_FACILITATOR_URL",
    "pay_to": "X402_PAY_TO",
    "asset": "X402_ASSET",
    "amount": "X402_AMOUNT",
    "retry_interval": "X402_RETRY_INTERVAL",
    "max_verify_attempts": "X402_MAX_VERIFY_ATTEMPTS",
    "target_url": "X402_TARGET_URL",
}


class Settings(BaseModel):
    """Validated runtime configuration."""

    private_key: Optional[str] = None
    rpc_url: Optional[str] = None
    network_id: Optional[str] = None
    facilitator_url: Optional[str] = None
    pay_to: Optional[str] = None
    asset: Optional[str] = None
    amount: Optional[TokenAmount] = None
    retry_interval: float = Field(default=2.0, ge=0)
    max_verify_attempts: int = Field(default=5, ge=1)
    target_url: str = DEFAULT_TARGET_URL

    @field_validator("network_id")
    @classmethod
    def _check_network(cls, value: Optional[str]) -> Optional[str]:
        return validate_caip2(value) if value is not None else None

    @field_validator("private_key")
    @classmethod
    def _normalize_key(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        return value if value.startswith("0x") else f"0x{value}"

    @classmethod
    def from_env(
        cls,
        env_file: Optional[str] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "Settings":
        """
        Build settings from the environment.

        Args:
            env_file: `.env` file to load first (default: search from the
                working directory). Existing variables are never overridden.
            environ: Mapping to read instead of `os.environ`; no `.env` file
                is loaded in that case.

        Raises:
            ConfigurationError: If a variable holds an invalid value.
        """
        if environ is None:
            load_dotenv(env_file, override=False)
            environ = os.environ

        values: Dict[str, Any] = {}
        key = environ.get("PRIVATE_KEY") or environ.get("EVM_PRIVATE_KEY")
        if key:
            values["private_key"] = key
        for field, variable in _ENV_FIELDS.items():
            raw = environ.get(variable)
            if raw is not None and raw.strip() != "":
                values[field] = raw.strip()

        try:
            return cls.model_validate(values)
        except ValidationError as e:
            problems = "; ".join(
                f"{_variable_for(err['loc'][0])}: {err['msg']}" for err in e.errors()
            )
            raise ConfigurationError(f"Invalid configuration: {problems}") from e

    def payment_method(self) -> Dict[str, Any]:
        """
        Terms a resource server quotes from this configuration.

        Raises:
            ConfigurationError: If a required variable is missing.
        """
        missing = [
            _ENV_FIELDS[name] for name in ("network_id", "pay_to", "asset", "amount")
            if getattr(self, name) is None
        ]
        if missing:
            raise ConfigurationError(f"Missing env var(s): {', '.join(missing)}")
        return {
            "scheme": "exact",
            "network": self.network_id,
            "asset": self.asset,
            "payTo": self.pay_to,
            "amount": self.amount,
        }


def _variable_for(field: Any) -> str:
    if field == "private_key":
        return "PRIVATE_KEY"
    return _ENV_FIELDS.get(field, str(field))
