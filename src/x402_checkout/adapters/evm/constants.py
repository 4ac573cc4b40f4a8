"""
EVM Chain Configuration Management

Provides unified access to EVM chain configurations and assets.
Includes utilities for CAIP-2 parsing, RPC URL selection and environment-aware
private key handling.
"""

import os
from typing import Dict, Optional

from pydantic import BaseModel, Field


class EvmAssetConfig(BaseModel):
    """Token asset configuration."""
    symbol: str
    address: str = Field(..., description="Token contract address")
    name: str = Field(..., description="Token name")
    decimals: int = Field(..., description="Token decimals")


class EvmChainConfig(BaseModel):
    """EVM blockchain network configuration."""
    caip2: str
    chain_id: int
    name: str
    public_rpc_url: str = Field(..., description="Public RPC endpoint")
    explorer_url: str = Field(..., description="Block explorer URL")
    assets: Dict[str, EvmAssetConfig] = Field(default_factory=dict, description="Supported assets")


# Public endpoints only. Set EVM_RPC_URL (or pass rpc_url) for anything serious.
_EVM_CHAINS_DATA: Dict = {
    "eip155:1": {
      "name": "Ethereum Mainnet",
      "public_rpc_url": "https://ethereum-rpc.publicnode.com",
      "explorer_url": "https://etherscan.io",
      "assets": {
        "USDC": {
          "address": "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48",
          "name": "USD Coin",
          "decimals": 6,
        },
      }
    },
    "eip155:8453": {
      "name": "Base Mainnet",
      "public_rpc_url": "https://mainnet.base.org",
      "explorer_url": "https://basescan.org",
      "assets": {
        "USDC": {
          "address": "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913",
          "name": "USD Coin",
          "decimals": 6,
        },
      }
    },
    "eip155:84532": {
      "name": "Base Sepolia",
      "public_rpc_url": "https://sepolia.base.org",
      "explorer_url": "https://sepolia.basescan.org",
      "assets": {
        "USDC": {
          "address": "0x036CbD53842c5426634e7929541eC2318f3dCF7e",
          "name": "USDC",
          "decimals": 6,
        },
      }
    },
    "eip155:11155111": {
      "name": "Sepolia Testnet",
      "public_rpc_url": "https://rpc.sepolia.org",
      "explorer_url": "https://sepolia.etherscan.io",
      "assets": {
        "USDC": {
          "address": "0x1c7D4B196Cb0C7B01d743Fbc6116a902379C7238",
          "name": "USD Coin",
          "decimals": 6,
        },
      }
    },
}


def parse_caip2_eip155_chain_id(caip2: str) -> int:
    """
    Parses a CAIP-2 identifier (e.g., 'eip155:1') into an integer chain ID.

    Args:
        caip2 (str): The CAIP-2 string to parse.

    Returns:
        int: The extracted EIP-155 chain ID.

    Raises:
        ValueError: If the input format is invalid, the prefix is missing,
                    or the chain ID is not a positive integer.
    """
    if not isinstance(caip2, str) or not caip2.strip():
        raise ValueError(f"Invalid input type: Expected non-empty string, got {type(caip2).__name__}")

    parts = caip2.strip().split(":")

    if len(parts) != 2 or parts[0] != "eip155":
        raise ValueError(
            f"Invalid CAIP-2 format: '{caip2}'. "
            f"Expected format 'eip155:<chain_id>'"
        )

    try:
        chain_id = int(parts[1])
    except (ValueError, TypeError) as exc:
        raise ValueError(
            f"Failed to parse chain ID from '{caip2}'. "
            f"The segment '{parts[1]}' is not a valid integer."
        ) from exc

    if chain_id <= 0:
        raise ValueError(
            f"Invalid chain ID in '{caip2}': {chain_id}. "
            f"Chain ID must be a positive integer."
        )

    return chain_id


def get_chain_config(caip2: str) -> Optional[EvmChainConfig]:
    """Return the built-in configuration for `caip2`, or None if unknown."""
    data = _EVM_CHAINS_DATA.get(caip2)
    if data is None:
        return None
    assets = {
        symbol: EvmAssetConfig(symbol=symbol, **asset)
        for symbol, asset in data.get("assets", {}).items()
    }
    return EvmChainConfig(
        caip2=caip2,
        chain_id=parse_caip2_eip155_chain_id(caip2),
        name=data["name"],
        public_rpc_url=data["public_rpc_url"],
        explorer_url=data["explorer_url"],
        assets=assets,
    )


def get_rpc_url(chain_id: int, override: Optional[str] = None) -> Optional[str]:
    """
    Resolve the RPC endpoint for `chain_id`.

    Precedence: explicit `override`, then the EVM_RPC_URL environment
    variable, then the built-in public endpoint.
    """
    if override:
        return override
    env_url = os.getenv("EVM_RPC_URL")
    if env_url:
        return env_url
    config = get_chain_config(f"eip155:{chain_id}")
    return config.public_rpc_url if config else None


def get_private_key_from_env() -> Optional[str]:
    """
    Load the paying wallet's private key from environment variables.

    Environment Variables:
        - PRIVATE_KEY: Wallet private key, with or without 0x prefix
        - EVM_PRIVATE_KEY: Accepted as a fallback

    Returns:
        str: 0x-prefixed private key, or None if not configured
    """
    key = os.getenv("PRIVATE_KEY") or os.getenv("EVM_PRIVATE_KEY")
    if not key:
        return None
    key = key.strip()
    return key if key.startswith("0x") else f"0x{key}"
