from .adapter import EVMAdapter
from .schemas import (
    EVMVerificationResult,
    EVMTransactionConfirmation,
)
from .constants import (
    get_chain_config,
    get_rpc_url,
    get_private_key_from_env,
    parse_caip2_eip155_chain_id,
)

__all__ = [
    "EVMAdapter",
    "EVMVerificationResult",
    "EVMTransactionConfirmation",
    "get_chain_config",
    "get_rpc_url",
    "get_private_key_from_env",
    "parse_caip2_eip155_chain_id",
]
