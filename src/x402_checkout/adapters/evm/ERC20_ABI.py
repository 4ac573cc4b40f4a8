"""
ERC20 Smart Contract ABI Module

Minimal ABI fragments for paying with, and verifying payments in, ERC20
tokens.

Usage:
    from ERC20_ABI import get_transfer_abi, TRANSFER_EVENT_TOPIC

    contract = web3.eth.contract(address=token_address, abi=get_transfer_abi())
    tx = await contract.functions.transfer(pay_to, amount).build_transaction(params)
"""

from typing import Dict, Any, List

from eth_utils import keccak


#: topic0 of `Transfer(address indexed from, address indexed to, uint256 value)`.
TRANSFER_EVENT_TOPIC: str = "0x" + keccak(text="Transfer(address,address,uint256)").hex()


def get_transfer_abi() -> List[Dict[str, Any]]:
    """
    Get ABI for ERC20 `transfer(to, amount)` and the `Transfer` event.

    Returns:
        List[Dict[str, Any]]: ABI containing `transfer` and `Transfer`.
    """
    return [
        {
            "name": "transfer",
            "type": "function",
            "stateMutability": "nonpayable",
            "inputs": [
                {"name": "to", "type": "address"},
                {"name": "amount", "type": "uint256"},
            ],
            "outputs": [{"name": "", "type": "bool"}],
        },
        {
            "name": "Transfer",
            "type": "event",
            "anonymous": False,
            "inputs": [
                {"name": "from", "type": "address", "indexed": True},
                {"name": "to", "type": "address", "indexed": True},
                {"name": "value", "type": "uint256", "indexed": False},
            ],
        },
    ]
