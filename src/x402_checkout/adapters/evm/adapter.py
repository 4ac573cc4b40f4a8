"""
EVM Blockchain Adapter

Provides EVM blockchain operations for the x402 "exact" payment flow.
Pays ERC20 transfers on the client side and inspects them on the server side.

Key Features:
    - ERC20 `transfer` signing, broadcasting and receipt polling
    - Per-chain nonce serialization so concurrent payments never collide
    - Receipt-based verification of a transfer against payment requirements

Dependencies:
    - web3.py: For blockchain RPC interaction
    - eth_account: For transaction signing
"""

from typing import Dict, Optional, Union
import asyncio
import time

from web3 import AsyncWeb3
from eth_account import Account
from web3.exceptions import TransactionNotFound

from ...engine.exceptions import BlockchainInteractionError, ConfigurationError
from ...schemas.bases import VerificationStatus, TransactionStatus
from ...schemas.payments import PaymentRequirements
from ...utils import logger
from ..bases import AdapterFactory
from .ERC20_ABI import get_transfer_abi, TRANSFER_EVENT_TOPIC
from .constants import get_rpc_url, get_private_key_from_env, parse_caip2_eip155_chain_id
from .schemas import EVMTransactionConfirmation, EVMVerificationResult


#: Gas limit used when estimation fails (common when balance is 0).
_FALLBACK_TRANSFER_GAS: int = 100000


class EVMAdapter(AdapterFactory):
    """
    EVM Blockchain Adapter Implementation.

    The paying side needs a private key; the receiving side only inspects
    receipts and may run without one.

    Attributes:
        account: Signing account (None for verify-only adapters)
        wallet_address: Checksum-formatted account address (None for verify-only adapters)

    Environment Variables:
        - PRIVATE_KEY / EVM_PRIVATE_KEY: Paying wallet key, used when no key is passed
        - EVM_RPC_URL: RPC endpoint, used when no rpc_url is passed

    Example:
        adapter = EVMAdapter(private_key="0x...")
        confirmation = await adapter.transfer(requirements)
        if confirmation.is_success():
            print(confirmation.tx_hash)
    """

    namespace = "eip155"

    def __init__(
        self,
        private_key: Optional[str] = None,
        rpc_url: Optional[str] = None,
        request_timeout: int = 60,
        min_confirmations: int = 1,
        receipt_poll_interval: float = 2.0,
        receipt_max_attempts: int = 90,
        load_env_key: bool = True,
    ):
        """
        Initialize the adapter.

        Args:
            private_key: Paying wallet key (0x-prefixed hex). Falls back to the
                environment when `load_env_key` is True.
            rpc_url: RPC endpoint for every chain. Falls back to EVM_RPC_URL,
                then to the built-in public endpoint for the chain.
            request_timeout: RPC request timeout in seconds.
            min_confirmations: Blocks a transfer needs before verification succeeds.
            receipt_poll_interval: Seconds between receipt polls after broadcast.
            receipt_max_attempts: Receipt polls before giving up with TIMEOUT.
            load_env_key: Whether to read the key from the environment.
        """
        resolved_pk = private_key or (get_private_key_from_env() if load_env_key else None)
        self._resolved_pk = resolved_pk
        self._request_timeout = request_timeout
        self._rpc_url = rpc_url
        self._min_confirmations = max(1, min_confirmations)
        self._poll_interval = receipt_poll_interval
        self._max_attempts = receipt_max_attempts
        self._nonce_locks: Dict[int, asyncio.Lock] = {}

        if resolved_pk:
            self.account = Account.from_key(resolved_pk)
            self.wallet_address = AsyncWeb3.to_checksum_address(self.account.address)
        else:
            self.account = None
            self.wallet_address = None

    def _get_web3_instance(self, chain_id: int) -> AsyncWeb3:
        """
        Create an AsyncWeb3 instance for the specified chain.

        Raises:
            ConfigurationError: If no RPC endpoint is known for the chain
        """
        rpc_url = get_rpc_url(chain_id, self._rpc_url)

        if not rpc_url:
            raise ConfigurationError(
                f"No RPC endpoint for chain_id {chain_id}. "
                f"Pass rpc_url or set EVM_RPC_URL."
            )

        return AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(
            rpc_url,
            request_kwargs={"timeout": self._request_timeout}
        ))

    def _nonce_lock(self, chain_id: int) -> asyncio.Lock:
        lock = self._nonce_locks.get(chain_id)
        if lock is None:
            lock = self._nonce_locks[chain_id] = asyncio.Lock()
        return lock

    def get_wallet_address(self) -> str:
        """
        Get the adapter's wallet address.

        Raises:
            ConfigurationError: If the adapter has no private key
        """
        if not self.wallet_address:
            raise ConfigurationError("EVM adapter has no private key configured")
        return self.wallet_address

    # =========================================================================
    # Paying side
    # =========================================================================

    async def transfer(self, requirements: PaymentRequirements) -> EVMTransactionConfirmation:
        """
        Pay an ERC20 transfer satisfying `requirements` and wait for its receipt.

        The nonce is assigned and the transaction broadcast under a per-chain
        lock; confirmation polling happens outside it.

        Returns:
            EVMTransactionConfirmation: SUCCESS once mined with status 1, otherwise
                INVALID_TRANSACTION / NETWORK_ERROR / TIMEOUT / FAILED.

        Raises:
            ConfigurationError: If the adapter cannot sign or reach the chain
        """
        if self.account is None:
            raise ConfigurationError("Private key not provided. Set PRIVATE_KEY to pay.")

        chain_id = parse_caip2_eip155_chain_id(requirements.network)
        web3 = self._get_web3_instance(chain_id)
        started = time.monotonic()

        async with self._nonce_lock(chain_id):
            try:
                raw_transaction = await self._build_transfer_transaction(web3, requirements, chain_id)
            except Exception as e:
                return EVMTransactionConfirmation(
                    status=TransactionStatus.INVALID_TRANSACTION,
                    tx_hash="0x",
                    error_message=f"Failed to build transfer: {e}",
                )

            try:
                tx_hash = await web3.eth.send_raw_transaction(raw_transaction)
                tx_hash_hex = web3.to_hex(tx_hash)
            except Exception as e:
                return EVMTransactionConfirmation(
                    status=TransactionStatus.NETWORK_ERROR,
                    tx_hash="0x",
                    error_message=f"Failed to broadcast transaction: {str(e)}",
                )

        logger.info(f"Broadcast transfer {tx_hash_hex} on eip155:{chain_id}")
        confirmation = await self._await_confirmation(tx_hash_hex, web3)
        confirmation.execution_time = time.monotonic() - started
        return confirmation

    async def _build_transfer_transaction(
        self,
        web3: AsyncWeb3,
        requirements: PaymentRequirements,
        chain_id: int,
    ) -> bytes:
        """Build and sign `transfer(payTo, amount)` on the asset contract."""
        sender = self.wallet_address
        contract = web3.eth.contract(
            address=web3.to_checksum_address(requirements.asset),
            abi=get_transfer_abi(),
        )
        pay_to = web3.to_checksum_address(requirements.pay_to)

        tx_params: Dict[str, Union[int, str]] = {
            "chainId": chain_id,
            "from": sender,
            "nonce": await web3.eth.get_transaction_count(sender, "pending"),
        }

        # Gas estimation with 10% buffer
        try:
            gas_estimate = await contract.functions.transfer(
                pay_to, requirements.amount
            ).estimate_gas({"from": sender})
            tx_params["gas"] = int(gas_estimate * 1.1)
        except Exception:
            tx_params["gas"] = _FALLBACK_TRANSFER_GAS

        # EIP-1559 fees, legacy gas price as fallback
        try:
            fee_history = await web3.eth.fee_history(1, "latest", [25.0])
            base_fee = fee_history["baseFeePerGas"][-1]
            priority_fee = fee_history["reward"][0][0]
            tx_params["maxPriorityFeePerGas"] = priority_fee
            tx_params["maxFeePerGas"] = (base_fee * 2) + priority_fee
        except Exception:
            tx_params["gasPrice"] = await web3.eth.gas_price

        transaction = await contract.functions.transfer(
            pay_to, requirements.amount
        ).build_transaction(tx_params)
        signed_tx = self.account.sign_transaction(transaction)
        return signed_tx.raw_transaction

    async def _await_confirmation(self, tx_hash_hex: str, web3: AsyncWeb3) -> EVMTransactionConfirmation:
        """
        Poll for the receipt of a broadcast transaction.

        Polls every `receipt_poll_interval` seconds for at most
        `receipt_max_attempts` rounds.
        """
        receipt = None
        for _ in range(self._max_attempts):
            try:
                receipt = await web3.eth.get_transaction_receipt(tx_hash_hex)
                if receipt:
                    break
            except TransactionNotFound:
                pass  # still pending
            await self._sleep_async(self._poll_interval)

        if not receipt:
            return EVMTransactionConfirmation(
                status=TransactionStatus.TIMEOUT,
                tx_hash=tx_hash_hex,
                error_message="Transaction confirmation timed out",
            )

        gas_used = receipt["gasUsed"]
        transaction_fee = gas_used * receipt.get("effectiveGasPrice", 0)

        if receipt.get("status") == 1:
            return EVMTransactionConfirmation(
                status=TransactionStatus.SUCCESS,
                tx_hash=tx_hash_hex,
                block_number=receipt["blockNumber"],
                gas_used=gas_used,
                confirmations=1,
                transaction_fee=transaction_fee,
                from_address=receipt.get("from"),
                to_address=receipt.get("to"),
            )
        return EVMTransactionConfirmation(
            status=TransactionStatus.FAILED,
            tx_hash=tx_hash_hex,
            block_number=receipt["blockNumber"],
            gas_used=gas_used,
            transaction_fee=transaction_fee,
            error_message="Transaction reverted on-chain",
        )

    @staticmethod
    async def _sleep_async(seconds: float):
        """Simple async sleep utility."""
        await asyncio.sleep(seconds)

    # =========================================================================
    # Receiving side
    # =========================================================================

    async def verify_transfer(
        self,
        tx_hash: str,
        requirements: PaymentRequirements,
    ) -> EVMVerificationResult:
        """
        Check that `tx_hash` carries an ERC20 Transfer of `requirements.asset`
        to `requirements.pay_to` of at least `requirements.amount`.

        A transaction that is unknown or has fewer than `min_confirmations`
        confirmations is reported as PENDING so the payer retries.
        """
        try:
            chain_id = parse_caip2_eip155_chain_id(requirements.network)
        except ValueError as e:
            return EVMVerificationResult(
                status=VerificationStatus.NETWORK_MISMATCH,
                is_valid=False,
                message=str(e),
                tx_hash=tx_hash,
            )
        web3 = self._get_web3_instance(chain_id)

        try:
            receipt = await web3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            receipt = None
        except Exception as e:
            return EVMVerificationResult(
                status=VerificationStatus.BLOCKCHAIN_ERROR,
                is_valid=False,
                message=f"Failed to fetch receipt: {e}",
                tx_hash=tx_hash,
            )

        if not receipt:
            return EVMVerificationResult(
                status=VerificationStatus.PENDING,
                is_valid=False,
                message="Transaction not yet visible on-chain",
                tx_hash=tx_hash,
            )

        if receipt.get("status") != 1:
            return EVMVerificationResult(
                status=VerificationStatus.TRANSACTION_FAILED,
                is_valid=False,
                message="Transaction reverted on-chain",
                tx_hash=tx_hash,
            )

        if self._min_confirmations > 1:
            try:
                current_block = await web3.eth.block_number
            except Exception as e:
                raise BlockchainInteractionError(f"Failed to read block number on eip155:{chain_id}: {e}") from e
            confirmations = current_block - receipt["blockNumber"] + 1
            if confirmations < self._min_confirmations:
                return EVMVerificationResult(
                    status=VerificationStatus.PENDING,
                    is_valid=False,
                    message=f"{confirmations}/{self._min_confirmations} confirmations",
                    tx_hash=tx_hash,
                    blockchain_state={"block_number": receipt["blockNumber"], "confirmations": confirmations},
                )

        return self._match_transfer_logs(tx_hash, receipt, requirements)

    @staticmethod
    def _match_transfer_logs(tx_hash: str, receipt, requirements: PaymentRequirements) -> EVMVerificationResult:
        asset = requirements.asset.lower()
        pay_to = requirements.pay_to.lower()
        payer = receipt.get("from")
        best_amount = None
        saw_asset = False
        saw_destination = False

        for log in receipt.get("logs", []):
            topics = log.get("topics") or []
            if len(topics) < 3 or AsyncWeb3.to_hex(topics[0]).lower() != TRANSFER_EVENT_TOPIC:
                continue
            if str(log.get("address", "")).lower() != asset:
                continue
            saw_asset = True
            receiver = "0x" + bytes(topics[2])[-20:].hex()
            if receiver.lower() != pay_to:
                continue
            saw_destination = True
            value = int.from_bytes(bytes(log.get("data") or b""), "big")
            if best_amount is None or value > best_amount:
                best_amount = value

        if not saw_asset:
            return EVMVerificationResult(
                status=VerificationStatus.WRONG_ASSET,
                is_valid=False,
                message=f"No Transfer of {requirements.asset} in transaction",
                tx_hash=tx_hash,
                payer=payer,
            )
        if not saw_destination:
            return EVMVerificationResult(
                status=VerificationStatus.INVALID_DESTINATION,
                is_valid=False,
                message=f"Transfer does not pay {requirements.pay_to}",
                tx_hash=tx_hash,
                payer=payer,
            )
        if best_amount < requirements.amount:
            return EVMVerificationResult(
                status=VerificationStatus.INSUFFICIENT_AMOUNT,
                is_valid=False,
                message=f"Transferred {best_amount}, required {requirements.amount}",
                tx_hash=tx_hash,
                payer=payer,
                receiver=requirements.pay_to,
                transferred_amount=best_amount,
            )
        return EVMVerificationResult(
            status=VerificationStatus.SUCCESS,
            is_valid=True,
            message="Transfer satisfies payment requirements",
            tx_hash=tx_hash,
            payer=payer,
            receiver=requirements.pay_to,
            transferred_amount=best_amount,
            blockchain_state={"block_number": receipt.get("blockNumber")},
        )
