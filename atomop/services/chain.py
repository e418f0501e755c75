"""On-chain collaborators backed by web3.

Read-only calls are retried on transient transport errors. State-changing
transactions are sent exactly once: resending a fund-moving transaction
without an idempotency key can double-spend.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, TypeVar

from eth_account import Account
from eth_account.signers.local import LocalAccount
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential_jitter
from web3 import Web3
from web3.exceptions import ContractLogicError

from atomop.config import Settings, get_settings
from atomop.data.models import OperationResult, PoolKey, PositionInfo
from atomop.errors import (
    ExternalExecutionFailed,
    InvalidParameters,
    OutcomeUnknown,
    UnknownPosition,
)
from atomop.utils.addresses import NATIVE_CURRENCY, normalize_address

logger = logging.getLogger(__name__)

T = TypeVar("T")

POOL_KEY_COMPONENTS = [
    {"name": "currency0", "type": "address"},
    {"name": "currency1", "type": "address"},
    {"name": "fee", "type": "uint24"},
    {"name": "tickSpacing", "type": "int24"},
    {"name": "hooks", "type": "address"},
]

POSITION_MANAGER_ABI = [
    {
        "inputs": [
            {"name": "unlockData", "type": "bytes"},
            {"name": "deadline", "type": "uint256"},
        ],
        "name": "modifyLiquidities",
        "outputs": [],
        "stateMutability": "payable",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "nextTokenId",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [{"name": "id", "type": "uint256"}],
        "name": "ownerOf",
        "outputs": [{"name": "owner", "type": "address"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [{"name": "tokenId", "type": "uint256"}],
        "name": "getPoolAndPositionInfo",
        "outputs": [
            {"name": "poolKey", "type": "tuple", "components": POOL_KEY_COMPONENTS},
            {"name": "info", "type": "uint256"},
        ],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [{"name": "tokenId", "type": "uint256"}],
        "name": "getPositionLiquidity",
        "outputs": [{"name": "liquidity", "type": "uint128"}],
        "stateMutability": "view",
        "type": "function",
    },
]

ERC20_ABI = [
    {
        "inputs": [
            {"name": "to", "type": "address"},
            {"name": "value", "type": "uint256"},
        ],
        "name": "transfer",
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [
            {"name": "from", "type": "address"},
            {"name": "to", "type": "address"},
            {"name": "value", "type": "uint256"},
        ],
        "name": "transferFrom",
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [
            {"name": "spender", "type": "address"},
            {"name": "value", "type": "uint256"},
        ],
        "name": "approve",
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [{"name": "account", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [
            {"name": "owner", "type": "address"},
            {"name": "spender", "type": "address"},
        ],
        "name": "allowance",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
]


def build_web3(settings: Settings | None = None) -> Web3:
    """Connect to the configured RPC endpoint."""
    settings = settings or get_settings()
    if not settings.rpc_url:
        raise RuntimeError("ATOMOP_RPC_URL is not set; cannot reach the chain")
    return Web3(
        Web3.HTTPProvider(
            settings.rpc_url, request_kwargs={"timeout": settings.rpc_timeout_seconds}
        )
    )


def load_account(settings: Settings | None = None) -> LocalAccount | None:
    """Signing account from settings, or None for read-only use."""
    settings = settings or get_settings()
    if not settings.private_key:
        return None
    return Account.from_key(settings.private_key)


class _ContractClient:
    """Shared read/write plumbing for contract wrappers."""

    def __init__(
        self,
        web3: Web3,
        address: str,
        abi: list[dict[str, Any]],
        account: LocalAccount | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.web3 = web3
        self.address = normalize_address(address, "contract address")
        self.account = account
        self.contract = web3.eth.contract(address=self.address, abi=abi)

    def _read(self, call: Callable[[], T]) -> T:
        """Run a read-only call, retrying transient transport failures."""
        retrying = Retrying(
            stop=stop_after_attempt(self.settings.rpc_max_attempts),
            wait=wait_exponential_jitter(initial=0.5, max=5),
            retry=retry_if_exception_type(OSError),
            reraise=True,
        )
        return retrying(call)

    def _send(self, function: Any, value: int = 0) -> dict[str, Any]:
        """Sign and send one transaction. Never retried."""
        if self.account is None:
            raise InvalidParameters("a signing key is required for state-changing calls")
        sender = self.account.address
        try:
            tx = function.build_transaction(
                {
                    "from": sender,
                    "value": value,
                    "nonce": self.web3.eth.get_transaction_count(sender),
                    "chainId": self.settings.chain_id,
                }
            )
            signed = self.account.sign_transaction(tx)
            tx_hash = self.web3.eth.send_raw_transaction(signed.raw_transaction)
        except Exception as exc:
            logger.error(f"Transaction to {self.address} failed: {exc}")
            raise ExternalExecutionFailed(f"transaction to {self.address} failed: {exc}") from exc

        # Broadcast: from here on the transaction may still be mined.
        try:
            receipt = self.web3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=max(self.settings.rpc_timeout_seconds, 120)
            )
        except Exception as exc:
            logger.error(
                f"No receipt for transaction {Web3.to_hex(tx_hash)}: {exc}",
                extra={"tx_hash": Web3.to_hex(tx_hash), "to": self.address},
            )
            raise OutcomeUnknown(Web3.to_hex(tx_hash), str(exc)) from exc

        if receipt["status"] != 1:
            logger.error(
                f"Transaction {Web3.to_hex(tx_hash)} reverted",
                extra={"tx_hash": Web3.to_hex(tx_hash), "to": self.address},
            )
            raise ExternalExecutionFailed(f"transaction {Web3.to_hex(tx_hash)} reverted")
        return dict(receipt)


class Web3PositionManager(_ContractClient):
    """Position manager contract as a batch processor and state oracle."""

    def __init__(
        self,
        web3: Web3,
        address: str | None = None,
        account: LocalAccount | None = None,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or get_settings()
        address = address or settings.position_manager_address
        if not address:
            raise RuntimeError("ATOMOP_POSITION_MANAGER_ADDRESS is not set")
        super().__init__(web3, address, POSITION_MANAGER_ABI, account, settings)

    def next_operation_id(self) -> int:
        return self._read(lambda: self.contract.functions.nextTokenId().call())

    def execute_batch(
        self, encoded_actions: bytes, native_value: int, deadline: int
    ) -> OperationResult:
        operation_id = self.next_operation_id()
        receipt = self._send(
            self.contract.functions.modifyLiquidities(encoded_actions, deadline),
            value=native_value,
        )
        return OperationResult(
            success=True,
            operation_id=operation_id,
            tx_hash=Web3.to_hex(receipt["transactionHash"]),
            block_number=receipt.get("blockNumber"),
            gas_used=receipt.get("gasUsed"),
        )

    def owner_of(self, position_id: int) -> str:
        try:
            owner = self._read(lambda: self.contract.functions.ownerOf(position_id).call())
        except ContractLogicError as exc:
            raise UnknownPosition(position_id) from exc
        return Web3.to_checksum_address(owner)

    def current_pool_and_position(self, position_id: int) -> tuple[PoolKey, PositionInfo]:
        try:
            raw_key, info = self._read(
                lambda: self.contract.functions.getPoolAndPositionInfo(position_id).call()
            )
        except ContractLogicError as exc:
            raise UnknownPosition(position_id) from exc

        currency0, currency1, fee, tick_spacing, hooks = raw_key
        # Unknown ids come back as an all-zero key instead of a revert.
        if tick_spacing == 0 and currency1 == NATIVE_CURRENCY:
            raise UnknownPosition(position_id)
        pool_key = PoolKey(
            currency0=currency0,
            currency1=currency1,
            fee=fee,
            tick_spacing=tick_spacing,
            hooks=hooks,
        )
        return pool_key, PositionInfo.from_packed(info)

    def current_liquidity(self, position_id: int) -> int:
        try:
            return self._read(
                lambda: self.contract.functions.getPositionLiquidity(position_id).call()
            )
        except ContractLogicError as exc:
            raise UnknownPosition(position_id) from exc


class Web3Erc20(_ContractClient):
    """ERC-20 token handle acting as ``account``."""

    def __init__(
        self,
        web3: Web3,
        address: str,
        account: LocalAccount | None = None,
        settings: Settings | None = None,
    ) -> None:
        super().__init__(web3, address, ERC20_ABI, account, settings)

    def transfer(self, to: str, amount: int) -> None:
        self._send(self.contract.functions.transfer(normalize_address(to, "to"), amount))

    def transfer_from(self, owner: str, to: str, amount: int) -> None:
        self._send(
            self.contract.functions.transferFrom(
                normalize_address(owner, "owner"), normalize_address(to, "to"), amount
            )
        )

    def approve(self, spender: str, amount: int) -> None:
        self._send(self.contract.functions.approve(normalize_address(spender, "spender"), amount))

    def balance_of(self, account: str) -> int:
        account = normalize_address(account, "account")
        return self._read(lambda: self.contract.functions.balanceOf(account).call())

    def allowance(self, owner: str, spender: str) -> int:
        owner = normalize_address(owner, "owner")
        spender = normalize_address(spender, "spender")
        return self._read(lambda: self.contract.functions.allowance(owner, spender).call())
