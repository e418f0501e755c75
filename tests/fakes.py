"""In-process doubles for the external collaborators."""

from __future__ import annotations

from typing import Any

from web3 import Web3

from atomop.data.models import OperationResult, PoolKey, PositionInfo
from atomop.errors import UnknownPosition
from atomop.flash.orchestrator import CallbackRequest


def cs(value: str) -> str:
    return Web3.to_checksum_address(value)


ORCHESTRATOR = cs("0x" + "0a" * 20)
POOL = cs("0x" + "b0" * 20)
MANAGER = cs("0x" + "c0" * 20)
ATTACKER = cs("0x" + "de" * 20)
ALICE = cs("0x" + "a1" * 20)
BOB = cs("0x" + "b1" * 20)
RECEIVER = cs("0x" + "e0" * 20)
TOKEN0 = cs("0x" + "10" * 20)
TOKEN1 = cs("0x" + "20" * 20)

NOW = 1_700_000_000


class FakeToken:
    """Minimal ERC-20 ledger. Every mutating call names the acting account."""

    def __init__(self, address: str, balances: dict[str, int] | None = None) -> None:
        self.address = cs(address)
        self.balances: dict[str, int] = {cs(k): v for k, v in (balances or {}).items()}
        self.allowances: dict[tuple[str, str], int] = {}

    def as_account(self, account: str) -> "BoundToken":
        return BoundToken(self, cs(account))

    def mint(self, account: str, amount: int) -> None:
        account = cs(account)
        self.balances[account] = self.balances.get(account, 0) + amount

    def move(self, sender: str, to: str, amount: int) -> None:
        sender, to = cs(sender), cs(to)
        if self.balances.get(sender, 0) < amount:
            raise ValueError(f"insufficient balance for {sender}")
        self.balances[sender] -= amount
        self.balances[to] = self.balances.get(to, 0) + amount

    def spend(self, spender: str, owner: str, to: str, amount: int) -> None:
        key = (cs(owner), cs(spender))
        if self.allowances.get(key, 0) < amount:
            raise ValueError(f"insufficient allowance for {spender}")
        self.move(owner, to, amount)
        self.allowances[key] -= amount

    def set_allowance(self, owner: str, spender: str, amount: int) -> None:
        self.allowances[(cs(owner), cs(spender))] = amount

    def balance_of(self, account: str) -> int:
        return self.balances.get(cs(account), 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self.allowances.get((cs(owner), cs(spender)), 0)

    def snapshot(self) -> tuple[dict[str, int], dict[tuple[str, str], int]]:
        return dict(self.balances), dict(self.allowances)

    def restore(self, snap: tuple[dict[str, int], dict[tuple[str, str], int]]) -> None:
        self.balances, self.allowances = dict(snap[0]), dict(snap[1])


class BoundToken:
    """Token handle acting as one account."""

    def __init__(self, token: FakeToken, account: str) -> None:
        self.token = token
        self.account = account
        self.address = token.address

    def transfer(self, to: str, amount: int) -> None:
        self.token.move(self.account, to, amount)

    def transfer_from(self, owner: str, to: str, amount: int) -> None:
        self.token.spend(self.account, owner, to, amount)

    def approve(self, spender: str, amount: int) -> None:
        self.token.set_allowance(self.account, spender, amount)

    def balance_of(self, account: str) -> int:
        return self.token.balance_of(account)

    def allowance(self, owner: str, spender: str) -> int:
        return self.token.allowance(owner, spender)


class FakeFlashPool:
    """Lending pool that reverts every token movement if any step fails."""

    def __init__(self, tokens: dict[str, FakeToken], fee_bps: int = 5, address: str = POOL) -> None:
        self.address = cs(address)
        self.tokens = tokens
        self.fee_bps = fee_bps
        self.receivers: dict[str, Any] = {}
        self.borrow_calls: list[dict[str, Any]] = []
        self.initiator_override: str | None = None
        self.skip_callback = False

    def register(self, receiver: Any) -> None:
        self.receivers[cs(receiver.address)] = receiver

    def as_caller(self, caller: str) -> "BoundPool":
        return BoundPool(self, cs(caller))

    def fee_for(self, amount: int) -> int:
        return amount * self.fee_bps // 10_000

    def borrow_as(
        self, initiator: str, receiver: str, asset: str, amount: int, context: bytes, referral: int
    ) -> None:
        self.borrow_calls.append(
            {"initiator": initiator, "receiver": receiver, "asset": asset, "amount": amount,
             "referral": referral}
        )
        token = self.tokens[cs(asset)]
        snapshots = {addr: t.snapshot() for addr, t in self.tokens.items()}
        fee = self.fee_for(amount)
        try:
            token.move(self.address, receiver, amount)
            if self.skip_callback:
                return
            target = self.receivers[cs(receiver)]
            accepted = target.on_callback(
                CallbackRequest(
                    asset=token.address,
                    amount=amount,
                    fee=fee,
                    initiator=self.initiator_override or initiator,
                    authority=self.address,
                    context=context,
                )
            )
            if accepted is not True:
                raise RuntimeError("callback did not accept the loan")
            token.spend(self.address, receiver, self.address, amount + fee)
        except Exception:
            for addr, snap in snapshots.items():
                self.tokens[addr].restore(snap)
            raise


class BoundPool:
    def __init__(self, pool: FakeFlashPool, caller: str) -> None:
        self.pool = pool
        self.caller = caller
        self.address = pool.address

    def borrow(self, receiver: str, asset: str, amount: int, context: bytes, referral: int) -> None:
        self.pool.borrow_as(self.caller, receiver, asset, amount, context, referral)


class HonestReceiver:
    """Uses the funds, then approves exactly principal plus fee."""

    def __init__(self, tokens: dict[str, FakeToken], orchestrator: str, address: str = RECEIVER):
        self.address = cs(address)
        self.tokens = tokens
        self.orchestrator = cs(orchestrator)
        self.calls: list[tuple[str, int, int, bytes]] = []
        self.balance_during_callback: int | None = None

    def on_flash_callback(self, asset: str, amount: int, fee: int, user_data: bytes) -> None:
        self.calls.append((asset, amount, fee, user_data))
        token = self.tokens[cs(asset)]
        self.balance_during_callback = token.balance_of(self.address)
        token.as_account(self.address).approve(self.orchestrator, amount + fee)


class FailingReceiver(HonestReceiver):
    def on_flash_callback(self, asset: str, amount: int, fee: int, user_data: bytes) -> None:
        super().on_flash_callback(asset, amount, fee, user_data)
        raise RuntimeError("strategy blew up")


class StingyReceiver(HonestReceiver):
    """Approves the principal but not the fee."""

    def on_flash_callback(self, asset: str, amount: int, fee: int, user_data: bytes) -> None:
        self.calls.append((asset, amount, fee, user_data))
        self.tokens[cs(asset)].as_account(self.address).approve(self.orchestrator, amount)


class ReentrantReceiver(HonestReceiver):
    """Tries to re-enter the orchestrator mid-callback, then behaves."""

    def __init__(self, tokens: dict[str, FakeToken], orchestrator: Any, address: str = RECEIVER):
        super().__init__(tokens, orchestrator.address, address)
        self.target = orchestrator
        self.reentry_errors: list[Exception] = []

    def on_flash_callback(self, asset: str, amount: int, fee: int, user_data: bytes) -> None:
        forged = CallbackRequest(
            asset=asset,
            amount=amount,
            fee=0,
            initiator=self.target.address,
            authority=self.target.guard.trusted_authority,
            context=b"",
        )
        try:
            self.target.on_callback(forged)
        except Exception as exc:
            self.reentry_errors.append(exc)
        try:
            self.target.initiate(self, asset, amount)
        except Exception as exc:
            self.reentry_errors.append(exc)
        super().on_flash_callback(asset, amount, fee, user_data)


class FakePositionManager:
    """Position manager with in-memory positions and a call log."""

    def __init__(self, address: str = MANAGER) -> None:
        self.address = cs(address)
        self.positions: dict[int, dict[str, Any]] = {}
        self.next_id = 1
        self.calls: list[tuple[bytes, int, int]] = []
        self.queries: list[tuple[str, int]] = []
        self.fail_with: Exception | None = None
        self.success = True
        self.reported_deltas: dict[str, int] = {}

    def add_position(
        self,
        pool_key: PoolKey,
        owner: str,
        liquidity: int,
        tick_lower: int = -600,
        tick_upper: int = 600,
    ) -> int:
        position_id = self.next_id
        self.next_id += 1
        self.positions[position_id] = {
            "pool_key": pool_key,
            "owner": cs(owner),
            "liquidity": liquidity,
            "tick_lower": tick_lower,
            "tick_upper": tick_upper,
        }
        return position_id

    def set_liquidity(self, position_id: int, liquidity: int) -> None:
        self.positions[position_id]["liquidity"] = liquidity

    def delete(self, position_id: int) -> None:
        del self.positions[position_id]

    def _get(self, method: str, position_id: int) -> dict[str, Any]:
        self.queries.append((method, position_id))
        if position_id not in self.positions:
            raise UnknownPosition(position_id)
        return self.positions[position_id]

    def next_operation_id(self) -> int:
        return self.next_id

    def execute_batch(self, encoded_actions: bytes, native_value: int, deadline: int) -> OperationResult:
        self.calls.append((encoded_actions, native_value, deadline))
        if self.fail_with is not None:
            raise self.fail_with
        return OperationResult(
            success=self.success,
            operation_id=self.next_id,
            tx_hash="0x" + "ab" * 32,
            reported_deltas=dict(self.reported_deltas),
        )

    def owner_of(self, position_id: int) -> str:
        return self._get("owner_of", position_id)["owner"]

    def current_pool_and_position(self, position_id: int) -> tuple[PoolKey, PositionInfo]:
        position = self._get("current_pool_and_position", position_id)
        pool_key = position["pool_key"]
        info = PositionInfo(
            tick_lower=position["tick_lower"],
            tick_upper=position["tick_upper"],
            has_subscriber=True,
            pool_id_prefix=pool_key.pool_id[:52],
        )
        return pool_key, info

    def current_liquidity(self, position_id: int) -> int:
        return self._get("current_liquidity", position_id)["liquidity"]
