"""Ordered action batches destined for one atomic execution request."""

from __future__ import annotations

from typing import Any, Iterator, Mapping

from eth_abi import encode
from web3 import Web3

from atomop.errors import InvalidParameters
from atomop.execution.actions import Action, ActionKind, ActionParams, build_action


class ActionBatch:
    """An ordered sequence of actions plus a deadline and a native value.

    Order is caller intent and is never rearranged: a mint's output id is only
    valid for actions that come after it.
    """

    def __init__(self, deadline: int, native_value: int = 0) -> None:
        if isinstance(deadline, bool) or not isinstance(deadline, int) or deadline < 0:
            raise InvalidParameters(f"deadline must be a non-negative integer, got {deadline!r}")
        if isinstance(native_value, bool) or not isinstance(native_value, int) or native_value < 0:
            raise InvalidParameters(
                f"native_value must be a non-negative integer, got {native_value!r}"
            )
        self.deadline = deadline
        self.native_value = native_value
        self._actions: list[Action] = []

    def add_action(
        self, kind: ActionKind | str, parameters: ActionParams | Mapping[str, Any]
    ) -> Action:
        """Validate and append one action. Returns the built action."""
        action = build_action(kind, parameters)
        self._actions.append(action)
        return action

    @property
    def actions(self) -> tuple[Action, ...]:
        return tuple(self._actions)

    def __len__(self) -> int:
        return len(self._actions)

    def __iter__(self) -> Iterator[Action]:
        return iter(self._actions)

    def encode(self) -> bytes:
        """ABI payload ``(bytes actions, bytes[] params)`` for ``modifyLiquidities``."""
        codes = bytes(action.code for action in self._actions)
        params = [action.encode_params() for action in self._actions]
        return encode(["bytes", "bytes[]"], [codes, params])

    def fingerprint(self, native_value: int | None = None) -> str:
        """Stable identity of a submission: calldata, deadline and forwarded value."""
        value = self.native_value if native_value is None else native_value
        payload = self.encode() + encode(["uint256", "uint256"], [self.deadline, value])
        return Web3.to_hex(Web3.keccak(payload))

    def to_dict(self) -> dict[str, Any]:
        return {
            "deadline": self.deadline,
            "native_value": self.native_value,
            "actions": [action.to_dict() for action in self._actions],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ActionBatch":
        """Build a batch from ``{"deadline", "native_value", "actions": [{"kind", "params"}]}``."""
        if not isinstance(data, Mapping):
            raise InvalidParameters("batch description must be an object")
        if "deadline" not in data:
            raise InvalidParameters("batch description is missing 'deadline'")
        actions = data.get("actions")
        if not isinstance(actions, list):
            raise InvalidParameters("batch description 'actions' must be a list")

        batch = cls(deadline=data["deadline"], native_value=data.get("native_value", 0))
        for index, entry in enumerate(actions):
            if not isinstance(entry, Mapping) or "kind" not in entry:
                raise InvalidParameters(f"action #{index} must be an object with a 'kind'")
            batch.add_action(entry["kind"], entry.get("params", {}))
        return batch
