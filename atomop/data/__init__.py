"""Data layer - collaborator models, interfaces and storage."""

from atomop.data.models import OperationResult, PoolKey, PositionInfo

__all__ = ["OperationResult", "PoolKey", "PositionInfo"]
