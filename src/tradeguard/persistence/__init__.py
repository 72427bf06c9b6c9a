"""Persistence-boundary adapters."""

from .adapter import PositionRecordAdapter

__all__ = ["PositionRecordAdapter"]
