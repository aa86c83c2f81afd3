"""Infra layer utilities (snapshot storage)."""

from .storage import SnapshotFile

__all__ = ["SnapshotFile"]
