"""Persistent storage for the lifecycle engine."""

from .store import LmsStore, StoreError, StoreSession

__all__ = ["LmsStore", "StoreError", "StoreSession"]
