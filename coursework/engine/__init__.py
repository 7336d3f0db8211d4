"""Lifecycle orchestration over the pure rules and the store."""

from .orchestrator import LifecycleOrchestrator, RequestStats

__all__ = ["LifecycleOrchestrator", "RequestStats"]
