"""Application wiring."""

from .orchestrator import ApplicationOrchestrator

__all__ = ['ApplicationOrchestrator']
