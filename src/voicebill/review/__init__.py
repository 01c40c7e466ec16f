"""
Human-in-the-loop review module.

Provides:
- Review session persistence
- Debounced autosave serialized with completion
"""

from .session import DEFAULT_AUTOSAVE_DELAY, ReviewSessionManager, ReviewSessionStatus

__all__ = [
    "DEFAULT_AUTOSAVE_DELAY",
    "ReviewSessionManager",
    "ReviewSessionStatus",
]
