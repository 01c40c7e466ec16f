"""
Review session persistence with debounced autosave.

While a human reviews a derived document, its state is saved to a review
session so it survives a reload. Edits schedule an autosave that fires
after a short quiet period; each new edit restarts the timer.

Autosave and completion take the same per-session lock, and a completed
session ignores any autosave that fires afterwards, so a late save can
never write to a session that was just deleted.
"""

import logging
import threading
from collections.abc import Callable
from enum import Enum
from typing import Any, Optional

from ..config import ReviewConfig
from ..errors import PersistenceError, require_owner
from ..services.accessors import ReviewSessionAccessor

logger = logging.getLogger(__name__)

DEFAULT_AUTOSAVE_DELAY = 2.0


class ReviewSessionStatus(str, Enum):
    """Lifecycle of a review session row."""

    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class ReviewSessionManager:
    """
    Owns one review session for one owner.

    Responsibilities:
    - Create the session on first save, patch it afterwards
    - Debounce autosaves
    - Finalize (mark completed, then delete) without racing an autosave
    """

    def __init__(
        self,
        store: ReviewSessionAccessor,
        owner_id: str,
        delay: float = DEFAULT_AUTOSAVE_DELAY,
        session_id: Optional[str] = None,
    ):
        """
        Initialize the manager.

        Args:
            store: Review session accessor
            owner_id: Tenant owning the session
            delay: Autosave debounce in seconds
            session_id: Existing session to resume
        """
        self.store = store
        self.owner_id = require_owner(owner_id)
        self.delay = delay
        self._session_id = session_id
        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._completed = False
        self.save_count = 0

    @classmethod
    def from_config(
        cls,
        store: ReviewSessionAccessor,
        owner_id: str,
        config: ReviewConfig,
        session_id: Optional[str] = None,
    ) -> "ReviewSessionManager":
        """Create a manager using the configured autosave delay."""
        return cls(store, owner_id, delay=config.autosave_delay_seconds, session_id=session_id)

    @property
    def session_id(self) -> Optional[str]:
        """Id of the persisted session, None before the first save and after completion."""
        return self._session_id

    @property
    def completed(self) -> bool:
        return self._completed

    def load(self) -> Optional[dict[str, Any]]:
        """Saved review state, or None if there is no live session."""
        if self._session_id is None:
            return None
        row = self.store.get_review_session(self.owner_id, self._session_id)
        return row["data"] if row else None

    def save(self, data: dict[str, Any]) -> Optional[str]:
        """Persist review state now. Returns the session id, None once completed."""
        with self._lock:
            return self._save_locked(data)

    def _save_locked(self, data: dict[str, Any]) -> Optional[str]:
        if self._completed:
            logger.debug("Ignoring save for completed review session")
            return None

        if self._session_id is None:
            self._session_id = self.store.create_review_session(self.owner_id, data)
            logger.info("Created review session %s", self._session_id)
        elif not self.store.update_review_session(self.owner_id, self._session_id, data=data):
            logger.warning("Review session %s no longer exists", self._session_id)
            return None

        self.save_count += 1
        return self._session_id

    def schedule_autosave(self, provider: Callable[[], dict[str, Any]]) -> bool:
        """
        (Re)start the autosave timer.

        provider is called when the timer fires and must return the state to
        save. Nothing is scheduled before the first explicit save or after
        completion.

        Returns:
            True if a timer was started
        """
        with self._lock:
            if self._session_id is None or self._completed:
                return False
            self._cancel_timer_locked()
            timer = threading.Timer(self.delay, self._autosave, args=(provider,))
            timer.daemon = True
            self._timer = timer
            timer.start()
            return True

    def _autosave(self, provider: Callable[[], dict[str, Any]]) -> None:
        with self._lock:
            self._timer = None
            if self._completed:
                return
            try:
                self._save_locked(provider())
            except Exception:
                logger.exception("Autosave of review session %s failed", self._session_id)

    def _cancel_timer_locked(self) -> bool:
        if self._timer is None:
            return False
        self._timer.cancel()
        self._timer = None
        return True

    def cancel_autosave(self) -> bool:
        """Drop a pending autosave. Returns True if one was pending."""
        with self._lock:
            return self._cancel_timer_locked()

    @property
    def autosave_pending(self) -> bool:
        return self._timer is not None

    def complete(
        self, created_document_id: Optional[str] = None, created_document_type: Optional[str] = None
    ) -> bool:
        """
        Finalize the review: cancel autosave, mark completed, delete the row.

        Returns:
            True if a persisted session was finalized. False when there was
            none, or when the store failed; the session id is kept in that
            case so complete() can be called again.
        """
        with self._lock:
            self._cancel_timer_locked()
            self._completed = True
            session_id = self._session_id
            if session_id is None:
                return False

            try:
                self.store.update_review_session(
                    self.owner_id,
                    session_id,
                    status=ReviewSessionStatus.COMPLETED.value,
                    created_document_id=created_document_id,
                    created_document_type=created_document_type,
                )
                deleted = self.store.delete_review_session(self.owner_id, session_id)
            except PersistenceError:
                # Keep the id so a later complete() can remove the row
                logger.exception("Could not finalize review session %s", session_id)
                return False

            self._session_id = None
            logger.info("Completed review session %s", session_id)
            return deleted
