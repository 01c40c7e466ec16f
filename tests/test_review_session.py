"""Tests for review session autosave and completion."""

import time
from unittest.mock import MagicMock

import pytest
from fixtures import OWNER

from voicebill.config import ReviewConfig, load_config
from voicebill.errors import NotAuthenticatedError, PersistenceError
from voicebill.review import ReviewSessionManager


def _wait_for(condition, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(0.01)
    return False


@pytest.fixture
def manager(store):
    return ReviewSessionManager(store, OWNER, delay=0.05)


class TestSave:
    """Tests for explicit saves."""

    def test_first_save_creates_session(self, manager, store):
        """The session row appears on first save."""
        assert manager.session_id is None

        session_id = manager.save({"step": 1})

        assert session_id == manager.session_id
        assert store.get_review_session(OWNER, session_id)["data"] == {"step": 1}

    def test_later_saves_update(self, manager, store):
        """Subsequent saves patch the same row."""
        first = manager.save({"step": 1})
        second = manager.save({"step": 2})

        assert first == second
        assert manager.load() == {"step": 2}
        assert manager.save_count == 2

    def test_resume_existing_session(self, manager, store):
        """A new manager can pick up a saved session."""
        session_id = manager.save({"step": 3})
        resumed = ReviewSessionManager(store, OWNER, session_id=session_id)
        assert resumed.load() == {"step": 3}

    def test_requires_owner(self, store):
        """Sessions always belong to an owner."""
        with pytest.raises(NotAuthenticatedError):
            ReviewSessionManager(store, "")


class TestAutosave:
    """Tests for the debounced autosave timer."""

    def test_not_scheduled_before_first_save(self, manager):
        """There is nothing to autosave into yet."""
        assert not manager.schedule_autosave(lambda: {"step": 1})
        assert not manager.autosave_pending

    def test_autosave_fires_after_delay(self, manager):
        """The provider's state is written once the timer fires."""
        manager.save({"step": 1})

        assert manager.schedule_autosave(lambda: {"step": 2})
        assert _wait_for(lambda: manager.save_count == 2)
        assert manager.load() == {"step": 2}
        assert not manager.autosave_pending

    def test_rescheduling_debounces(self, manager):
        """Only the last scheduled provider runs."""
        manager.save({"step": 1})
        first = MagicMock(return_value={"step": "first"})
        manager.delay = 0.2
        manager.schedule_autosave(first)
        manager.schedule_autosave(lambda: {"step": "last"})

        assert _wait_for(lambda: manager.save_count == 2)
        first.assert_not_called()
        assert manager.load() == {"step": "last"}

    def test_cancel_autosave(self, manager):
        """A cancelled autosave never runs."""
        manager.save({"step": 1})
        provider = MagicMock(return_value={})
        manager.delay = 0.2
        manager.schedule_autosave(provider)

        assert manager.cancel_autosave()
        time.sleep(0.3)
        provider.assert_not_called()

    def test_provider_error_is_contained(self, manager):
        """A failing provider does not break later saves."""
        manager.save({"step": 1})
        manager._autosave(MagicMock(side_effect=RuntimeError("render failed")))

        assert manager.save({"step": 2}) is not None


class TestComplete:
    """Tests for finalizing a review."""

    def test_complete_deletes_session(self, manager, store):
        """Completion removes the row and forgets the id."""
        session_id = manager.save({"step": 1})

        assert manager.complete("doc-9", "invoice")

        assert manager.completed
        assert manager.session_id is None
        assert store.get_review_session(OWNER, session_id) is None

    def test_complete_cancels_pending_autosave(self, manager):
        """A scheduled autosave is dropped on completion."""
        manager.save({"step": 1})
        manager.delay = 0.2
        provider = MagicMock(return_value={"step": 2})
        manager.schedule_autosave(provider)

        manager.complete()

        assert not manager.autosave_pending
        time.sleep(0.3)
        provider.assert_not_called()

    def test_late_autosave_is_ignored(self, manager):
        """An autosave that fires after completion never calls its provider."""
        manager.save({"step": 1})
        manager.complete()
        provider = MagicMock(return_value={"step": 2})

        manager._autosave(provider)

        provider.assert_not_called()
        assert manager.save({"step": 3}) is None
        assert not manager.schedule_autosave(provider)

    def test_complete_without_session(self, manager):
        """Completing before any save is a no-op."""
        assert not manager.complete()

    def test_store_failure_keeps_session_for_retry(self, manager, store, monkeypatch):
        """A failed delete returns False and a later complete() removes the row."""
        session_id = manager.save({"step": 1})
        real_delete = store.delete_review_session

        def failing_delete(owner_id, sid):
            raise PersistenceError("database is locked")

        monkeypatch.setattr(store, "delete_review_session", failing_delete)
        assert manager.complete("doc-9", "invoice") is False
        assert manager.session_id == session_id
        assert manager.save({"step": 2}) is None

        monkeypatch.setattr(store, "delete_review_session", real_delete)
        assert manager.complete("doc-9", "invoice") is True
        assert manager.session_id is None
        assert store.get_review_session(OWNER, session_id) is None


class TestFromConfig:
    """Tests for building a manager from configuration."""

    def test_uses_configured_delay(self, store):
        """The autosave delay comes from the review config."""
        manager = ReviewSessionManager.from_config(
            store, OWNER, ReviewConfig(autosave_delay_seconds=0.05)
        )
        assert manager.delay == 0.05

        manager.save({"step": 1})
        manager.schedule_autosave(lambda: {"step": 2})
        assert _wait_for(lambda: manager.save_count == 2, timeout=1.0)

    def test_config_file_setting_reaches_manager(self, store, tmp_path, monkeypatch):
        """VOICEBILL_AUTOSAVE_DELAY flows through load_config into the manager."""
        monkeypatch.setenv("VOICEBILL_AUTOSAVE_DELAY", "0.25")
        config = load_config(tmp_path / "missing.yaml")

        manager = ReviewSessionManager.from_config(store, OWNER, config.review)
        assert manager.delay == 0.25
