"""Tests for the execution session registry."""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from sandterm.backend.exception import SessionConflictError
from sandterm.backend.terminal.registry import ExecutionSession, SessionRegistry


class TestRegister:
    """Verify registration."""

    def test_register_and_get(self) -> None:
        """A registered session should be retrievable by channel id."""
        registry = SessionRegistry()
        session = registry.register(ExecutionSession(channel_id="ch-1", sandbox_id="sb"))
        assert registry.get("ch-1") is session
        assert "ch-1" in registry
        assert len(registry) == 1

    def test_duplicate_channel_rejected(self) -> None:
        """Registering a channel twice should raise SessionConflictError."""
        registry = SessionRegistry()
        registry.register(ExecutionSession(channel_id="ch-1", sandbox_id="sb"))
        with pytest.raises(SessionConflictError):
            registry.register(ExecutionSession(channel_id="ch-1", sandbox_id="sb"))

    def test_sessions_get_unique_ids(self) -> None:
        """Each session should carry its own id and creation time."""
        first = ExecutionSession(channel_id="a", sandbox_id="sb")
        second = ExecutionSession(channel_id="b", sandbox_id="sb")
        assert first.id != second.id
        assert first.created_at.tzinfo is not None


class TestDeregister:
    """Verify idempotent removal."""

    def test_deregister_returns_session_once(self) -> None:
        """The first deregister should return the session, later ones None."""
        registry = SessionRegistry()
        session = registry.register(ExecutionSession(channel_id="ch-1", sandbox_id="sb"))
        assert registry.deregister("ch-1") is session
        assert registry.deregister("ch-1") is None
        assert len(registry) == 0

    def test_deregister_unknown_is_noop(self) -> None:
        """Deregistering an unknown channel should not raise."""
        assert SessionRegistry().deregister("missing") is None

    def test_concurrent_deregister(self) -> None:
        """Racing deregisters should remove the session exactly once."""
        registry = SessionRegistry()
        registry.register(ExecutionSession(channel_id="ch-1", sandbox_id="sb"))
        workers = 16
        barrier = threading.Barrier(workers)

        def remove():
            barrier.wait()
            return registry.deregister("ch-1")

        with ThreadPoolExecutor(max_workers=workers) as pool:
            results = list(pool.map(lambda _: remove(), range(workers)))

        assert sum(result is not None for result in results) == 1
        assert "ch-1" not in registry


class TestAttachExecution:
    """Verify execution handle bookkeeping."""

    def test_attach_and_clear(self) -> None:
        """The handle should be set and cleared on the registered session."""
        registry = SessionRegistry()
        registry.register(ExecutionSession(channel_id="ch-1", sandbox_id="sb"))
        assert registry.attach_execution("ch-1", "exec-9") is True
        assert registry.get("ch-1").execution_handle == "exec-9"
        registry.attach_execution("ch-1", None)
        assert registry.get("ch-1").execution_handle is None

    def test_attach_after_deregister(self) -> None:
        """Attaching to a removed channel should report False."""
        registry = SessionRegistry()
        assert registry.attach_execution("gone", "exec-1") is False

    def test_sessions_snapshot(self) -> None:
        """sessions() should list every registered session."""
        registry = SessionRegistry()
        for channel in ("a", "b"):
            registry.register(ExecutionSession(channel_id=channel, sandbox_id="sb"))
        assert sorted(s.channel_id for s in registry.sessions()) == ["a", "b"]
