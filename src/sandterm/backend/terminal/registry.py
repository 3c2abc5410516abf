"""Registry of execution sessions, one per open terminal channel."""

import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

from ..exception import SessionConflictError

logger = logging.getLogger(__name__)


@dataclass
class ExecutionSession:
    """
    Server-side state of one terminal channel.

    Attributes:
        channel_id: Identity of the WebSocket channel
        sandbox_id: Sandbox the channel talks to
        execution_handle: Backend id of the running command, None when idle
        id: Unique session id
        created_at: Registration time (UTC)
    """
    channel_id: str
    sandbox_id: str
    execution_handle: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class SessionRegistry:
    """
    Concurrency-safe mapping of channel id → ExecutionSession.

    Thread Safety:
    - Open/close callbacks run in the main loop, but run completion may be
      reported from a capability worker thread; every access takes the lock
    - The lock belongs to this registry only; unrelated registries never contend

    Attributes:
        _sessions: channel_id → ExecutionSession
    """

    def __init__(self):
        self._sessions: Dict[str, ExecutionSession] = {}
        self._lock = threading.Lock()

    def register(self, session: ExecutionSession) -> ExecutionSession:
        """
        Register the session of a newly opened channel.

        Raises:
            SessionConflictError: If the channel already has a session
        """
        with self._lock:
            if session.channel_id in self._sessions:
                raise SessionConflictError(
                    f"Execution session already registered: channel_id={session.channel_id}"
                )
            self._sessions[session.channel_id] = session

        logger.info(
            f"[SessionRegistry] Registered: channel_id={session.channel_id}, "
            f"sandbox_id={session.sandbox_id}, session_id={session.id}"
        )
        return session

    def deregister(self, channel_id: str) -> Optional[ExecutionSession]:
        """
        Remove a channel's session.

        Idempotent: removing an absent channel is a no-op.

        Returns:
            The removed session, or None if it was already gone
        """
        with self._lock:
            session = self._sessions.pop(channel_id, None)

        if session is None:
            logger.debug(f"[SessionRegistry] Already deregistered: channel_id={channel_id}")
        else:
            logger.info(f"[SessionRegistry] Deregistered: channel_id={channel_id}")
        return session

    def get(self, channel_id: str) -> Optional[ExecutionSession]:
        with self._lock:
            return self._sessions.get(channel_id)

    def attach_execution(self, channel_id: str, execution_handle: Optional[str]) -> bool:
        """
        Record (or clear, with None) the running execution of a channel.

        Returns:
            False if the channel is no longer registered
        """
        with self._lock:
            session = self._sessions.get(channel_id)
            if session is None:
                return False
            session.execution_handle = execution_handle
        return True

    def sessions(self) -> List[ExecutionSession]:
        """Snapshot of all registered sessions"""
        with self._lock:
            return list(self._sessions.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, channel_id: object) -> bool:
        with self._lock:
            return channel_id in self._sessions
