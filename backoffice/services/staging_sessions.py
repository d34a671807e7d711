from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable
from uuid import uuid4

from backoffice.services.attachments import AttachmentStager, DocumentUploader

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StagingSessionError(LookupError):
    code: str
    message: str

    def __str__(self) -> str:
        return self.message


@dataclass
class StagingSession:
    id: str
    actor_id: str
    entity_type: str
    stager: AttachmentStager
    created_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StagingSessionRegistry:
    """Process-local store of open form sessions and their staged attachments.

    Nothing here survives a restart; an abandoned form simply expires.
    """

    def __init__(
        self,
        *,
        ttl_minutes: int,
        preview_url_builder: Callable[[str, str], str] | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._ttl = timedelta(minutes=ttl_minutes)
        self._preview_url_builder = preview_url_builder
        self._clock = clock
        self._sessions: dict[str, StagingSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def open(
        self,
        *,
        actor_id: str,
        entity_type: str,
        uploader: DocumentUploader,
        entity_id: str | None = None,
    ) -> StagingSession:
        self.purge_expired()
        session_id = uuid4().hex
        url_factory = None
        if self._preview_url_builder is not None:
            builder = self._preview_url_builder

            def url_factory(token: str) -> str:
                return builder(session_id, token)

        stager = AttachmentStager(
            uploader,
            entity_type=entity_type,
            entity_id=entity_id,
            preview_url_factory=url_factory,
        )
        now = self._clock()
        session = StagingSession(
            id=session_id,
            actor_id=actor_id,
            entity_type=entity_type,
            stager=stager,
            created_at=now,
            expires_at=now + self._ttl,
        )
        self._sessions[session_id] = session
        logger.info("Opened staging session %s for %s", session_id, entity_type)
        return session

    def get(self, session_id: str, *, actor_id: str) -> StagingSession:
        session = self._sessions.get(session_id)
        now = self._clock()
        if session is not None and session.is_expired(now):
            self._drop(session)
            session = None
        if session is None:
            raise StagingSessionError(code="staging_session_not_found", message="Staging session not found")
        if session.actor_id != actor_id:
            raise StagingSessionError(
                code="staging_session_forbidden",
                message="Staging session belongs to another user",
            )
        session.expires_at = now + self._ttl
        return session

    def peek(self, session_id: str) -> StagingSession | None:
        """Session lookup without ownership checks, for signed preview links."""
        session = self._sessions.get(session_id)
        if session is not None and session.is_expired(self._clock()):
            self._drop(session)
            return None
        return session

    def discard(self, session_id: str, *, actor_id: str) -> None:
        session = self.get(session_id, actor_id=actor_id)
        self._drop(session)

    def purge_expired(self) -> int:
        now = self._clock()
        expired = [session for session in self._sessions.values() if session.is_expired(now)]
        for session in expired:
            self._drop(session)
        if expired:
            logger.info("Purged %d expired staging sessions", len(expired))
        return len(expired)

    def _drop(self, session: StagingSession) -> None:
        pending = len(session.stager.pending())
        if pending:
            logger.warning(
                "Dropping staging session %s with %d unflushed attachments",
                session.id,
                pending,
            )
        session.stager.clear()
        self._sessions.pop(session.id, None)
