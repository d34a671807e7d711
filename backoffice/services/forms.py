from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any

from backoffice.services.attachments import Document, FailedUpload
from backoffice.services.staging_sessions import StagingSession

logger = logging.getLogger(__name__)

_EMAIL_RE = re.compile(r"\S+@\S+\.\S+")
MIN_PASSWORD_LENGTH = 6


@dataclass(frozen=True)
class FormValidationError(ValueError):
    errors: dict[str, str]
    message: str = "Validation failed"

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class SaveResult:
    entity: Any
    entity_id: str
    created: bool
    documents: list[Document] = field(default_factory=list)
    failed_uploads: list[FailedUpload] = field(default_factory=list)


def blank(value: str | None) -> bool:
    return not (value or "").strip()


def check_email(value: str | None, errors: dict[str, str]) -> None:
    if blank(value):
        errors["email"] = "Email is required"
    elif not _EMAIL_RE.search(value or ""):
        errors["email"] = "Email is invalid"


def check_password(
    password: str | None,
    confirm_password: str | None,
    *,
    creating: bool,
    errors: dict[str, str],
) -> None:
    """Required on create; on update only checked when a new one is typed."""
    if not creating and not password:
        return
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        errors["password"] = (
            f"Password is required and must be at least {MIN_PASSWORD_LENGTH} characters"
            if creating
            else f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
        )
    if not confirm_password:
        errors["confirmPassword"] = "Please confirm password"
    elif password != confirm_password:
        errors["confirmPassword"] = "Passwords do not match"


async def flush_session(
    session: StagingSession | None,
    entity_id: str,
) -> tuple[list[Document], list[FailedUpload]]:
    if session is None:
        return [], []
    if not entity_id:
        logger.warning(
            "Saved %s has no id in the backend response, leaving %d attachments staged",
            session.entity_type,
            len(session.stager.pending()),
        )
        return [], []
    report = await session.stager.flush(entity_id)
    return report.committed, report.failed
