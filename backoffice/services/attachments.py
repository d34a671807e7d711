from __future__ import annotations

import asyncio
import itertools
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Protocol
from uuid import uuid4

from backoffice.services.identity import field_of, first_key, key_of

logger = logging.getLogger(__name__)

SINGLE_SLOT_DOC_TYPES = ("pan", "aadhaar", "gst", "bank_statement", "shop_act")
ADDITIONAL_DOC_TYPE = "additional"
ENTITY_TYPES = ("user", "franchise")


class AttachmentError(ValueError):
    pass


class AttachmentState(str, Enum):
    STAGED = "staged"
    UPLOADING = "uploading"
    COMMITTED = "committed"
    REMOVED = "removed"


@dataclass(slots=True)
class StagedFile:
    filename: str
    content: bytes
    content_type: str = "application/octet-stream"

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass(frozen=True)
class Document:
    id: str
    document_type: str
    original_file_name: str
    url: str
    verification_status: str
    entity_type: str = ""
    entity_id: str = ""
    label: str | None = None

    @classmethod
    def from_payload(cls, payload: Any, *, fallback_name: str = "") -> Document:
        if isinstance(payload, Mapping) and isinstance(payload.get("data"), Mapping):
            payload = payload["data"]
        return cls(
            id=first_key(field_of(payload, "_id"), field_of(payload, "id")),
            document_type=str(field_of(payload, "documentType") or ""),
            original_file_name=str(field_of(payload, "originalFileName") or fallback_name),
            url=str(field_of(payload, "url") or field_of(payload, "filePath") or ""),
            verification_status=str(field_of(payload, "verificationStatus") or "pending"),
            entity_type=str(field_of(payload, "entityType") or ""),
            entity_id=key_of(field_of(payload, "entityId")),
            label=field_of(payload, "label"),
        )


class DocumentUploader(Protocol):
    async def upload_document(
        self,
        *,
        file: StagedFile,
        entity_type: str,
        entity_id: str,
        document_type: str,
        label: str | None = None,
    ) -> Any: ...


@dataclass(eq=False)
class StagedAttachment:
    doc_type: str
    file: StagedFile
    label: str | None = None
    sequence: int = 0
    id: str = field(default_factory=lambda: uuid4().hex)
    state: AttachmentState = AttachmentState.STAGED
    document: Document | None = None


@dataclass(frozen=True)
class FailedUpload:
    doc_type: str
    filename: str
    label: str | None
    error: str


@dataclass(frozen=True)
class FlushReport:
    entity_id: str
    committed: list[Document]
    failed: list[FailedUpload]

    @property
    def attempted(self) -> int:
        return len(self.committed) + len(self.failed)


def _default_preview_url(token: str) -> str:
    return f"previews/{token}"


class AttachmentPreview:
    """A preview handle; staged previews hold a temporary URL until released."""

    def __init__(
        self,
        url: str,
        *,
        token: str | None = None,
        attachment_id: str = "",
        on_release: Callable[[str], bool] | None = None,
    ) -> None:
        self.url = url
        self.token = token
        self.attachment_id = attachment_id
        self._on_release = on_release
        self.released = False

    @property
    def temporary(self) -> bool:
        return self.token is not None

    def release(self) -> None:
        if self.released:
            return
        self.released = True
        if self.token is not None and self._on_release is not None:
            self._on_release(self.token)

    def __enter__(self) -> AttachmentPreview:
        return self

    def __exit__(self, *exc_info) -> None:
        self.release()


def normalize_doc_type(doc_type: str) -> str:
    normalized = (doc_type or "").strip().lower()
    if normalized in SINGLE_SLOT_DOC_TYPES or normalized == ADDITIONAL_DOC_TYPE:
        return normalized
    allowed = ", ".join((*SINGLE_SLOT_DOC_TYPES, ADDITIONAL_DOC_TYPE))
    raise AttachmentError(f"Unknown document type '{doc_type}'. Allowed: {allowed}")


class AttachmentStager:
    """Holds documents picked on an entity form until the entity has an id.

    Single-slot document types keep only the latest pick; ``additional``
    documents accumulate in order. Once an entity id is known, staging uploads
    immediately; otherwise :meth:`flush` uploads everything in staging order.
    """

    def __init__(
        self,
        uploader: DocumentUploader,
        *,
        entity_type: str,
        entity_id: str | None = None,
        preview_url_factory: Callable[[str], str] | None = None,
    ) -> None:
        if entity_type not in ENTITY_TYPES:
            raise AttachmentError(f"Unsupported entity type '{entity_type}'")
        self._uploader = uploader
        self.entity_type = entity_type
        self.entity_id = key_of(entity_id)
        self._preview_url_factory = preview_url_factory or _default_preview_url
        self._slots: dict[str, StagedAttachment] = {}
        self._additional: list[StagedAttachment] = []
        self._previews: dict[str, str] = {}
        self._committed: list[StagedAttachment] = []
        self._sequence = itertools.count(1)
        self._flush_lock = asyncio.Lock()
        self.documents: list[Document] = []

    def use_uploader(self, uploader: DocumentUploader) -> None:
        self._uploader = uploader

    @property
    def slots(self) -> dict[str, StagedAttachment]:
        return dict(self._slots)

    @property
    def additional(self) -> list[StagedAttachment]:
        return list(self._additional)

    def pending(self) -> list[StagedAttachment]:
        entries = [*self._slots.values(), *self._additional]
        return sorted(entries, key=lambda entry: entry.sequence)

    def get(self, attachment_id: str) -> StagedAttachment | None:
        for entry in (*self.pending(), *self._committed):
            if entry.id == attachment_id:
                return entry
        return None

    async def stage(
        self,
        doc_type: str,
        file: StagedFile,
        label: str | None = None,
    ) -> StagedAttachment:
        doc_type = normalize_doc_type(doc_type)
        entry = StagedAttachment(
            doc_type=doc_type,
            file=file,
            label=label or None,
            sequence=next(self._sequence),
        )
        if doc_type == ADDITIONAL_DOC_TYPE:
            self._additional.append(entry)
        else:
            previous = self._slots.get(doc_type)
            if previous is not None:
                self._discard(previous)
            self._slots[doc_type] = entry

        if self.entity_id:
            try:
                await self._upload(entry, self.entity_id)
            except Exception as exc:
                entry.state = AttachmentState.STAGED
                logger.warning(
                    "Immediate upload of %s for %s %s failed, keeping it staged: %s",
                    doc_type,
                    self.entity_type,
                    self.entity_id,
                    exc,
                )
        return entry

    async def flush(self, entity_id: Any) -> FlushReport:
        target = key_of(entity_id)
        if not target:
            raise AttachmentError("Cannot flush attachments without an entity id")

        async with self._flush_lock:
            self.entity_id = target
            committed: list[Document] = []
            failed: list[FailedUpload] = []
            for entry in self.pending():
                if entry.state is not AttachmentState.STAGED:
                    continue
                try:
                    committed.append(await self._upload(entry, target))
                except Exception as exc:
                    logger.warning(
                        "Upload of %s (%s) for %s %s failed: %s",
                        entry.doc_type,
                        entry.file.filename,
                        self.entity_type,
                        target,
                        exc,
                    )
                    failed.append(
                        FailedUpload(
                            doc_type=entry.doc_type,
                            filename=entry.file.filename,
                            label=entry.label,
                            error=str(exc) or exc.__class__.__name__,
                        )
                    )
                    self._discard(entry)
            logger.info(
                "Flushed attachments for %s %s: committed=%d failed=%d",
                self.entity_type,
                target,
                len(committed),
                len(failed),
            )
            return FlushReport(entity_id=target, committed=committed, failed=failed)

    def remove(self, target: str | int) -> bool:
        """Discard a staged entry by slot doc type or ``additional`` index.

        Returns False when nothing staged matches; committed documents are
        never touched.
        """
        if isinstance(target, bool):
            return False
        if isinstance(target, int):
            if target < 0 or target >= len(self._additional):
                return False
            entry = self._additional[target]
        else:
            try:
                doc_type = normalize_doc_type(target)
            except AttachmentError:
                return False
            if doc_type == ADDITIONAL_DOC_TYPE:
                return False
            entry = self._slots.get(doc_type)
            if entry is None:
                return False
        if entry.state is not AttachmentState.STAGED:
            return False
        self._discard(entry)
        return True

    def preview(self, target: Any) -> AttachmentPreview:
        if isinstance(target, Document):
            return AttachmentPreview(target.url)
        entry = self._resolve_entry(target)
        if entry is None:
            raise AttachmentError(f"No attachment to preview for {target!r}")
        if entry.state is AttachmentState.COMMITTED and entry.document is not None:
            return AttachmentPreview(entry.document.url, attachment_id=entry.id)
        token = uuid4().hex
        self._previews[token] = entry.id
        return AttachmentPreview(
            self._preview_url_factory(token),
            token=token,
            attachment_id=entry.id,
            on_release=self.release_preview,
        )

    def preview_file(self, token: str) -> StagedFile | None:
        attachment_id = self._previews.get(token)
        if attachment_id is None:
            return None
        entry = self.get(attachment_id)
        return entry.file if entry is not None else None

    def release_preview(self, token: str) -> bool:
        return self._previews.pop(token, None) is not None

    def open_previews(self) -> list[str]:
        return list(self._previews)

    def clear(self) -> None:
        for entry in self.pending():
            self._discard(entry)
        self._previews.clear()

    def _resolve_entry(self, target: Any) -> StagedAttachment | None:
        if isinstance(target, StagedAttachment):
            return target
        if isinstance(target, bool):
            return None
        if isinstance(target, int):
            if 0 <= target < len(self._additional):
                return self._additional[target]
            return None
        if isinstance(target, str):
            entry = self.get(target)
            if entry is not None:
                return entry
            return self._slots.get(target.strip().lower())
        return None

    def _discard(self, entry: StagedAttachment) -> None:
        entry.state = AttachmentState.REMOVED
        if self._slots.get(entry.doc_type) is entry:
            del self._slots[entry.doc_type]
        if entry in self._additional:
            self._additional.remove(entry)
        for token in [t for t, attachment_id in self._previews.items() if attachment_id == entry.id]:
            del self._previews[token]

    async def _upload(self, entry: StagedAttachment, entity_id: str) -> Document:
        entry.state = AttachmentState.UPLOADING
        payload = await self._uploader.upload_document(
            file=entry.file,
            entity_type=self.entity_type,
            entity_id=entity_id,
            document_type=entry.doc_type,
            label=entry.label,
        )
        document = Document.from_payload(payload, fallback_name=entry.file.filename)
        entry.state = AttachmentState.COMMITTED
        entry.document = document
        if self._slots.get(entry.doc_type) is entry:
            del self._slots[entry.doc_type]
        if entry in self._additional:
            self._additional.remove(entry)
        self._committed.append(entry)
        self.documents.append(document)
        return document
