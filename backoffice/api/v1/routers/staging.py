from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Response, UploadFile, status

from backoffice.api import deps
from backoffice.core.settings import settings
from backoffice.core.signing import verify_signature
from backoffice.schemas.documents import (
    DocumentDTO,
    FailedUploadDTO,
    FlushReportDTO,
    FlushRequest,
    PreviewCreate,
    PreviewDTO,
    StagedAttachmentDTO,
    StagingSessionCreate,
    StagingSessionDTO,
)
from backoffice.services.attachments import ADDITIONAL_DOC_TYPE, AttachmentError, StagedAttachment
from backoffice.services.backend_client import ConsoleBackendClient
from backoffice.services.ownership import Actor
from backoffice.services.staging_sessions import (
    StagingSession,
    StagingSessionError,
    StagingSessionRegistry,
)
from backoffice.services.upload_checks import read_upload

router = APIRouter(prefix="/staging-sessions", tags=["staging-sessions"])


def session_http_error(exc: StagingSessionError) -> HTTPException:
    status_code = (
        status.HTTP_403_FORBIDDEN
        if exc.code == "staging_session_forbidden"
        else status.HTTP_404_NOT_FOUND
    )
    return HTTPException(status_code=status_code, detail={"code": exc.code, "message": exc.message})


def _ascii_filename(filename: str) -> str:
    safe = "".join(ch for ch in filename if 32 <= ord(ch) < 127 and ch not in '"\\').strip()
    stem, dot, ext = safe.rpartition(".")
    if not dot:
        stem, ext = safe, ""
    if not stem.strip(" ."):
        return f"document.{ext}" if ext else "document"
    return safe


def content_disposition(filename: str) -> str:
    """Inline disposition with an ASCII fallback and an RFC 5987 UTF-8 name."""
    return f"inline; filename=\"{_ascii_filename(filename)}\"; filename*=UTF-8''{quote(filename, safe='')}"


def attachment_dto(entry: StagedAttachment) -> StagedAttachmentDTO:
    return StagedAttachmentDTO(
        id=entry.id,
        doc_type=entry.doc_type,
        filename=entry.file.filename,
        content_type=entry.file.content_type,
        size_bytes=entry.file.size,
        label=entry.label,
        state=entry.state.value,
        sequence=entry.sequence,
        document=DocumentDTO.model_validate(entry.document) if entry.document else None,
    )


def session_dto(session: StagingSession) -> StagingSessionDTO:
    stager = session.stager
    return StagingSessionDTO(
        id=session.id,
        entity_type=session.entity_type,
        entity_id=stager.entity_id or None,
        expires_at=session.expires_at,
        slots={doc_type: attachment_dto(entry) for doc_type, entry in stager.slots.items()},
        additional=[attachment_dto(entry) for entry in stager.additional],
        documents=[DocumentDTO.model_validate(doc) for doc in stager.documents],
    )


async def get_session(
    session_id: str,
    token: str = Depends(deps.get_token),
    actor: Actor = Depends(deps.get_actor),
    client: ConsoleBackendClient = Depends(deps.get_backend_client),
    registry: StagingSessionRegistry = Depends(deps.get_staging_registry),
) -> StagingSession:
    try:
        session = registry.get(session_id, actor_id=actor.id)
    except StagingSessionError as exc:
        raise session_http_error(exc) from exc
    # Uploads always go out with the token of the request that triggers them.
    session.stager.use_uploader(client.bind(token))
    return session


@router.post(
    "",
    response_model=StagingSessionDTO,
    status_code=status.HTTP_201_CREATED,
    summary="Open a staging area for an entity form",
)
async def open_session(
    payload: StagingSessionCreate,
    token: str = Depends(deps.get_token),
    actor: Actor = Depends(deps.get_actor),
    client: ConsoleBackendClient = Depends(deps.get_backend_client),
    registry: StagingSessionRegistry = Depends(deps.get_staging_registry),
) -> StagingSessionDTO:
    session = registry.open(
        actor_id=actor.id,
        entity_type=payload.entity_type,
        uploader=client.bind(token),
        entity_id=payload.entity_id,
    )
    return session_dto(session)


@router.get("/{session_id}", response_model=StagingSessionDTO, summary="Staged and committed attachments")
async def read_session(session: StagingSession = Depends(get_session)) -> StagingSessionDTO:
    return session_dto(session)


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Discard a staging area")
async def discard_session(
    session_id: str,
    actor: Actor = Depends(deps.get_actor),
    registry: StagingSessionRegistry = Depends(deps.get_staging_registry),
) -> None:
    try:
        registry.discard(session_id, actor_id=actor.id)
    except StagingSessionError as exc:
        raise session_http_error(exc) from exc
    return None


@router.put(
    "/{session_id}/documents/{doc_type}",
    response_model=StagedAttachmentDTO,
    summary="Stage a document; uploads immediately when the entity already exists",
)
async def stage_document(
    doc_type: str,
    file: UploadFile = File(...),
    label: str | None = Form(default=None),
    session: StagingSession = Depends(get_session),
) -> StagedAttachmentDTO:
    try:
        staged_file = await read_upload(
            file,
            allowed_extensions=settings.allowed_upload_extensions,
            max_size_bytes=settings.max_upload_size_bytes,
        )
        entry = await session.stager.stage(doc_type, staged_file, label=label)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return attachment_dto(entry)


@router.delete(
    "/{session_id}/documents/{doc_type}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove a staged single-slot document",
)
async def remove_document(doc_type: str, session: StagingSession = Depends(get_session)) -> None:
    if doc_type.strip().lower() == ADDITIONAL_DOC_TYPE or not session.stager.remove(doc_type):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No staged document for that type")
    return None


@router.delete(
    "/{session_id}/additional/{index}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove a staged additional document by position",
)
async def remove_additional(index: int, session: StagingSession = Depends(get_session)) -> None:
    if not session.stager.remove(index):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No staged additional document at that position")
    return None


@router.post(
    "/{session_id}/previews",
    response_model=PreviewDTO,
    status_code=status.HTTP_201_CREATED,
    summary="Open a preview of a staged or committed document",
)
async def open_preview(payload: PreviewCreate, session: StagingSession = Depends(get_session)) -> PreviewDTO:
    target = payload.attachment_id or payload.doc_type
    if target is None:
        target = payload.index
    if target is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Provide attachment_id, doc_type or index",
        )
    try:
        preview = session.stager.preview(target)
    except AttachmentError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return PreviewDTO(url=preview.url, token=preview.token, temporary=preview.temporary)


@router.get("/{session_id}/previews/{token}", summary="Signed content of a staged document")
async def read_preview(
    session_id: str,
    token: str,
    expires: int = Query(...),
    signature: str = Query(...),
    registry: StagingSessionRegistry = Depends(deps.get_staging_registry),
) -> Response:
    if not verify_signature(settings.secret_key, deps.preview_path(session_id, token), expires, signature):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid or expired preview link")
    session = registry.peek(session_id)
    staged_file = session.stager.preview_file(token) if session is not None else None
    if staged_file is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Preview released or not found")
    return Response(
        content=staged_file.content,
        media_type=staged_file.content_type,
        headers={
            "Content-Disposition": content_disposition(staged_file.filename),
            "Cache-Control": "no-store",
        },
    )


@router.delete(
    "/{session_id}/previews/{token}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Release a staged document preview",
)
async def release_preview(token: str, session: StagingSession = Depends(get_session)) -> None:
    session.stager.release_preview(token)
    return None


@router.post(
    "/{session_id}/flush",
    response_model=FlushReportDTO,
    summary="Upload every staged document against a newly created entity",
)
async def flush_session(payload: FlushRequest, session: StagingSession = Depends(get_session)) -> FlushReportDTO:
    try:
        report = await session.stager.flush(payload.entity_id)
    except AttachmentError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return FlushReportDTO(
        entity_id=report.entity_id,
        committed=[DocumentDTO.model_validate(doc) for doc in report.committed],
        failed=[FailedUploadDTO.model_validate(item) for item in report.failed],
    )
