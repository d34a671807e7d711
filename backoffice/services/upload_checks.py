from __future__ import annotations

from pathlib import Path

from fastapi import UploadFile

from backoffice.services.attachments import StagedFile


# Magic byte signatures for the binary types the console accepts.
_MAGIC_SIGNATURES: dict[str, list[bytes]] = {
    ".pdf": [b"%PDF"],
    ".png": [b"\x89PNG\r\n\x1a\n"],
    ".jpg": [b"\xff\xd8\xff"],
    ".jpeg": [b"\xff\xd8\xff"],
    ".gif": [b"GIF87a", b"GIF89a"],
    ".webp": [b"RIFF"],
}

# Extensions whose content can execute scripts when rendered in a browser.
_DANGEROUS_EXTENSIONS = {".html", ".htm", ".svg", ".xhtml", ".js", ".mjs", ".xml"}

_CONTENT_TYPES = {
    ".pdf": "application/pdf",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
}

_CHUNK_SIZE = 1024 * 1024


def _validate_content_type(header_bytes: bytes, ext: str) -> None:
    if ext in _DANGEROUS_EXTENSIONS:
        raise ValueError(
            f"File type '{ext}' is not allowed because it may contain executable content"
        )
    signatures = _MAGIC_SIGNATURES.get(ext)
    if signatures is None:
        return
    if not any(header_bytes.startswith(sig) for sig in signatures):
        raise ValueError(f"File content does not match the expected format for '{ext}'")
    if ext == ".webp" and header_bytes[8:12] != b"WEBP":
        raise ValueError("File content does not match the expected format for '.webp'")


def _safe_filename(filename: str | None, fallback: str) -> str:
    if not filename:
        return fallback
    return Path(filename).name or fallback


def _normalize_allowed(allowed_extensions: set[str] | list[str]) -> set[str]:
    normalized = {e.lower() if e.startswith(".") else f".{e.lower()}" for e in allowed_extensions}
    if ".jpeg" in normalized:
        normalized.add(".jpg")
    if ".jpg" in normalized:
        normalized.add(".jpeg")
    return normalized


def check_file(
    filename: str | None,
    content: bytes,
    *,
    allowed_extensions: set[str] | list[str] | None = None,
    max_size_bytes: int = 0,
    content_type: str | None = None,
) -> StagedFile:
    """Validate an in-memory upload and wrap it for staging.

    Raises ValueError for disallowed types, mismatched content, empty files
    or files over ``max_size_bytes``.
    """
    original_name = _safe_filename(filename, "upload.bin")
    ext = Path(original_name).suffix.lower()

    if allowed_extensions:
        normalized_allowed = _normalize_allowed(allowed_extensions)
        if ext not in normalized_allowed:
            raise ValueError(
                f"File type not allowed. Allowed extensions: {', '.join(sorted(normalized_allowed))}"
            )
    if not content:
        raise ValueError("File is empty")
    if max_size_bytes and len(content) > max_size_bytes:
        raise ValueError(
            f"File exceeds maximum allowed size of {max_size_bytes // (1024 * 1024)} MB"
        )
    _validate_content_type(content[:_CHUNK_SIZE], ext)

    resolved_type = _CONTENT_TYPES.get(ext) or content_type or "application/octet-stream"
    return StagedFile(filename=original_name, content=content, content_type=resolved_type)


async def read_upload(
    file: UploadFile,
    *,
    allowed_extensions: set[str] | list[str] | None = None,
    max_size_bytes: int = 0,
) -> StagedFile:
    chunks: list[bytes] = []
    total = 0
    try:
        while True:
            chunk = await file.read(_CHUNK_SIZE)
            if not chunk:
                break
            total += len(chunk)
            if max_size_bytes and total > max_size_bytes:
                raise ValueError(
                    f"File exceeds maximum allowed size of {max_size_bytes // (1024 * 1024)} MB"
                )
            chunks.append(chunk)
    finally:
        await file.close()

    return check_file(
        file.filename,
        b"".join(chunks),
        allowed_extensions=allowed_extensions,
        max_size_bytes=max_size_bytes,
        content_type=file.content_type,
    )
