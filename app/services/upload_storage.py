from __future__ import annotations

import logging
import re
import secrets
from pathlib import Path

from fastapi import UploadFile

from app.core.errors import ValidationError
from app.parsing.uploads import format_file_size

logger = logging.getLogger(__name__)

CHUNK_BYTES = 64 * 1024
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def safe_upload_name(filename: str | None) -> str:
    base = Path(filename or "resume").name
    cleaned = _UNSAFE_CHARS.sub("_", base).strip("._") or "resume"
    return f"{secrets.token_hex(8)}_{cleaned[:120]}"


async def save_upload(upload: UploadFile, directory: Path, max_bytes: int) -> tuple[Path, bytes]:
    """Stream an upload to disk, refusing anything over max_bytes.

    Returns the stored path and the full payload. The partial file is removed
    when the limit is hit.
    """
    directory.mkdir(parents=True, exist_ok=True)
    target = directory / safe_upload_name(upload.filename)
    chunks: list[bytes] = []
    total = 0
    try:
        with target.open("wb") as handle:
            while True:
                chunk = await upload.read(CHUNK_BYTES)
                if not chunk:
                    break
                total += len(chunk)
                if total > max_bytes:
                    raise ValidationError(f"File too large. Maximum size is {format_file_size(max_bytes)}.")
                handle.write(chunk)
                chunks.append(chunk)
    except Exception:
        remove_upload(target)
        raise
    return target, b"".join(chunks)


def remove_upload(path: Path | None) -> None:
    if path is None:
        return
    try:
        path.unlink(missing_ok=True)
    except OSError as exc:
        logger.warning("upload_cleanup_failed path=%s: %s", path, exc)
