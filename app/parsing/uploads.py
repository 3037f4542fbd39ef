from __future__ import annotations

from dataclasses import dataclass, field
from io import BytesIO
from typing import Any
from zipfile import ZipFile

from app.parsing.extract import SUPPORTED_MIME_TYPES

SUPPORTED_EXTENSIONS = ("pdf", "doc", "docx")

PDF_MAGIC = b"%PDF-"
OLE_MAGIC = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"
ZIP_MAGICS = (b"PK\x03\x04", b"PK\x05\x06", b"PK\x07\x08")

_SIZE_UNITS = ("Bytes", "KB", "MB", "GB")


@dataclass
class FileCheck:
    filename: str
    content_type: str
    size: int
    errors: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


@dataclass
class BatchCheck:
    valid: list[FileCheck]
    invalid: list[FileCheck]
    total_size: int
    max_batch_size: int
    batch_size_error: str | None = None

    @property
    def is_valid_batch(self) -> bool:
        return not self.invalid and self.batch_size_error is None

    def details(self) -> list[dict[str, Any]]:
        return [{"filename": item.filename, "errors": item.errors} for item in self.invalid]


def extension_from_filename(filename: str) -> str:
    if "." not in filename:
        return ""
    return filename.rsplit(".", 1)[-1].strip().lower()


def _is_zip_payload(content: bytes) -> bool:
    return any(content.startswith(prefix) for prefix in ZIP_MAGICS)


def _zip_has_paths(content: bytes, prefixes: tuple[str, ...]) -> bool:
    try:
        with ZipFile(BytesIO(content)) as archive:
            names = archive.namelist()
    except Exception:
        return False
    return any(name.startswith(prefixes) for name in names)


def signature_error(ext: str, content: bytes) -> str | None:
    if ext == "pdf" and not content.startswith(PDF_MAGIC):
        return "File signature does not match .pdf content"
    if ext == "docx" and not (_is_zip_payload(content) and _zip_has_paths(content, ("word/",))):
        return "File signature does not match .docx content"
    if ext == "doc" and not (content.startswith(OLE_MAGIC) or _is_zip_payload(content)):
        return "File signature does not match .doc content"
    return None


def validate_upload(
    *,
    filename: str,
    content_type: str,
    size: int,
    max_bytes: int,
    content: bytes | None = None,
) -> FileCheck:
    check = FileCheck(filename=filename, content_type=content_type, size=size)
    if size > max_bytes:
        check.errors.append(
            f"File size ({round(size / 1024 / 1024)}MB) exceeds maximum allowed size ({format_file_size(max_bytes)})"
        )

    ext = extension_from_filename(filename)
    if ext not in SUPPORTED_EXTENSIONS:
        check.errors.append(
            f"File type '{ext}' is not supported. Allowed types: {', '.join(SUPPORTED_EXTENSIONS)}"
        )

    mime = (content_type or "").split(";")[0].strip().lower()
    if mime not in SUPPORTED_MIME_TYPES:
        check.errors.append(f"MIME type '{mime}' is not supported")

    if content is not None and ext in SUPPORTED_EXTENSIONS:
        mismatch = signature_error(ext, content)
        if mismatch:
            check.errors.append(mismatch)
    return check


def validate_batch(checks: list[FileCheck], *, max_total_bytes: int) -> BatchCheck:
    batch = BatchCheck(
        valid=[item for item in checks if item.is_valid],
        invalid=[item for item in checks if not item.is_valid],
        total_size=sum(item.size for item in checks),
        max_batch_size=max_total_bytes,
    )
    if batch.total_size > max_total_bytes:
        batch.batch_size_error = (
            f"Total batch size ({format_file_size(batch.total_size)}) exceeds "
            f"maximum allowed ({format_file_size(max_total_bytes)})"
        )
    return batch


def format_file_size(size: int) -> str:
    if size <= 0:
        return "0 Bytes"
    scaled = float(size)
    index = 0
    while scaled >= 1024 and index < len(_SIZE_UNITS) - 1:
        scaled /= 1024
        index += 1
    value = f"{scaled:.2f}".rstrip("0").rstrip(".")
    return f"{value} {_SIZE_UNITS[index]}"


def format_processing_time(milliseconds: int) -> str:
    if milliseconds < 1000:
        return f"{milliseconds}ms"
    if milliseconds < 60000:
        return f"{milliseconds / 1000:.1f}s"
    minutes = milliseconds // 60000
    seconds = (milliseconds % 60000) / 1000
    return f"{minutes}m {seconds:.1f}s"


def processing_efficiency(size: int, milliseconds: int) -> str:
    """Grade throughput in bytes per millisecond."""
    if milliseconds <= 0:
        return "Excellent"
    rate = size / milliseconds
    if rate > 1000:
        return "Excellent"
    if rate > 500:
        return "Good"
    if rate > 100:
        return "Fair"
    return "Slow"


def processing_stats(*, filename: str, size: int, content_type: str, elapsed_ms: int) -> dict[str, Any]:
    return {
        "filename": filename,
        "fileSize": size,
        "fileSizeFormatted": format_file_size(size),
        "mimeType": content_type,
        "processingTime": elapsed_ms,
        "processingTimeFormatted": format_processing_time(elapsed_ms),
        "efficiency": processing_efficiency(size, elapsed_ms),
    }


def optimization_recommendations(*, filename: str, size: int) -> list[dict[str, str]]:
    recommendations: list[dict[str, str]] = []
    if size > 3 * 1024 * 1024:
        recommendations.append(
            {
                "type": "size",
                "priority": "medium",
                "message": "Consider reducing file size for faster processing",
                "suggestion": "Save as PDF with standard compression or remove unnecessary images",
            }
        )
    if len(filename) > 100:
        recommendations.append(
            {
                "type": "filename",
                "priority": "low",
                "message": "Filename is very long",
                "suggestion": "Use shorter, descriptive filenames",
            }
        )
    if extension_from_filename(filename) == "doc":
        recommendations.append(
            {
                "type": "format",
                "priority": "low",
                "message": "Consider using newer format",
                "suggestion": "Save as .docx or .pdf for better compatibility",
            }
        )
    return recommendations


FEEDBACK_LIMITS = {"strengths": 5, "improvements": 5, "industrySpecific": 3}
ATS_SUGGESTIONS_PER_CATEGORY = 2


def trim_analysis(analysis: dict[str, Any]) -> dict[str, Any]:
    """Cap the feedback and ATS suggestion lists of a serialized analysis."""
    trimmed = dict(analysis)
    feedback = trimmed.get("feedback")
    if isinstance(feedback, dict):
        feedback = dict(feedback)
        for name, limit in FEEDBACK_LIMITS.items():
            if isinstance(feedback.get(name), list):
                feedback[name] = feedback[name][:limit]
        trimmed["feedback"] = feedback
    ats = trimmed.get("atsCompatibility")
    if isinstance(ats, dict) and isinstance(ats.get("recommendations"), list):
        ats = dict(ats)
        ats["recommendations"] = [
            {**item, "suggestions": list(item.get("suggestions", []))[:ATS_SUGGESTIONS_PER_CATEGORY]}
            for item in ats["recommendations"]
        ]
        trimmed["atsCompatibility"] = ats
    return trimmed
