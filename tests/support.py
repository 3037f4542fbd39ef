from __future__ import annotations

import copy
import dataclasses
from datetime import date, datetime, timedelta, timezone
from io import BytesIO
from pathlib import Path

from app.core.config import Settings, load_settings

SAMPLE_RESUME = """Jane Doe
Email: jane.doe@example.com | Phone: 555-123-4567
Professional Summary
Software engineer with 5 years of experience building Python services.
Experience
Senior Developer, Acme Corp (2019 - 2024)
- Led migration of billing APIs to Python and AWS, improved latency by 40%
- Managed a team of 4 engineers and reduced incident count by 30%
Education
Bachelor's degree in Computer Science, State University
Skills
Python, JavaScript, SQL, Git, Docker, AWS, React
"""


def make_settings(data_dir: Path, **overrides) -> Settings:
    base = load_settings()
    values = {
        "data_dir": Path(data_dir),
        "rate_limit_enabled": False,
        "llm_enabled": False,
        "openai_api_key": None,
        "redis_url": None,
        "admin_username": "admin",
        "admin_password": "correct-horse-battery",
        "admin_token_secret": "test-token-secret",
        "job_backoff_s": 0.01,
        "job_poll_interval_s": 0.05,
    }
    values.update(overrides)
    return dataclasses.replace(base, **values)


def _pdf_escape(line: str) -> str:
    return line.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")


def build_pdf(text: str) -> bytes:
    """Single-page PDF whose text layer holds the given lines."""
    lines = [line for line in text.splitlines() if line.strip()]
    ops = ["BT", "/F1 10 Tf", "14 TL", "50 780 Td"]
    for line in lines:
        ops.append(f"({_pdf_escape(line)}) Tj")
        ops.append("T*")
    ops.append("ET")
    stream = "\n".join(ops).encode("latin-1", errors="replace")

    objects = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        b"<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
        b"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 842] "
        b"/Resources << /Font << /F1 5 0 R >> >> /Contents 4 0 R >>",
        b"<< /Length " + str(len(stream)).encode() + b" >>\nstream\n" + stream + b"\nendstream",
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
    ]
    out = BytesIO()
    out.write(b"%PDF-1.4\n")
    offsets = []
    for number, body in enumerate(objects, start=1):
        offsets.append(out.tell())
        out.write(f"{number} 0 obj\n".encode() + body + b"\nendobj\n")
    xref_at = out.tell()
    out.write(f"xref\n0 {len(objects) + 1}\n".encode())
    out.write(b"0000000000 65535 f \n")
    for offset in offsets:
        out.write(f"{offset:010d} 00000 n \n".encode())
    out.write(f"trailer\n<< /Size {len(objects) + 1} /Root 1 0 R >>\nstartxref\n{xref_at}\n%%EOF\n".encode())
    return out.getvalue()


def build_docx(paragraphs: list[str]) -> bytes:
    from docx import Document

    document = Document()
    for paragraph in paragraphs:
        document.add_paragraph(paragraph)
    buffer = BytesIO()
    document.save(buffer)
    return buffer.getvalue()


class MutableClock:
    """Callable clock that tests can move forward explicitly."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 3, 14, 9, 30, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)

    def today(self) -> date:
        return self.now.date()


class MemoryStore:
    def __init__(self):
        self.documents: dict[str, dict] = {}
        self.saves = 0

    def load(self, name: str):
        document = self.documents.get(name)
        return None if document is None else copy.deepcopy(document)

    def save(self, name: str, document: dict) -> None:
        self.saves += 1
        self.documents[name] = copy.deepcopy(document)
