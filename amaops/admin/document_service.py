from __future__ import annotations

import os
import re
from datetime import datetime
from io import BytesIO
from typing import Dict, Iterable, Optional

import docx
from fastapi import HTTPException

from ..config import Config
from ..core.logging import get_logger
from ..core.models import Sec21NoticeRequest


logger = get_logger(__name__)

DOCX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
SEC21_FIELDS = ("ClientName", "bankName", "bankAddress", "bankEmail", "customerId", "today")
_TAG = re.compile(r"\{(\w+)\}")
_DATE_INPUT_FORMATS = ("%Y-%m-%d", "%Y-%m-%dT%H:%M:%S", "%Y-%m-%dT%H:%M:%S.%f", "%m/%d/%Y", "%B %d, %Y", "%d %B %Y")


def format_notice_date(value: str) -> str:
    """``2025-03-04`` -> ``04/03/2025``; unparseable input is returned unchanged."""
    text = value.strip()
    for fmt in _DATE_INPUT_FORMATS:
        try:
            parsed = datetime.strptime(text.rstrip("Z"), fmt)
        except ValueError:
            continue
        return parsed.strftime("%d/%m/%Y")
    return value


def _one_per_line(value: str) -> str:
    return "\n".join(part.strip() for part in value.split(","))


def notice_context(request: Sec21NoticeRequest) -> Dict[str, str]:
    values = {name: getattr(request, name) for name in SEC21_FIELDS}
    if not all(values.values()):
        raise HTTPException(status_code=400, detail="All fields are required.")
    values["bankAddress"] = _one_per_line(values["bankAddress"])
    values["bankEmail"] = _one_per_line(values["bankEmail"])
    values["today"] = format_notice_date(values["today"])
    return values


def load_template(path: Optional[str] = None) -> bytes:
    path = path or Config.SEC21_TEMPLATE_PATH
    if Config.use_firestore():
        from ..core.database import get_storage_bucket

        blob = get_storage_bucket().blob(path)
        if not blob.exists():
            raise HTTPException(status_code=404, detail=f'Template file "{path}" not found in storage.')
        return blob.download_as_bytes()

    local_path = os.path.join(Config.SEC21_TEMPLATE_DIR, os.path.basename(path))
    if not os.path.exists(local_path):
        raise HTTPException(status_code=404, detail=f'Template file "{path}" not found.')
    with open(local_path, "rb") as handle:
        return handle.read()


def _paragraphs(document) -> Iterable:
    yield from document.paragraphs
    for table in document.tables:
        for row in table.rows:
            for cell in row.cells:
                yield from cell.paragraphs
    for section in document.sections:
        for part in (section.header, section.footer):
            yield from part.paragraphs


def _render_paragraph(paragraph, context: Dict[str, str]) -> None:
    # Word splits typed text across runs, so tags are matched on the joined paragraph text.
    original = paragraph.text
    if "{" not in original:
        return
    rendered = _TAG.sub(lambda match: context.get(match.group(1), match.group(0)), original)
    if rendered == original:
        return

    runs = paragraph.runs
    for run in runs[1:]:
        run.text = ""
    target = runs[0] if runs else paragraph.add_run()
    # Run.text turns "\n" into line breaks.
    target.text = rendered


def render_docx(template: bytes, context: Dict[str, str]) -> bytes:
    document = docx.Document(BytesIO(template))
    for paragraph in _paragraphs(document):
        _render_paragraph(paragraph, context)
    output = BytesIO()
    document.save(output)
    return output.getvalue()


def generate_sec21_notice(request: Sec21NoticeRequest) -> Dict[str, object]:
    context = notice_context(request)
    content = render_docx(load_template(), context)
    filename = f"{context['ClientName']}_sec21_notice.docx"
    logger.info("Section 21 notice generated.", extra={"client": context["ClientName"], "size": len(content)})
    return {"filename": filename, "content": content, "media_type": DOCX_MEDIA_TYPE}
