from urllib.parse import quote

from fastapi import APIRouter
from fastapi.responses import Response

from ...admin.document_service import generate_sec21_notice
from ...core.models import Sec21NoticeRequest


router = APIRouter(tags=["Documents"])


@router.post("/sec21-notice")
def post_sec21_notice(body: Sec21NoticeRequest) -> Response:
    notice = generate_sec21_notice(body)
    filename = notice["filename"]
    ascii_name = filename.encode("ascii", "replace").decode("ascii").replace('"', "'")
    return Response(
        content=notice["content"],
        media_type=notice["media_type"],
        headers={
            "Content-Disposition": f"attachment; filename=\"{ascii_name}\"; filename*=UTF-8''{quote(filename)}",
        },
    )
