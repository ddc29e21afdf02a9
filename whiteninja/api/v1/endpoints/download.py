"""
Download Endpoint - zip a set of generated files
"""

import io
import zipfile
from typing import List

from fastapi import APIRouter
from fastapi.responses import StreamingResponse

from whiteninja.core.exceptions import InvalidPathError
from whiteninja.core.logging_config import logger
from whiteninja.modules.automation.file_manager import sanitize_path
from whiteninja.schemas.build import DownloadFile, DownloadRequest


router = APIRouter(tags=["Download"])

ARCHIVE_NAME = "white-ninja-build.zip"


def create_zip_bundle(files: List[DownloadFile]) -> bytes:
    """
    Build a deflated zip in memory.

    Paths go through the same sanitization as the file store; a path that
    sanitizes to nothing is left out. A later duplicate path wins.
    """
    contents = {}
    for file in files:
        try:
            path = sanitize_path(file.path)
        except InvalidPathError:
            logger.warning(f"[Download] Skipping unusable path {file.path!r}")
            continue
        contents[path] = file.content or ""

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED, compresslevel=9) as archive:
        for path, content in contents.items():
            archive.writestr(path, content)
    return buffer.getvalue()


@router.post("/download")
async def download_build(request: DownloadRequest):
    """Return the submitted files as a zip attachment"""
    data = create_zip_bundle(request.files)
    logger.info(f"[Download] Bundled {len(request.files)} file(s), {len(data)} bytes")

    return StreamingResponse(
        io.BytesIO(data),
        media_type="application/zip",
        headers={
            "Content-Disposition": f'attachment; filename="{ARCHIVE_NAME}"'
        }
    )
