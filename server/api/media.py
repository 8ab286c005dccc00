"""
Media Upload API endpoint.
"""

import mimetypes

from fastapi import APIRouter, File, UploadFile

from server.dependencies import ContextDep
from server.schemas.media import UploadResponse
from server.services.media import DEFAULT_MIME_TYPE, save_upload

router = APIRouter(tags=["Media"])


@router.post("/upload-media", response_model=UploadResponse)
async def upload_media(context: ContextDep, file: UploadFile = File(...)):
    """
    Store an attachment under the upload directory.

    The returned `url` can be passed as `media.url` to /api/send-message.
    """
    data = await file.read()
    filename = file.filename or "upload"

    url = await save_upload(
        context.upload_dir,
        filename,
        data,
        max_bytes=context.settings.MAX_UPLOAD_BYTES,
    )

    return UploadResponse(
        url=url,
        filename=url.rsplit("/", 1)[-1],
        size=len(data),
        mimetype=(
            file.content_type
            or mimetypes.guess_type(filename)[0]
            or DEFAULT_MIME_TYPE
        ),
    )
