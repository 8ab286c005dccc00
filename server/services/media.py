"""
Local Media Storage - server/services/media.py

Stores uploaded attachments under UPLOAD_DIR (served at /uploads) and loads
media for outbound messages, either from that directory or from an
http(s) URL.
"""

from __future__ import annotations

import asyncio
import base64
import mimetypes
import re
import time
import unicodedata
import uuid
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

import httpx

from server.core.errors import InvalidArgument, NotFound
from server.core.monitoring import log_event, log_exception
from server.whatsapp.provider import MediaPayload

UPLOAD_URL_PREFIX = "/uploads/"

# Timeout for remote media downloads (in seconds)
MEDIA_TIMEOUT = 60.0

DEFAULT_MIME_TYPE = "application/octet-stream"


# ============================================================================
# FILENAME SANITIZATION
# ============================================================================


def sanitize_filename(filename: str, max_length: int = 180) -> str:
    """
    Sanitize filename for safe local storage.

    Normalizes unicode and removes path separators and invalid characters.
    """
    if not filename:
        return f"file_{uuid.uuid4().hex[:8]}"

    # NFC normalize unicode, never keep directory parts
    filename = unicodedata.normalize("NFC", filename)
    filename = re.split(r"[\\/]", filename)[-1]

    # Split into name and extension
    if "." in filename:
        name, ext = filename.rsplit(".", 1)
        ext = "." + re.sub(r"[^\w]", "", ext)
        if ext == ".":
            ext = ""
    else:
        name = filename
        ext = ""

    # Replace spaces and control characters with underscores
    name = re.sub(r"[\s\x00-\x1f\x7f]+", "_", name)

    # Remove characters invalid on common filesystems: <>:"|?*
    name = re.sub(r'[<>:"|?*]+', "", name)

    # Replace multiple underscores with single
    name = re.sub(r"_+", "_", name)

    # Strip leading/trailing underscores and dots
    name = name.strip("_.")

    if not name:
        name = f"file_{uuid.uuid4().hex[:8]}"

    # Cap length while preserving extension
    max_name_len = max_length - len(ext) - 1
    if len(name) > max_name_len:
        name = name[:max_name_len].rstrip("_.")

    return name + ext


def unique_filename(filename: str) -> str:
    """`<millis>-<random>_<sanitized name>` so uploads never collide."""
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}_{sanitize_filename(filename)}"


# ============================================================================
# UPLOADS
# ============================================================================


async def save_upload(
    upload_dir: Path, filename: str, data: bytes, max_bytes: Optional[int] = None
) -> str:
    """
    Write an uploaded file and return its public URL path.

    Raises InvalidArgument for empty or oversized files.
    """
    if not data:
        raise InvalidArgument("No file uploaded")
    if max_bytes is not None and len(data) > max_bytes:
        raise InvalidArgument(f"File exceeds the {max_bytes} byte upload limit")

    stored_name = unique_filename(filename)
    path = Path(upload_dir) / stored_name
    await asyncio.to_thread(path.write_bytes, data)

    log_event("media_uploaded", filename=stored_name, size=len(data))
    return f"{UPLOAD_URL_PREFIX}{stored_name}"


def resolve_upload_path(upload_dir: Path, url: str) -> Path:
    """Map an /uploads/... URL to a file inside upload_dir, refusing escapes."""
    relative = url.split("?")[0].lstrip("/")
    if relative.startswith(UPLOAD_URL_PREFIX.strip("/") + "/"):
        relative = relative[len(UPLOAD_URL_PREFIX.strip("/")) + 1:]

    root = Path(upload_dir).resolve()
    path = (root / relative).resolve()
    if root != path and root not in path.parents:
        raise NotFound(f"Media file not found: {url}")
    return path


# ============================================================================
# LOADING MEDIA FOR SENDS
# ============================================================================


async def load_media(url: str, upload_dir: Path) -> MediaPayload:
    """
    Load an attachment as a base64 payload.

    http(s) URLs are downloaded; anything else must name a file in upload_dir.
    """
    if not url:
        raise InvalidArgument("Media URL is required")

    scheme = urlparse(url).scheme.lower()
    if scheme in ("http", "https"):
        return await _download_media(url)

    path = resolve_upload_path(upload_dir, url)
    if not path.is_file():
        raise NotFound(f"Media file not found: {url}")

    data = await asyncio.to_thread(path.read_bytes)
    mime_type = mimetypes.guess_type(path.name)[0] or DEFAULT_MIME_TYPE
    return MediaPayload(
        mimetype=mime_type,
        data=base64.b64encode(data).decode("ascii"),
        filename=path.name,
    )


async def _download_media(url: str) -> MediaPayload:
    try:
        async with httpx.AsyncClient(timeout=MEDIA_TIMEOUT, follow_redirects=True) as client:
            response = await client.get(url)
    except httpx.HTTPError as e:
        log_exception("media_download_failed", e, url=url)
        raise InvalidArgument(f"Failed to download media: {url}") from e

    if response.status_code != 200:
        log_event(
            "media_download_failed",
            level="warning",
            url=url,
            status_code=response.status_code,
        )
        raise InvalidArgument(
            f"Failed to download media: HTTP {response.status_code}"
        )

    mime_type = (
        response.headers.get("content-type", "").split(";")[0].strip()
        or DEFAULT_MIME_TYPE
    )
    filename = Path(urlparse(url).path).name or None
    return MediaPayload(
        mimetype=mime_type,
        data=base64.b64encode(response.content).decode("ascii"),
        filename=filename,
    )
