import os
import posixpath
from typing import List, Optional, Tuple
from urllib.parse import urljoin, urlparse
from uuid import uuid4

from flask import current_app, request
from werkzeug.exceptions import BadRequest
from werkzeug.utils import secure_filename


def allowed_upload_extension(filename: str) -> bool:
    extension = os.path.splitext(filename)[1].lower().lstrip(".")
    if not extension:
        return False
    return extension in current_app.config["ALLOWED_UPLOAD_EXTENSIONS"]


def save_upload(upload) -> Tuple[Optional[str], Optional[str]]:
    if not upload or not getattr(upload, "filename", ""):
        return None, "A file is required."

    original_filename = secure_filename(upload.filename)
    if not original_filename:
        return None, "Please choose a valid file name."

    if not allowed_upload_extension(original_filename):
        return None, "Unsupported file format."

    extension = os.path.splitext(original_filename)[1].lower()
    unique_filename = f"{uuid4().hex}{extension}"
    destination = os.path.join(current_app.config["UPLOAD_FOLDER"], unique_filename)

    try:
        upload.save(destination)
    except OSError as exc:
        current_app.logger.warning("Unable to store upload %s: %s", unique_filename, exc)
        return None, "We could not store the uploaded file. Please try again."

    return unique_filename, None


def remove_upload(filename):
    if not filename:
        return

    if isinstance(filename, (list, tuple, set)):
        for item in filename:
            remove_upload(item)
        return

    target = os.path.join(current_app.config["UPLOAD_FOLDER"], str(filename))
    try:
        os.remove(target)
    except OSError:
        return


def build_upload_url(filename: Optional[str]) -> str:
    if not filename:
        return ""

    sanitized = str(filename).strip()
    if not sanitized:
        return ""

    return urljoin(request.host_url, f"uploads/{sanitized}")


def store_upload_url(upload) -> str:
    """Save ``upload`` and return its public URL, or raise BadRequest."""
    filename, error = save_upload(upload)
    if error:
        raise BadRequest(error)
    return build_upload_url(filename)


def store_upload_urls(uploads, limit: int) -> List[str]:
    """Save up to ``limit`` uploads; empty slots map to an empty string."""
    saved: List[str] = []
    for upload in list(uploads or [])[:limit]:
        if not upload or not getattr(upload, "filename", ""):
            saved.append("")
            continue
        filename, error = save_upload(upload)
        if error:
            remove_upload([name for name in saved if name])
            raise BadRequest(error)
        saved.append(filename)
    return [build_upload_url(filename) for filename in saved]


def remove_upload_urls(urls) -> None:
    """Delete the stored files behind URLs returned by ``build_upload_url``."""
    remove_upload(
        [posixpath.basename(urlparse(url).path) for url in urls or [] if url]
    )
