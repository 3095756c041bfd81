"""Attachment image validation and local storage for complaint and resolution evidence."""
import hashlib
import io
import os
import uuid
from typing import Dict, Tuple

from flask import current_app, url_for
from PIL import Image, UnidentifiedImageError
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from utils.errors import DependencyError, ValidationError

ALLOWED_IMAGE_EXTENSIONS = {"jpg", "jpeg", "png", "gif", "webp"}
# Pillow format name -> canonical stored extension
PILLOW_FORMATS = {"JPEG": "jpg", "PNG": "png", "GIF": "gif", "WEBP": "webp"}
DEFAULT_MAX_IMAGE_BYTES = 5 * 1024 * 1024  # 5 MB


def _fail_if(condition: bool, message: str, field: str) -> None:
    if condition:
        raise ValidationError(message, details={"field": field})


def compute_hash(content: bytes) -> str:
    return hashlib.sha256(content).hexdigest()


def validate_image_file(
    file: FileStorage,
    max_bytes: int = DEFAULT_MAX_IMAGE_BYTES,
    field: str = "attachment",
) -> Tuple[bytes, str]:
    """Return the raw bytes and the canonical extension of an uploaded image.

    The extension comes from the decoded image rather than the client filename,
    so a renamed non-image never reaches storage.
    """
    _fail_if(not file or not file.filename, "No file provided", field)
    filename = secure_filename(file.filename or "")
    _fail_if(not filename or "." not in filename, "Unsupported file name", field)
    ext = filename.rsplit(".", 1)[1].lower()
    _fail_if(ext not in ALLOWED_IMAGE_EXTENSIONS, "File type not allowed", field)

    file.stream.seek(0, os.SEEK_END)
    size = file.stream.tell()
    file.stream.seek(0)
    _fail_if(size == 0, "Empty file", field)
    _fail_if(size > max_bytes, "File exceeds size limits", field)

    content = file.read()
    _fail_if(len(content) > max_bytes, "File exceeds size limits", field)

    try:
        with Image.open(io.BytesIO(content)) as img:
            detected = img.format
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as exc:
        raise ValidationError("Invalid image data", details={"field": field}) from exc
    _fail_if(detected not in PILLOW_FORMATS, "Invalid image data", field)

    file.stream.seek(0)
    return content, PILLOW_FORMATS[detected]


def save_image_bytes(image_bytes: bytes, upload_dir: str, extension: str) -> Tuple[str, str]:
    os.makedirs(upload_dir, exist_ok=True)
    safe_name = secure_filename(f"{uuid.uuid4().hex}.{extension}")
    path = os.path.join(upload_dir, safe_name)
    with open(path, "wb") as f:
        f.write(image_bytes)
    return path, safe_name


def store_attachment(file: FileStorage, field: str = "attachment") -> Dict:
    """Validate and persist an upload, returning its public URL and metadata."""
    max_bytes = int(current_app.config.get("MAX_ATTACHMENT_BYTES", DEFAULT_MAX_IMAGE_BYTES))
    image_bytes, ext = validate_image_file(file, max_bytes=max_bytes, field=field)
    upload_dir = current_app.config["ATTACHMENT_UPLOAD_FOLDER"]
    try:
        stored_path, stored_name = save_image_bytes(image_bytes, upload_dir, ext)
    except OSError as exc:
        current_app.logger.error("Attachment storage failed", extra={"upload_dir": upload_dir, "error": str(exc)})
        raise DependencyError("Attachment storage is unavailable.") from exc

    current_app.logger.info("Attachment stored", extra={"file_name": stored_name, "size": len(image_bytes)})
    return {
        "url": url_for("complaints.serve_attachment", filename=stored_name),
        "path": stored_path,
        "file_name": stored_name,
        "extension": ext,
        "image_hash": compute_hash(image_bytes),
    }


def discard_attachment(stored: Dict) -> None:
    """Remove a stored upload whose owning write was refused."""
    try:
        os.remove(stored["path"])
    except FileNotFoundError:
        return
    except OSError as exc:
        current_app.logger.warning("Attachment cleanup failed", extra={"file_name": stored["file_name"], "error": str(exc)})
        return
    current_app.logger.info("Attachment discarded", extra={"file_name": stored["file_name"]})
