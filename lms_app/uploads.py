import os
import uuid
from flask import current_app
from werkzeug.utils import secure_filename

ASSIGNMENT_EXTENSIONS = {"pdf", "doc", "docx", "txt", "jpg", "jpeg", "png", "gif"}
PRACTICE_FILE_EXTENSIONS = ASSIGNMENT_EXTENSIONS | {"ppt", "pptx", "xls", "xlsx", "zip"}


class UploadError(ValueError):
    def __init__(self, code, message, status=400):
        self.code = code
        self.status = status
        super().__init__(message)


def file_size(file_storage):
    stream = file_storage.stream
    pos = stream.tell()
    stream.seek(0, os.SEEK_END)
    size = stream.tell()
    stream.seek(pos)
    return size


def validate_upload(file_storage, allowed_extensions, max_bytes=None):
    """Checks presence, extension and size; returns the sanitized filename."""
    if file_storage is None or not (file_storage.filename or "").strip():
        raise UploadError("file_required", "File is required")
    ext = os.path.splitext(file_storage.filename.strip())[1].lstrip(".").lower()
    if ext not in allowed_extensions:
        allowed = ", ".join(sorted(allowed_extensions))
        raise UploadError("invalid_file_type", f"File type not allowed. Allowed types: {allowed}")
    if max_bytes and file_size(file_storage) > max_bytes:
        limit_mb = max(1, int(max_bytes / (1024 * 1024)))
        raise UploadError("file_too_large", f"File size must be less than {limit_mb}MB")
    # secure_filename drops non-ASCII characters, which can take the stem or the dot with them
    safe = secure_filename(file_storage.filename)
    if not safe.lower().endswith(f".{ext}") or len(safe) == len(ext) + 1:
        safe = f"upload.{ext}"
    return safe


def store_upload(file_storage, subdir, safe_name):
    """Writes under UPLOAD_ROOT/<subdir>; the returned URL is served by ``main.uploaded_file``."""
    root = current_app.config["UPLOAD_ROOT"]
    target_dir = os.path.join(root, subdir)
    os.makedirs(target_dir, exist_ok=True)
    stored = f"{uuid.uuid4().hex}_{safe_name}"
    file_storage.save(os.path.join(target_dir, stored))
    current_app.logger.info(f"Stored upload {file_storage.filename} as {subdir}/{stored}")
    return f"/uploads/{subdir}/{stored}"


def save_upload(file_storage, subdir, allowed_extensions, max_bytes=None):
    safe = validate_upload(file_storage, allowed_extensions, max_bytes)
    return store_upload(file_storage, subdir, safe), file_storage.filename
