from __future__ import annotations

import logging
import os
import secrets
import time
from pathlib import Path

from flask import url_for
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

import config

logger = logging.getLogger(__name__)

URL_PREFIX = "/uploads/"


class UploadError(ValueError):
    pass


def has_upload(file: FileStorage | None) -> bool:
    return file is not None and bool(file.filename)


def file_size(file: FileStorage) -> int:
    stream = file.stream
    stream.seek(0, os.SEEK_END)
    size = stream.tell()
    stream.seek(0)
    return size


def save_image(file: FileStorage, folder: str) -> str:
    """Store an uploaded image under ``folder`` and return its relative path."""
    if not (file.mimetype or "").startswith("image/"):
        raise UploadError("Please upload an image file")
    if file_size(file) > config.MAX_IMAGE_BYTES:
        raise UploadError("Image size should be less than 5MB")

    name = secure_filename(file.filename or "")
    ext = name.rsplit(".", 1)[-1].lower() if "." in name else "img"
    relative = f"{secure_filename(folder)}/{secrets.token_hex(6)}_{int(time.time() * 1000)}.{ext}"
    target = Path(config.UPLOAD_DIR) / relative
    target.parent.mkdir(parents=True, exist_ok=True)
    file.save(target)
    logger.info("Stored upload %s", relative)
    return relative


def public_url(path: str) -> str:
    return url_for("uploaded_file", filename=path)


def remove_image(url: str) -> bool:
    """Delete a stored upload addressed by its public URL. Other URLs are left alone."""
    if not url or not url.startswith(URL_PREFIX):
        return False
    root = Path(config.UPLOAD_DIR).resolve()
    target = (root / url[len(URL_PREFIX):]).resolve()
    if root not in target.parents or not target.is_file():
        return False
    target.unlink()
    return True
