import mimetypes
import os
import random
import time
from pathlib import Path

from wa_rest.core import config
from wa_rest.core.exceptions import InvalidArgumentError
from wa_rest.core.logging import log
from wa_rest.services.browser import MediaPayload

ALLOWED_TYPES = {
    ".jpeg": "image/jpeg",
    ".jpg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".pdf": "application/pdf",
    ".doc": "application/msword",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ".mp4": "video/mp4",
    ".mp3": "audio/mpeg",
    ".ogg": "audio/ogg",
}

CHUNK_SIZE = 1024 * 1024


def check_file_type(filename, content_type):
    """Return the MIME type to send with, or raise InvalidArgumentError."""
    ext = Path(filename or "").suffix.lower()
    expected = ALLOWED_TYPES.get(ext)
    if expected is None:
        raise InvalidArgumentError(
            "Invalid file type. Only images, PDFs, documents, and media files are allowed.",
            details={"filename": filename},
        )

    if not content_type or content_type == "application/octet-stream":
        return expected

    guessed = mimetypes.guess_type(f"x{ext}")[0]
    if content_type not in ALLOWED_TYPES.values() and content_type != guessed:
        raise InvalidArgumentError(
            "Invalid file type. Only images, PDFs, documents, and media files are allowed.",
            details={"filename": filename, "content_type": content_type},
        )
    return content_type


async def save_upload(upload, uploads_dir=None, max_size=None):
    """Write an UploadFile into the scratch directory and describe it as a MediaPayload."""
    uploads_dir = Path(uploads_dir or config.UPLOADS_DIR)
    max_size = config.MAX_UPLOAD_SIZE if max_size is None else max_size

    mimetype = check_file_type(upload.filename, upload.content_type)

    uploads_dir.mkdir(parents=True, exist_ok=True)
    unique_suffix = f"{int(time.time() * 1000)}-{random.randint(0, 10**9)}"
    path = uploads_dir / f"image-{unique_suffix}{Path(upload.filename).suffix.lower()}"

    written = 0
    try:
        with open(path, "wb") as f:
            while True:
                chunk = await upload.read(CHUNK_SIZE)
                if not chunk:
                    break
                written += len(chunk)
                if written > max_size:
                    raise InvalidArgumentError(
                        f"File too large. Maximum size is {max_size // (1024 * 1024)}MB.",
                        details={"filename": upload.filename},
                    )
                f.write(chunk)
    except Exception:
        discard(path)
        raise

    return MediaPayload(path=str(path), mimetype=mimetype, filename=upload.filename)


def discard(path):
    try:
        os.unlink(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        log.error(f"Error deleting file {path}: {e}")
