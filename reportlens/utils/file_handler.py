"""
File Handler Utility
Medical Report Insights

Validates uploads and stores them under unique, sanitized names.
"""

import os
import re
import uuid
import logging
from datetime import datetime, timezone
from typing import List

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_-]")


def file_extension(filename: str) -> str:
    """Lower-case extension without the dot ('' if none)."""
    return os.path.splitext(filename)[1].lower().lstrip(".")


def validate_upload(filename: str, size: int, allowed_extensions: List[str], max_bytes: int) -> None:
    """
    Raise ValueError (bad type or empty) or OverflowError (too large)
    when an upload must be rejected.
    """
    ext = file_extension(filename)
    if ext not in allowed_extensions:
        shown = f".{ext}" if ext else "(none)"
        raise ValueError(
            f"Unsupported file type '{shown}'. Allowed: {', '.join(allowed_extensions)}"
        )
    if size == 0:
        raise ValueError("Uploaded file is empty")
    if size > max_bytes:
        raise OverflowError(f"File too large. Maximum size: {max_bytes // (1024 * 1024)}MB")


def generate_unique_filename(original_filename: str) -> str:
    """Timestamp + short random id + sanitized stem, keeping the extension."""
    stem, ext = os.path.splitext(os.path.basename(original_filename))
    safe_stem = _UNSAFE_CHARS.sub("", stem.replace(" ", "_"))[:80] or "report"
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S")
    return f"{timestamp}_{uuid.uuid4().hex[:8]}_{safe_stem}{ext.lower()}"


def save_upload(upload_dir: str, original_filename: str, content: bytes) -> str:
    """Write the upload to disk and return its storage path."""
    os.makedirs(upload_dir, exist_ok=True)
    path = os.path.join(upload_dir, generate_unique_filename(original_filename))
    with open(path, "wb") as fh:
        fh.write(content)
    logger.info("Stored upload '%s' at %s (%d bytes)", original_filename, path, len(content))
    return path


def remove_file(path: str) -> None:
    """Best-effort delete of a stored upload."""
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("Could not remove stored file %s: %s", path, e)
