"""Placement of uploaded files on local disk.

Every upload is written under a unique name so concurrent uploads of the
same file never overwrite each other; the original name travels with the
job and becomes the document name in citations.
"""

from __future__ import annotations

import secrets
import shutil
import time
from pathlib import Path


def stored_upload_name(original: str) -> str:
    """Return ``<epoch-ms>-<random>-<basename>`` for *original*."""
    # Drop any client-supplied directories so the file stays inside the upload dir.
    base = Path(original).name or "upload.pdf"
    return f"{int(time.time() * 1000)}-{secrets.randbelow(10**9)}-{base}"


def write_upload(directory: str | Path, original: str, data: bytes) -> Path:
    """Write *data* into *directory* under a fresh stored name."""
    target_dir = Path(directory)
    target_dir.mkdir(parents=True, exist_ok=True)
    path = target_dir / stored_upload_name(original)
    path.write_bytes(data)
    return path


def copy_upload(directory: str | Path, source: str | Path) -> Path:
    """Copy an existing file into *directory* under a fresh stored name."""
    source_path = Path(source)
    target_dir = Path(directory)
    target_dir.mkdir(parents=True, exist_ok=True)
    path = target_dir / stored_upload_name(source_path.name)
    shutil.copyfile(source_path, path)
    return path
