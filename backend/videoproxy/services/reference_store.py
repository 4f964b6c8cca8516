from __future__ import annotations
"""Saved reference images, persisted purely as files.

Nothing is tracked in memory: listing enumerates the references directory,
and pointers sent by clients are sanitized back to a file strictly inside it.
"""

import logging
import os
import re
import shutil
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from urllib.parse import unquote, urlparse

from videoproxy.services.errors import ReferenceNotFoundError

logger = logging.getLogger(__name__)

URL_PREFIX = "/references"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass
class SavedReference:
    file_name: str
    url: str
    created_at: datetime
    byte_size: int
    path: Path


def safe_file_name(name: str, default: str = "reference") -> str:
    """Reduce ``name`` to a single, filesystem-safe path component.

    The stem and extension are cleaned separately so a name made only of
    unsafe characters (``猫.jpg``) still keeps its extension (``reference.jpg``).
    """
    base = os.path.basename((name or "").replace("\\", "/"))
    stem, suffix = os.path.splitext(base)
    cleaned = _UNSAFE_CHARS.sub("_", stem).strip("._") or default
    extension = _UNSAFE_CHARS.sub("", suffix.lstrip("."))
    return f"{cleaned}.{extension}" if extension else cleaned


class ReferenceStore:
    """File-backed store of saved reference images."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def url_for(self, file_name: str) -> str:
        return f"{URL_PREFIX}/{file_name}"

    def list_references(self) -> list[SavedReference]:
        """Enumerate saved references, newest first."""
        refs: list[SavedReference] = []
        for entry in os.scandir(self.root):
            if not entry.is_file():
                continue
            stats = entry.stat()
            refs.append(SavedReference(
                file_name=entry.name,
                url=self.url_for(entry.name),
                created_at=datetime.fromtimestamp(stats.st_mtime, tz=timezone.utc),
                byte_size=stats.st_size,
                path=Path(entry.path),
            ))
        refs.sort(key=lambda r: r.created_at, reverse=True)
        return refs

    def resolve_pointer(self, pointer: str) -> Path:
        """Map a URL, ``/references/<name>`` path or bare name to a stored file.

        Raises ReferenceNotFoundError unless the pointer names a regular file
        directly inside the references directory.
        """
        raw = (pointer or "").strip()
        path_part = unquote(urlparse(raw).path or raw)
        name = os.path.basename(path_part.replace("\\", "/").rstrip("/"))

        if not name or name in (".", ".."):
            raise ReferenceNotFoundError(f"Reference image not found: {pointer}")

        candidate = (self.root / name).resolve()
        if candidate.parent != self.root or not candidate.is_file():
            raise ReferenceNotFoundError(f"Reference image not found: {pointer}")
        return candidate

    def persist(self, source: Path, original_name: str) -> SavedReference:
        """Copy ``source`` into the store under a unique, sanitized name."""
        file_name = f"{int(time.time() * 1000)}-{safe_file_name(original_name)}"
        target = self.root / file_name
        shutil.copyfile(source, target)
        stats = target.stat()
        logger.info("Saved reference image %s (%d bytes)", file_name, stats.st_size)
        return SavedReference(
            file_name=file_name,
            url=self.url_for(file_name),
            created_at=datetime.fromtimestamp(stats.st_mtime, tz=timezone.utc),
            byte_size=stats.st_size,
            path=target,
        )
