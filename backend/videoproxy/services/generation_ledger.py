"""Capacity-bounded ledger of completed generations.

The ledger keeps metadata for recently generated videos, newest first, and
owns their files: replacing an entry or evicting it past the limit deletes
the file it pointed to. History listing treats the videos directory as the
source of truth and the ledger as a read-through metadata cache; files with
no ledger record get synthesized metadata instead of an error.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from pathlib import Path

from videoproxy.services.asset_downloader import URL_PREFIX, content_type_for_file_name

logger = logging.getLogger(__name__)


@dataclass
class GenerationEntry:
    """Ledger record of one completed generation."""
    video_id: str
    prompt: str
    model: str
    provider: str
    created_at: datetime
    local_path: Path
    url: str
    content_type: str
    byte_size: int
    reference_url: str | None = None

    @property
    def file_name(self) -> str:
        return self.local_path.name


def placeholder_prompt(file_name: str) -> str:
    return f"Local video ({file_name})"


class GenerationLedger:
    """In-memory, insertion-ordered record of generated videos.

    Every mutation runs under one asyncio lock, so concurrent requests never
    observe a half-applied insert or eviction.
    """

    def __init__(
        self,
        videos_dir: str | Path,
        limit: int,
        default_model: str = "",
        default_provider: str = "openai",
    ) -> None:
        if limit < 1:
            raise ValueError("Ledger limit must be at least 1")
        self.videos_dir = Path(videos_dir)
        self.limit = limit
        self.default_model = default_model
        self.default_provider = default_provider
        self._entries: list[GenerationEntry] = []
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    async def record(self, entry: GenerationEntry) -> GenerationEntry:
        """Insert ``entry`` as the newest record, replacing any with the same id."""
        async with self._lock:
            to_delete: list[Path] = []

            for idx, existing in enumerate(self._entries):
                if existing.video_id == entry.video_id:
                    del self._entries[idx]
                    if existing.local_path != entry.local_path:
                        to_delete.append(existing.local_path)
                    break

            self._entries.insert(0, entry)

            while len(self._entries) > self.limit:
                evicted = self._entries.pop()
                logger.info("Evicting video %s from history", evicted.video_id)
                if evicted.local_path != entry.local_path:
                    to_delete.append(evicted.local_path)

            for path in to_delete:
                _delete_file(path)

        return entry

    def entries(self) -> list[GenerationEntry]:
        """Snapshot of ledger entries, newest first."""
        return list(self._entries)

    def find(self, video_id: str) -> GenerationEntry | None:
        for entry in self._entries:
            if entry.video_id == video_id:
                return entry
        return None

    async def list_history(self) -> list[GenerationEntry]:
        """Reconcile ledger metadata with the files actually on disk."""
        by_file_name: dict[str, GenerationEntry] = {}
        for entry in self.entries():
            by_file_name.setdefault(entry.file_name, entry)
        return await asyncio.to_thread(self._scan, by_file_name)

    def _scan(self, by_file_name: dict[str, GenerationEntry]) -> list[GenerationEntry]:
        if not self.videos_dir.is_dir():
            return []

        videos: list[GenerationEntry] = []
        for dirent in os.scandir(self.videos_dir):
            if not dirent.is_file():
                continue
            file_name = dirent.name
            stats = dirent.stat()
            known = by_file_name.get(file_name)
            if known is not None:
                videos.append(replace(known, byte_size=known.byte_size or stats.st_size))
                continue
            videos.append(GenerationEntry(
                video_id=file_name,
                prompt=placeholder_prompt(file_name),
                model=self.default_model,
                provider=self.default_provider,
                created_at=datetime.fromtimestamp(stats.st_mtime, tz=timezone.utc),
                local_path=Path(dirent.path),
                url=f"{URL_PREFIX}/{file_name}",
                content_type=content_type_for_file_name(file_name),
                byte_size=stats.st_size,
            ))

        videos.sort(key=lambda e: e.created_at, reverse=True)
        return videos


def _delete_file(path: Path) -> None:
    try:
        os.remove(path)
        logger.debug("Deleted %s", path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("Failed to delete %s: %s", path, e)
