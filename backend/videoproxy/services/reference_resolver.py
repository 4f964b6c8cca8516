from __future__ import annotations
"""Reference image resolution for a single generation request.

Decides between a freshly uploaded image, a previously saved reference, or
none. Uploads and resized copies are staged in the uploads directory and are
deleted when the ``resolve`` context exits, whatever the outcome.
"""

import asyncio
import logging
import mimetypes
import os
import shutil
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, BinaryIO

from PIL import Image, ImageOps

from videoproxy.services.errors import InvalidRequestError
from videoproxy.services.providers.base import ReferencePayload
from videoproxy.services.reference_store import ReferenceStore, safe_file_name

logger = logging.getLogger(__name__)

SOURCE_UPLOAD = "upload"
SOURCE_SAVED = "saved"

# Pillow format name → mime type, for formats written back after a resize
_WRITABLE_FORMATS = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "WEBP": "image/webp",
}


@dataclass
class IncomingUpload:
    """An uploaded file as received at the HTTP boundary."""
    file_name: str
    content_type: str
    stream: BinaryIO


@dataclass
class ResolvedReference:
    """The concrete reference a request will use."""
    source: str
    file_name: str
    original_path: Path
    send_path: Path
    content_type: str
    saved_url: str | None = None
    resized: bool = False

    def read_payload(self) -> ReferencePayload:
        return ReferencePayload(
            file_name=self.file_name,
            content_type=self.content_type,
            data=self.send_path.read_bytes(),
        )


class ReferenceResolver:
    """Stages, validates and optionally resizes reference images."""

    def __init__(self, store: ReferenceStore, uploads_dir: str | Path) -> None:
        self.store = store
        self.uploads_dir = Path(uploads_dir)
        self.uploads_dir.mkdir(parents=True, exist_ok=True)

    @asynccontextmanager
    async def resolve(
        self,
        upload: IncomingUpload | None = None,
        pointer: str | None = None,
        target_size: tuple[int, int] | None = None,
    ) -> AsyncIterator[ResolvedReference | None]:
        """Yield the reference to send, or None when none was requested.

        Uploaded bytes take precedence over a pointer. Raises
        InvalidRequestError for non-image uploads or failed resizes, and
        ReferenceNotFoundError for a dangling pointer.
        """
        scoped: list[Path] = []
        try:
            reference = await self._resolve(upload, pointer, scoped)
            if reference is not None and target_size is not None:
                await self._resize(reference, target_size, scoped)
            yield reference
        finally:
            for path in scoped:
                _remove_quietly(path)

    async def persist(self, reference: ResolvedReference):
        """Copy a staged upload into the references store."""
        return await asyncio.to_thread(
            self.store.persist, reference.original_path, reference.file_name
        )

    async def _resolve(
        self,
        upload: IncomingUpload | None,
        pointer: str | None,
        scoped: list[Path],
    ) -> ResolvedReference | None:
        if upload is not None:
            content_type = (upload.content_type or "").lower()
            if not content_type.startswith("image/"):
                raise InvalidRequestError(
                    f"Reference must be an image (got {upload.content_type or 'unknown type'})."
                )
            file_name = safe_file_name(upload.file_name)
            staged = self.uploads_dir / f"{uuid.uuid4().hex}{Path(file_name).suffix}"
            scoped.append(staged)
            await asyncio.to_thread(_copy_stream, upload.stream, staged)
            logger.debug("Staged uploaded reference %s → %s", file_name, staged.name)
            return ResolvedReference(
                source=SOURCE_UPLOAD,
                file_name=file_name,
                original_path=staged,
                send_path=staged,
                content_type=content_type,
            )

        if pointer and pointer.strip():
            path = self.store.resolve_pointer(pointer)
            content_type = await asyncio.to_thread(_detect_content_type, path)
            return ResolvedReference(
                source=SOURCE_SAVED,
                file_name=path.name,
                original_path=path,
                send_path=path,
                content_type=content_type,
                saved_url=self.store.url_for(path.name),
            )

        return None

    async def _resize(
        self,
        reference: ResolvedReference,
        size: tuple[int, int],
        scoped: list[Path],
    ) -> None:
        target = self.uploads_dir / f"{uuid.uuid4().hex}-resized"
        scoped.append(target)
        try:
            content_type = await asyncio.to_thread(
                _fit_image, reference.original_path, target, size
            )
        except (OSError, ValueError) as e:
            raise InvalidRequestError(f"Unable to resize reference image: {e}") from e

        reference.send_path = target
        reference.content_type = content_type
        reference.resized = True
        logger.info("Resized reference %s to %dx%d", reference.file_name, *size)


def _copy_stream(stream: BinaryIO, target: Path) -> None:
    if hasattr(stream, "seek"):
        stream.seek(0)
    with open(target, "wb") as out:
        shutil.copyfileobj(stream, out)


def _fit_image(source: Path, target: Path, size: tuple[int, int]) -> str:
    """Crop-and-scale ``source`` to exactly ``size`` and return the mime type written."""
    width, height = size
    if width <= 0 or height <= 0:
        raise ValueError(f"invalid target size {width}x{height}")

    with Image.open(source) as img:
        fmt = (img.format or "PNG").upper()
        if fmt not in _WRITABLE_FORMATS:
            fmt = "PNG"
        oriented = ImageOps.exif_transpose(img) or img
        fitted = ImageOps.fit(oriented, (width, height), method=Image.Resampling.LANCZOS)
        if fmt == "JPEG" and fitted.mode not in ("RGB", "L"):
            fitted = fitted.convert("RGB")

        fitted.save(target, format=fmt)
    return _WRITABLE_FORMATS[fmt]


def _remove_quietly(path: Path) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("Failed to remove temp file %s: %s", path, e)


def _detect_content_type(path: Path) -> str:
    """Mime type of a stored image, read from its header before trusting the name."""
    try:
        with Image.open(path) as img:
            sniffed = Image.MIME.get(img.format or "")
    except OSError:
        sniffed = None
    return sniffed or mimetypes.guess_type(path.name)[0] or "image/png"
