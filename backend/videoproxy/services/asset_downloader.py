from __future__ import annotations
"""Stream finished provider assets to the public videos directory."""

import logging
import os
import re
import time
from dataclasses import dataclass
from pathlib import Path

import httpx

from videoproxy.services.errors import AssetWriteError, UpstreamError
from videoproxy.services.providers.base import ResolvedAsset, error_message

logger = logging.getLogger(__name__)

URL_PREFIX = "/videos"
DEFAULT_CONTENT_TYPE = "video/mp4"
MAX_REDIRECTS = 5

_UNSAFE_ID_CHARS = re.compile(r"[^A-Za-z0-9_.-]+")


@dataclass
class DownloadedAsset:
    local_path: Path
    url: str
    content_type: str
    byte_size: int


def extension_for_content_type(content_type: str | None) -> str:
    lowered = (content_type or "").lower()
    if "mp4" in lowered:
        return "mp4"
    if "webm" in lowered:
        return "webm"
    if "quicktime" in lowered:
        return "mov"
    return "bin"


def content_type_for_file_name(file_name: str) -> str:
    ext = os.path.splitext(file_name or "")[1].lower()
    if ext == ".mp4":
        return "video/mp4"
    if ext == ".webm":
        return "video/webm"
    if ext in (".mov", ".qt"):
        return "video/quicktime"
    return "application/octet-stream"


class AssetDownloader:
    """Writes remote payloads into ``videos_dir`` without buffering them whole."""

    def __init__(
        self,
        videos_dir: str | Path,
        http_client: httpx.AsyncClient,
        chunk_size: int = 64 * 1024,
    ) -> None:
        self.videos_dir = Path(videos_dir)
        self.videos_dir.mkdir(parents=True, exist_ok=True)
        self.http_client = http_client
        self.chunk_size = chunk_size

    async def fetch(self, video_id: str, asset: ResolvedAsset) -> DownloadedAsset:
        """Download ``asset`` as ``<video_id>-<epoch ms>.<ext>``.

        Raises UpstreamError for error statuses or an empty body, and
        AssetWriteError if the file cannot be written. A partially written
        file is left in place when the write fails midway.
        """
        response = await self._open(asset)
        try:
            if not response.is_success and response.status_code != 206:
                await response.aread()
                raise UpstreamError(error_message(
                    response, f"Failed to download video (status {response.status_code})."
                ))

            content_type = _pick_content_type(response.headers.get("content-type"), asset.content_type)
            safe_id = _UNSAFE_ID_CHARS.sub("_", video_id).strip("._") or "video"
            file_name = (
                f"{safe_id}-{int(time.time() * 1000)}."
                f"{extension_for_content_type(content_type)}"
            )
            file_path = self.videos_dir / file_name

            written = 0
            try:
                with open(file_path, "wb") as f:
                    async for chunk in response.aiter_bytes(chunk_size=self.chunk_size):
                        f.write(chunk)
                        written += len(chunk)
            except OSError as e:
                raise AssetWriteError(f"Failed to write video {file_name}: {e}") from e
        finally:
            await response.aclose()

        if written == 0:
            file_path.unlink(missing_ok=True)
            raise UpstreamError("Received empty video stream from provider.")

        logger.info("Video saved: %s (%d bytes, %s)", file_name, written, content_type)
        return DownloadedAsset(
            local_path=file_path,
            url=f"{URL_PREFIX}/{file_name}",
            content_type=content_type,
            byte_size=written,
        )

    async def _open(self, asset: ResolvedAsset) -> httpx.Response:
        """Send the GET, following redirects by hand.

        Credentials in ``asset.headers`` are only sent to the asset's own
        origin; once a redirect leaves it they are dropped for good.
        """
        url = httpx.URL(asset.locator)
        origin = _origin(url)
        headers = dict(asset.headers)

        for _ in range(MAX_REDIRECTS + 1):
            request = self.http_client.build_request("GET", url, headers=headers)
            response = await self.http_client.send(request, stream=True, follow_redirects=False)
            if not response.has_redirect_location:
                return response

            await response.aclose()
            url = response.url.join(response.headers["location"])
            if headers and _origin(url) != origin:
                logger.debug("Download for %s redirected to %s, dropping credentials", asset.job_id, url.host)
                headers = {}

        raise UpstreamError(f"Too many redirects while downloading video ({MAX_REDIRECTS} max).")


def _origin(url: httpx.URL) -> tuple[str, str, int | None]:
    return url.scheme, url.host, url.port


def _pick_content_type(header: str | None, declared: str | None) -> str:
    # the provider's declared type wins over a missing or generic header
    if header and not header.lower().startswith("application/octet-stream"):
        return header
    return declared or header or DEFAULT_CONTENT_TYPE
