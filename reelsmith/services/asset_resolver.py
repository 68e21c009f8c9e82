"""Maps asset references to local files.

A reference is one of:
- a remote http(s) URL: downloaded into the temp namespace
- a loopback URL (localhost / 127.0.0.1): treated as a local path
- a relative or absolute path: looked up by filename in the namespace its path
  names (uploads when it contains an /uploads/ segment, else temp), then in
  the other one
"""

import logging
from pathlib import Path, PurePosixPath
from urllib.parse import unquote, urlparse

import httpx

from reelsmith.config import Settings, get_settings
from reelsmith.exceptions import AssetResolutionError
from reelsmith.services.file_service import FileService

logger = logging.getLogger(__name__)

LOOPBACK_HOSTS = {"localhost", "127.0.0.1", "::1"}
DEFAULT_DOWNLOAD_EXT = "mp4"


def is_remote_ref(ref: str) -> bool:
    parsed = urlparse(ref)
    if parsed.scheme not in ("http", "https"):
        return False
    return (parsed.hostname or "") not in LOOPBACK_HOSTS


def _local_pathname(ref: str) -> str:
    if ref.startswith(("http://", "https://")):
        return unquote(urlparse(ref).path)
    return ref.replace("\\", "/")


def _download_extension(url: str) -> str:
    suffix = PurePosixPath(urlparse(url).path).suffix.lstrip(".")
    return suffix.lower() if suffix else DEFAULT_DOWNLOAD_EXT


class AssetResolver:
    def __init__(
        self,
        file_service: FileService,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.file_service = file_service
        self.settings = settings or get_settings()
        self._transport = transport

    async def resolve(self, ref: str, job_id: str | None = None) -> Path:
        if not ref or not ref.strip():
            raise AssetResolutionError("Empty asset reference", reason="not-found", ref=ref)
        ref = ref.strip()

        if is_remote_ref(ref):
            return await self._download(ref, job_id)
        return self._find_local(ref)

    async def resolve_many(self, refs: list[str], job_id: str | None = None) -> list[Path]:
        return [await self.resolve(ref, job_id) for ref in refs]

    def _find_local(self, ref: str) -> Path:
        pathname = _local_pathname(ref)
        filename = PurePosixPath(pathname).name
        if not filename:
            raise AssetResolutionError(
                f"Asset reference has no filename: {ref}", reason="not-found", ref=ref
            )

        in_uploads = "/uploads/" in "/" + pathname.lstrip("/")
        if in_uploads:
            primary_dir, alternate_dir = self.file_service.uploads_dir, self.file_service.temp_dir
        else:
            primary_dir, alternate_dir = self.file_service.temp_dir, self.file_service.uploads_dir

        primary = primary_dir / filename
        if primary.is_file():
            return primary

        # Both namespaces are shared; assets occasionally land in the other one
        alternate = alternate_dir / filename
        if alternate.is_file():
            logger.info(f"[ASSETS] {filename} not in {primary_dir}, found via fallback in {alternate_dir}")
            return alternate

        raise AssetResolutionError(
            f"Asset file not found: {filename} (checked {primary} and {alternate})",
            reason="not-found",
            ref=ref,
            probed_paths=[str(primary), str(alternate)],
        )

    async def _download(self, url: str, job_id: str | None) -> Path:
        target = self.file_service.temp_file_path(_download_extension(url), job_id)
        logger.info(f"[ASSETS] Downloading {url} -> {target.name}")
        try:
            async with httpx.AsyncClient(
                timeout=self.settings.download_timeout_seconds,
                follow_redirects=True,
                transport=self._transport,
            ) as client:
                async with client.stream("GET", url) as response:
                    if response.status_code < 200 or response.status_code >= 300:
                        raise AssetResolutionError(
                            f"Failed to download {url}: HTTP {response.status_code}",
                            reason="download-failed",
                            ref=url,
                        )
                    with open(target, "wb") as f:
                        async for chunk in response.aiter_bytes():
                            f.write(chunk)
        except AssetResolutionError:
            self.file_service.cleanup_file(target)
            raise
        except httpx.HTTPError as e:
            self.file_service.cleanup_file(target)
            raise AssetResolutionError(
                f"Failed to download {url}: {e}", reason="download-failed", ref=url
            ) from e

        logger.info(f"[ASSETS] Downloaded {url} ({target.stat().st_size} bytes)")
        return target
