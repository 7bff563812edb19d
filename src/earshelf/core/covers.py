# ABOUTME: Local cover-art store: extracts embedded pictures and downloads remote thumbnails.
# ABOUTME: Keeps thumbnails of cached records pointing at local files instead of network URLs.

import asyncio
import hashlib
import logging
from dataclasses import replace
from pathlib import Path

from earshelf.formats.base import CodecError, Picture, TagCodec, detect_image_mime
from earshelf.metadata.http import HttpClient, MetadataFetchError
from earshelf.metadata.types import AudiobookMetadata, is_remote_url

logger = logging.getLogger(__name__)

_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
}


class CoverStore:
    """Stores cover images under one directory, named by the audio file they belong to."""

    def __init__(
        self,
        covers_dir: Path,
        http_client: HttpClient | None = None,
        *,
        download: bool = True,
    ) -> None:
        self._dir = covers_dir
        self._http = http_client
        self._download = download

    @property
    def directory(self) -> Path:
        return self._dir

    def _target(self, audio_path: Path, mime_type: str) -> Path:
        digest = hashlib.sha1(str(audio_path.resolve()).encode("utf-8")).hexdigest()[:16]
        return self._dir / f"{digest}{_EXTENSIONS.get(mime_type, '.jpg')}"

    def _save(self, audio_path: Path, picture: Picture) -> Path:
        target = self._target(audio_path, picture.mime_type)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(picture.data)
        return target

    async def extract_embedded(self, audio_path: Path, codec: TagCodec) -> Path | None:
        """Copy the file's embedded picture into the store."""
        try:
            picture = await asyncio.to_thread(codec.read_picture, audio_path)
        except CodecError as exc:
            logger.warning("Could not read embedded cover of %s: %s", audio_path, exc)
            return None
        if picture is None or not picture.data:
            return None
        return await asyncio.to_thread(self._save, audio_path, picture)

    async def download(self, audio_path: Path, url: str) -> Path | None:
        """Fetch a remote thumbnail into the store; None on any fetch failure."""
        if self._http is None or not self._download:
            return None
        try:
            data = await self._http.get_bytes(url)
        except MetadataFetchError as exc:
            logger.warning("Cover download failed for %s: %s", url, exc)
            return None
        if not data:
            return None
        picture = Picture(data=data, mime_type=detect_image_mime(data, url))
        return await asyncio.to_thread(self._save, audio_path, picture)

    async def localize(
        self, audio_path: Path, metadata: AudiobookMetadata, codec: TagCodec | None
    ) -> AudiobookMetadata:
        """Return the record with its thumbnail pointing at a local file.

        A local thumbnail already on disk is kept. Otherwise the file's own
        embedded picture wins over a remote thumbnail, which is downloaded only
        when the file has none. A remote URL survives only when downloading is
        off; one that cannot be fetched is dropped.
        """
        thumbnail = metadata.thumbnail_url
        remote = bool(thumbnail) and is_remote_url(thumbnail)
        if thumbnail and not remote and Path(thumbnail).exists():
            return metadata

        if codec is not None:
            embedded = await self.extract_embedded(audio_path, codec)
            if embedded is not None:
                if remote:
                    logger.debug("Keeping embedded cover of %s instead of %s", audio_path.name, thumbnail)
                return replace(metadata, thumbnail_url=str(embedded))

        if not remote or self._http is None or not self._download:
            return metadata
        local = await self.download(audio_path, thumbnail)
        if local is None:
            logger.warning("Dropping unreachable cover %s for %s", thumbnail, audio_path.name)
            return replace(metadata, thumbnail_url="")
        return replace(metadata, thumbnail_url=str(local))
