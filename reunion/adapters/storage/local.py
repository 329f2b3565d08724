"""
Local filesystem blob store adapter - Implements BlobStore protocol.

Stores proof artifacts as flat files in one directory and serves them
under a public base URL (e.g. a static files mount or a CDN origin).
"""

import logging
import shutil
from datetime import datetime, timezone
from pathlib import Path
from urllib.parse import quote

from reunion.domain.exceptions import StorageError
from reunion.domain.models import BlobInfo

logger = logging.getLogger(__name__)


class LocalBlobStore:
    """
    Implements BlobStore protocol on a local directory.

    Uses structural subtyping - no explicit inheritance from Protocol.
    Keys are flat file names; path separators are rejected.
    """

    def __init__(self, root: Path | str, public_base_url: str) -> None:
        self._root = Path(root)
        self._public_base_url = public_base_url.rstrip("/")

    def upload(self, key: str, data: bytes, content_type: str) -> None:
        path = self._path(key)
        try:
            self._root.mkdir(parents=True, exist_ok=True)
            # Exclusive create: never overwrite an existing proof.
            with path.open("xb") as handle:
                handle.write(data)
        except OSError as e:
            raise StorageError(f"Upload of {key} failed: {e}") from e
        logger.debug("Stored %s (%s, %d bytes)", key, content_type, len(data))

    def copy(self, source_key: str, destination_key: str) -> None:
        try:
            shutil.copyfile(self._path(source_key), self._path(destination_key))
        except OSError as e:
            raise StorageError(f"Copy {source_key} -> {destination_key} failed: {e}") from e

    def delete(self, key: str) -> None:
        try:
            self._path(key).unlink()
        except OSError as e:
            raise StorageError(f"Delete of {key} failed: {e}") from e

    def public_url(self, key: str) -> str:
        return f"{self._public_base_url}/{quote(key)}"

    def list_keys(self, prefix: str) -> list[BlobInfo]:
        if not self._root.exists():
            return []
        try:
            return [
                BlobInfo(
                    key=path.name,
                    updated_at=datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc),
                )
                for path in self._root.iterdir()
                if path.is_file() and path.name.startswith(prefix)
            ]
        except OSError as e:
            raise StorageError(f"Listing {prefix}* failed: {e}") from e

    def _path(self, key: str) -> Path:
        if not key or "/" in key or "\\" in key or key in (".", ".."):
            raise ValueError(f"Invalid blob key: {key!r}")
        return self._root / key
