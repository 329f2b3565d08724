"""
Proof store - Temporary upload, final naming and URL resolution of proofs.

Proof artifacts are uploaded before the owning registrations exist, so
they start life under a temporary key. Once application ids are known the
blob is copied to a key derived from them and the temporary key is
removed best-effort.

Key formats:
    temporary:  {hint}-{epoch_ms}-{4 hex}.{ext}
    shared:     combined-{primary_id}-{epoch_ms}.{ext}
    individual: {application_id}-{epoch_ms}.{ext}
"""

import logging
import secrets
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from .exceptions import StorageError, ValidationError
from .models import ProofFile
from .ports import BlobStore

logger = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES = frozenset({"image/jpeg", "image/png", "image/webp", "application/pdf"})
MAX_PROOF_BYTES = 5 * 1024 * 1024
TEMPORARY_HINT = "pending"
SHARED_PREFIX = "combined"


def final_key_prefix(application_id: str, shared: bool) -> str:
    """Prefix for a finalized proof; shared proofs are marked distinctly."""
    return f"{SHARED_PREFIX}-{application_id}" if shared else application_id


@dataclass
class ProofStore:
    """Domain-facing wrapper over the blob store port."""

    blob_store: BlobStore
    allowed_content_types: frozenset[str] = ALLOWED_CONTENT_TYPES
    max_bytes: int = MAX_PROOF_BYTES
    clock: Callable[[], float] = field(default=time.time)

    def validate(self, file: ProofFile) -> None:
        """
        Enforce boundary file constraints before any upload attempt.

        Raises:
            ValidationError: Unsupported MIME type, empty or oversized file
        """
        if file.content_type not in self.allowed_content_types:
            raise ValidationError(f"Unsupported proof file type: {file.content_type}")
        if file.size == 0:
            raise ValidationError("Proof file is empty")
        if file.size > self.max_bytes:
            raise ValidationError(f"Proof file exceeds the {self.max_bytes} byte limit")

    def upload_temporary(self, file: ProofFile, owner_hint: str = TEMPORARY_HINT) -> str:
        """
        Upload under a key not yet tied to any application id.

        Not retried here; the caller decides.

        Raises:
            StorageError: If the blob store rejects the upload
        """
        key = f"{owner_hint}-{self._millis()}-{secrets.token_hex(2)}.{file.extension}"
        self.blob_store.upload(key, file.data, file.content_type)
        logger.info("Uploaded proof to temporary key %s (%d bytes)", key, file.size)
        return key

    def finalize(self, temp_key: str, prefix: str) -> str:
        """
        Copy a temporary blob to a key derived from real identifiers.

        Returns the original ``temp_key`` if the copy fails so the pipeline
        can continue with a working, if oddly named, reference.
        """
        _, dot, ext = temp_key.rpartition(".")
        final_key = f"{prefix}-{self._millis()}" + (f".{ext}" if dot else "")
        try:
            self.blob_store.copy(temp_key, final_key)
        except StorageError as e:
            logger.warning("Finalize %s -> %s failed, keeping temporary key: %s", temp_key, final_key, e)
            return temp_key
        return final_key

    def resolve_url(self, key: str) -> str:
        return self.blob_store.public_url(key)

    def delete_best_effort(self, key: str) -> None:
        """Delete a blob; failures are logged, never raised."""
        try:
            self.blob_store.delete(key)
        except StorageError as e:
            logger.warning("Best-effort delete of %s failed: %s", key, e)

    def store_finalized(self, file: ProofFile, prefix: str) -> str:
        """
        Validate, upload, finalize and clean up; return the public URL.

        The temporary key is only deleted when finalize produced a new key.

        Raises:
            ValidationError: If the file violates boundary constraints
            StorageError: If the temporary upload fails
        """
        self.validate(file)
        temp_key = self.upload_temporary(file)
        final_key = self.finalize(temp_key, prefix)
        if final_key != temp_key:
            self.delete_best_effort(temp_key)
        return self.resolve_url(final_key)

    def resolve_latest(self, application_id: str) -> str | None:
        """
        Find the most recently written proof for an application id.

        Used when a row lost its proof reference (e.g. a fan-out link that
        never landed). Storage failures degrade to None.
        """
        candidates = []
        try:
            for prefix in (f"{application_id}-", f"{SHARED_PREFIX}-{application_id}-"):
                candidates.extend(self.blob_store.list_keys(prefix))
        except StorageError as e:
            logger.warning("Could not list proofs for %s: %s", application_id, e)
            return None
        if not candidates:
            return None
        latest = max(candidates, key=lambda info: info.updated_at)
        return self.resolve_url(latest.key)

    def _millis(self) -> int:
        return int(self.clock() * 1000)
