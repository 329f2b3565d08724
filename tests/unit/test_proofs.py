"""
Unit tests for the proof store.

Covers boundary file constraints, temporary/final key naming, the
finalize fallback and latest-proof resolution.
"""

import logging
import re

import pytest

from reunion.domain.exceptions import StorageError, ValidationError
from reunion.domain.models import ProofFile
from reunion.domain.proofs import MAX_PROOF_BYTES, final_key_prefix


class TestValidate:
    """Tests for boundary constraints enforced before any upload."""

    def test_accepts_allowed_types(self, proof_store, make_proof) -> None:
        for content_type in ("image/jpeg", "image/png", "image/webp", "application/pdf"):
            proof_store.validate(make_proof(content_type=content_type))

    def test_rejects_unsupported_type(self, proof_store, make_proof) -> None:
        with pytest.raises(ValidationError, match="Unsupported"):
            proof_store.validate(make_proof(content_type="image/gif", filename="p.gif"))

    def test_rejects_empty_file(self, proof_store, make_proof) -> None:
        with pytest.raises(ValidationError, match="empty"):
            proof_store.validate(make_proof(size=0))

    def test_accepts_exactly_limit(self, proof_store, make_proof) -> None:
        proof_store.validate(make_proof(size=MAX_PROOF_BYTES))

    def test_six_mib_rejected_before_storage(self, proof_store, blob_store, make_proof) -> None:
        """Oversized proof never reaches the blob store."""
        with pytest.raises(ValidationError, match="limit"):
            proof_store.store_finalized(make_proof(size=6 * 1024 * 1024), "ALM-0001")

        assert blob_store.operations == []


class TestProofFileExtension:
    """Tests for extension derivation."""

    def test_from_filename_lowercased(self) -> None:
        assert ProofFile("Receipt.PDF", "application/pdf", b"x").extension == "pdf"

    def test_from_content_type_when_missing(self) -> None:
        assert ProofFile("scan", "image/jpeg", b"x").extension == "jpg"

    def test_unknown_falls_back_to_bin(self) -> None:
        assert ProofFile("scan", "application/octet-stream", b"x").extension == "bin"


class TestKeyNaming:
    """Tests for temporary and final key formats."""

    def test_temporary_key_format(self, proof_store, blob_store, make_proof) -> None:
        key = proof_store.upload_temporary(make_proof())

        assert re.fullmatch(r"pending-\d+-[0-9a-f]{4}\.png", key)
        assert key in blob_store.blobs

    def test_final_prefix_individual(self) -> None:
        assert final_key_prefix("ALM-0001", shared=False) == "ALM-0001"

    def test_final_prefix_shared(self) -> None:
        assert final_key_prefix("ALM-0001", shared=True) == "combined-ALM-0001"

    def test_finalize_copies_to_prefixed_key(self, proof_store, blob_store, make_proof) -> None:
        temp_key = proof_store.upload_temporary(make_proof())
        final_key = proof_store.finalize(temp_key, "combined-ALM-0001")

        assert re.fullmatch(r"combined-ALM-0001-\d+\.png", final_key)
        assert blob_store.blobs[final_key] == blob_store.blobs[temp_key]


class TestFinalizeFallback:
    """Tests for finalize degrading to the temporary key."""

    def test_copy_failure_returns_temp_key(self, proof_store, blob_store, make_proof, caplog) -> None:
        temp_key = proof_store.upload_temporary(make_proof())
        blob_store.fail_copy = True

        with caplog.at_level(logging.WARNING):
            assert proof_store.finalize(temp_key, "ALM-0001") == temp_key

        assert "keeping temporary key" in caplog.text

    def test_store_finalized_keeps_temp_on_copy_failure(self, proof_store, blob_store, make_proof) -> None:
        """The temporary blob is not deleted when it is the only copy."""
        blob_store.fail_copy = True

        url = proof_store.store_finalized(make_proof(), "ALM-0001")

        assert url.startswith("https://proofs.test/pending-")
        assert not any(op == "delete" for op, _ in blob_store.operations)

    def test_store_finalized_removes_temp(self, proof_store, blob_store, make_proof) -> None:
        url = proof_store.store_finalized(make_proof(), "ALM-0001")

        assert url.startswith("https://proofs.test/ALM-0001-")
        assert list(blob_store.blobs) == [url.rsplit("/", 1)[1]]

    def test_delete_failure_is_not_raised(self, proof_store, blob_store, make_proof) -> None:
        blob_store.fail_delete = True

        url = proof_store.store_finalized(make_proof(), "ALM-0001")

        assert url.startswith("https://proofs.test/ALM-0001-")
        assert len(blob_store.blobs) == 2

    def test_upload_failure_propagates(self, proof_store, blob_store, make_proof) -> None:
        blob_store.fail_upload = True
        with pytest.raises(StorageError):
            proof_store.store_finalized(make_proof(), "ALM-0001")


class TestResolveLatest:
    """Tests for locating the most recent proof for an id."""

    def test_none_when_nothing_stored(self, proof_store) -> None:
        assert proof_store.resolve_latest("ALM-0001") is None

    def test_picks_most_recent_individual_or_shared(self, proof_store, make_proof) -> None:
        proof_store.store_finalized(make_proof(), "ALM-0001")
        newest = proof_store.store_finalized(make_proof(), "combined-ALM-0001")

        assert proof_store.resolve_latest("ALM-0001") == newest

    def test_ignores_other_ids(self, proof_store, make_proof) -> None:
        proof_store.store_finalized(make_proof(), "ALM-0002")
        assert proof_store.resolve_latest("ALM-0001") is None

    def test_listing_failure_degrades_to_none(self, proof_store, blob_store, make_proof) -> None:
        proof_store.store_finalized(make_proof(), "ALM-0001")
        blob_store.fail_list = True

        assert proof_store.resolve_latest("ALM-0001") is None
