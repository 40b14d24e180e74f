"""Tests for the filesystem blob store backend.

Covers:
- Upload/download roundtrip and prefix listing
- Version tags change when content changes
- Copy and delete primitives
- Path traversal prevention
- OTel spans carry hashed names only
"""

from __future__ import annotations

import hashlib
import os
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import pytest

from pharmastock.storage import BlobNotFoundError, PathTraversalError
from pharmastock.storage.filesystem_store import FilesystemBlobStore


@pytest.fixture
def store(tmp_path: Path) -> FilesystemBlobStore:
    """Create a filesystem store in a temp directory."""
    return FilesystemBlobStore(base_dir=tmp_path)


class TestRoundtrip:
    """Tests for basic upload/download/list."""

    def test_upload_then_download(self, store: FilesystemBlobStore) -> None:
        """Downloaded bytes equal uploaded bytes."""
        store.upload("inbox/12345678000195/a.csv", b"cnpj;x\n")

        assert store.download("inbox/12345678000195/a.csv") == b"cnpj;x\n"

    def test_list_filters_by_prefix_and_sorts(self, store: FilesystemBlobStore) -> None:
        """Only names under the prefix are listed, ordered by name."""
        store.upload("inbox/b/2.csv", b"2")
        store.upload("inbox/a/1.csv", b"1")
        store.upload("processed/a/1.csv", b"1")

        names = [ref.name for ref in store.list_blobs("inbox/")]

        assert names == ["inbox/a/1.csv", "inbox/b/2.csv"]

    def test_list_only_reads_the_prefix_directory(
        self, store: FilesystemBlobStore, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Blobs outside the prefix directory are neither walked nor hashed."""
        store.upload("inbox/a/1.csv", b"1")
        store.upload("processed/a/1.csv", b"1")
        store.upload("error/a/1.csv", b"1")
        hashed: list[str] = []
        original = FilesystemBlobStore._ref_for

        def recording_ref_for(self: FilesystemBlobStore, name: str, path: Path) -> Any:
            hashed.append(name)
            return original(self, name, path)

        monkeypatch.setattr(FilesystemBlobStore, "_ref_for", recording_ref_for)

        store.list_blobs("inbox/")

        assert hashed == ["inbox/a/1.csv"]

    def test_partial_prefix(self, store: FilesystemBlobStore) -> None:
        """A prefix ending inside a file name still matches."""
        store.upload("inbox/a/report_1.csv", b"1")
        store.upload("inbox/a/summary.csv", b"2")

        assert [ref.name for ref in store.list_blobs("inbox/a/rep")] == ["inbox/a/report_1.csv"]

    def test_list_empty_container(self, store: FilesystemBlobStore) -> None:
        """A container that was never written lists nothing."""
        assert store.list_blobs("inbox/") == []

    def test_last_modified_can_be_stamped(self, store: FilesystemBlobStore) -> None:
        """upload(last_modified=...) sets the listed timestamp."""
        stamp = datetime(2025, 1, 10, 8, 30, tzinfo=UTC)

        ref = store.upload("inbox/a/1.csv", b"1", last_modified=stamp)

        assert ref.last_modified == stamp
        assert store.list_blobs("inbox/")[0].last_modified == stamp

    def test_container_is_a_subdirectory(self, tmp_path: Path) -> None:
        """Blobs live under base_dir/container."""
        store = FilesystemBlobStore(base_dir=tmp_path, container="stock")
        store.upload("inbox/a/1.csv", b"1")

        assert (tmp_path / "stock" / "inbox" / "a" / "1.csv").is_file()


class TestVersionTags:
    """Version tag semantics."""

    def test_changed_content_changes_tag(self, store: FilesystemBlobStore) -> None:
        """Rewriting different content yields a different tag."""
        stamp = datetime(2025, 1, 10, 8, 30, tzinfo=UTC)
        first = store.upload("inbox/a/1.csv", b"one", last_modified=stamp)
        second = store.upload("inbox/a/1.csv", b"two", last_modified=stamp)

        assert first.version_tag != second.version_tag

    def test_identical_rewrite_keeps_tag(self, store: FilesystemBlobStore) -> None:
        """Same content and timestamp yield the same tag."""
        stamp = datetime(2025, 1, 10, 8, 30, tzinfo=UTC)
        first = store.upload("inbox/a/1.csv", b"one", last_modified=stamp)
        second = store.upload("inbox/a/1.csv", b"one", last_modified=stamp)

        assert first.version_tag == second.version_tag


class TestCopyAndDelete:
    """Copy / delete primitives."""

    def test_copy_then_delete(self, store: FilesystemBlobStore) -> None:
        """A completed copy leaves both blobs until the source is deleted."""
        store.upload("inbox/a/1.csv", b"data")

        store.begin_copy("inbox/a/1.csv", "processed/a/1.csv").wait_for_completion(5)

        assert store.exists("inbox/a/1.csv")
        assert store.download("processed/a/1.csv") == b"data"

        store.delete("inbox/a/1.csv")
        assert not store.exists("inbox/a/1.csv")

    def test_missing_source(self, store: FilesystemBlobStore) -> None:
        """Copying, downloading or deleting a missing blob raises BlobNotFoundError."""
        with pytest.raises(BlobNotFoundError):
            store.begin_copy("inbox/a/missing.csv", "processed/a/missing.csv")
        with pytest.raises(BlobNotFoundError):
            store.download("inbox/a/missing.csv")
        with pytest.raises(BlobNotFoundError):
            store.delete("inbox/a/missing.csv")


class TestPathTraversalPrevention:
    """Unsafe names are rejected."""

    @pytest.mark.parametrize(
        "name",
        [
            "../x.csv",
            "inbox/../../x.csv",
            "/etc/passwd",
            "..\\x.csv",
            "C:/x.csv",
            "inbox/./x.csv",
            "inbox//x.csv",
            "inbox/a\tb.csv",
            "",
        ],
    )
    def test_unsafe_names(self, store: FilesystemBlobStore, name: str) -> None:
        """Traversal sequences and control characters raise PathTraversalError."""
        with pytest.raises(PathTraversalError):
            store.upload(name, b"x")

    @pytest.mark.parametrize(
        "name",
        [
            "inbox/12345678000195/farmacia estoque_loja_2025-01-10_v1.csv",
            "inbox/12345678000195/farm\u00e1cia_estoque_2025-01-10_v1.csv",
        ],
    )
    def test_spaces_and_accents_are_addressable(
        self, store: FilesystemBlobStore, name: str
    ) -> None:
        """Names with spaces or non-ASCII letters work for every operation."""
        store.upload(name, b"data")

        assert [ref.name for ref in store.list_blobs("inbox/")] == [name]
        assert store.download(name) == b"data"
        store.begin_copy(name, "error/" + name[len("inbox/") :]).wait_for_completion(5)
        store.delete(name)
        assert not store.exists(name)

    def test_listing_skips_unaddressable_files(self, store: FilesystemBlobStore) -> None:
        """Files whose path is not a valid blob name are never listed."""
        store.upload("inbox/a/1.csv", b"1")
        (store.root / "inbox" / "a" / "back\\slash.csv").write_bytes(b"x")

        assert [ref.name for ref in store.list_blobs("inbox/")] == ["inbox/a/1.csv"]


class TestOtelSpans:
    """Tests for OpenTelemetry span emission."""

    @pytest.fixture(autouse=True)
    def reset_tracing_env(self) -> Any:
        """Reset tracing environment before each test."""
        env_vars = ["PHARMASTOCK_OTEL_ENABLED", "PHARMASTOCK_OTEL_TEST_CAPTURE"]
        original_env = {k: os.environ.get(k) for k in env_vars}

        from pharmastock.observability.tracing import reset_tracing

        reset_tracing()

        yield

        for k in env_vars:
            os.environ.pop(k, None)
        for k, v in original_env.items():
            if v is not None:
                os.environ[k] = v

        reset_tracing()

    def test_download_span_has_hashed_name(self, store: FilesystemBlobStore) -> None:
        """Spans carry the SHA-256 of the blob name, never the name itself."""
        os.environ["PHARMASTOCK_OTEL_ENABLED"] = "1"
        os.environ["PHARMASTOCK_OTEL_TEST_CAPTURE"] = "1"

        from pharmastock.observability.tracing import configure_tracing, get_test_spans

        configure_tracing()

        name = "inbox/12345678000195/a.csv"
        store.upload(name, b"payload")
        store.download(name)

        spans = [s for s in get_test_spans() if s.name == "pharmastock.blob_store.download"]
        assert len(spans) == 1

        attrs = dict(spans[0].attributes or {})
        assert attrs["pharmastock.blob_name_sha256"] == hashlib.sha256(name.encode()).hexdigest()
        assert attrs["storage.backend"] == "filesystem"
        assert attrs["pharmastock.blob_size_bytes"] == len(b"payload")
        assert all("12345678000195" not in str(v) for v in attrs.values())
