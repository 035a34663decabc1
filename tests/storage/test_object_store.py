"""
Tests for the bill object stores and their signed access URLs.
"""

from urllib.parse import parse_qs, urlsplit

import pytest

from fleet_kernel.exceptions import UploadFailedError
from fleet_kernel.storage import BillUpload, FilesystemObjectStore, InMemoryObjectStore

REFERENCE = "6f1c2d9e-trip/0b8e-bill.jpg"


@pytest.fixture
def fs_store(tmp_path, clock):
    return FilesystemObjectStore(
        tmp_path / "bills",
        secret="s3cret",
        base_url="https://files.example.test/bills",
        clock=clock,
    )


class TestBillUpload:

    @pytest.mark.parametrize("filename,extension", [
        ("receipt.JPG", "jpg"),
        ("scan.final.pdf", "pdf"),
        ("no_extension", "bin"),
        ("trailing.", "bin"),
        ("dir.d/photo", "bin"),
    ])
    def test_extension(self, filename, extension):
        assert BillUpload(filename, b"x").extension == extension


class TestFilesystemObjectStore:

    def test_upload_and_read(self, fs_store, tmp_path):
        stored = fs_store.upload(REFERENCE, b"bill-bytes", "image/jpeg")
        assert stored.reference == REFERENCE
        assert stored.size == 10
        assert stored.content_type == "image/jpeg"
        assert fs_store.read(REFERENCE) == b"bill-bytes"
        assert (tmp_path / "bills" / "6f1c2d9e-trip" / "0b8e-bill.jpg").is_file()

    def test_no_partial_file_left(self, fs_store, tmp_path):
        fs_store.upload(REFERENCE, b"bill-bytes")
        names = [p.name for p in (tmp_path / "bills" / "6f1c2d9e-trip").iterdir()]
        assert names == ["0b8e-bill.jpg"]

    def test_never_overwrites(self, fs_store):
        fs_store.upload(REFERENCE, b"first")
        with pytest.raises(UploadFailedError, match="already exists"):
            fs_store.upload(REFERENCE, b"second")
        assert fs_store.read(REFERENCE) == b"first"

    @pytest.mark.parametrize("reference", ["../escape.jpg", "/etc/passwd", "a/../../b", ""])
    def test_rejects_paths_outside_root(self, fs_store, reference):
        with pytest.raises(UploadFailedError):
            fs_store.upload(reference, b"x")
        assert fs_store.exists(reference) is False

    def test_write_error_becomes_upload_failed(self, fs_store, tmp_path):
        # A file where the trip directory should be
        (tmp_path / "bills").mkdir()
        (tmp_path / "bills" / "6f1c2d9e-trip").write_bytes(b"")
        with pytest.raises(UploadFailedError):
            fs_store.upload(REFERENCE, b"x")

    def test_delete(self, fs_store):
        fs_store.upload(REFERENCE, b"x")
        fs_store.delete(REFERENCE)
        assert not fs_store.exists(REFERENCE)
        fs_store.delete(REFERENCE)

    def test_empty_secret_rejected(self, tmp_path):
        with pytest.raises(ValueError):
            FilesystemObjectStore(tmp_path, secret="")


class TestSignedUrls:

    def test_round_trip(self, fs_store):
        fs_store.upload(REFERENCE, b"x")
        url = fs_store.create_temporary_access_url(REFERENCE, ttl_seconds=600)
        assert url.startswith("https://files.example.test/bills/")
        assert fs_store.verify_access_url(url) == REFERENCE

    def test_expiry(self, fs_store, clock):
        fs_store.upload(REFERENCE, b"x")
        url = fs_store.create_temporary_access_url(REFERENCE, ttl_seconds=600)
        expires = int(parse_qs(urlsplit(url).query)["expires"][0])
        assert expires == int(clock.now().timestamp()) + 600

        clock.advance(600)
        assert fs_store.verify_access_url(url) == REFERENCE
        clock.advance(1)
        assert fs_store.verify_access_url(url) is None

    def test_tampered_reference(self, fs_store):
        fs_store.upload(REFERENCE, b"x")
        fs_store.upload("other/bill.jpg", b"y")
        url = fs_store.create_temporary_access_url(REFERENCE, ttl_seconds=600)
        forged = url.replace("6f1c2d9e-trip/0b8e-bill.jpg", "other/bill.jpg")
        assert fs_store.verify_access_url(forged) is None

    def test_extended_expiry_rejected(self, fs_store):
        fs_store.upload(REFERENCE, b"x")
        url = fs_store.create_temporary_access_url(REFERENCE, ttl_seconds=60)
        expires = parse_qs(urlsplit(url).query)["expires"][0]
        forged = url.replace(f"expires={expires}", f"expires={int(expires) + 86400}")
        assert fs_store.verify_access_url(forged) is None

    def test_other_secret_rejected(self, fs_store, tmp_path, clock):
        fs_store.upload(REFERENCE, b"x")
        url = fs_store.create_temporary_access_url(REFERENCE, ttl_seconds=60)
        other = FilesystemObjectStore(
            tmp_path / "bills",
            secret="different",
            base_url="https://files.example.test/bills",
            clock=clock,
        )
        assert other.verify_access_url(url) is None

    @pytest.mark.parametrize("url", [
        "https://elsewhere.test/bills/x.jpg?expires=1&signature=abc",
        "https://files.example.test/bills/x.jpg",
        "https://files.example.test/bills/x.jpg?expires=soon&signature=abc",
    ])
    def test_malformed(self, fs_store, url):
        assert fs_store.verify_access_url(url) is None

    def test_missing_object_has_no_url(self, fs_store):
        assert fs_store.create_temporary_access_url("absent/bill.jpg", 600) is None

    def test_ttl_must_be_positive(self, fs_store):
        fs_store.upload(REFERENCE, b"x")
        with pytest.raises(ValueError):
            fs_store.create_temporary_access_url(REFERENCE, ttl_seconds=0)


class TestInMemoryObjectStore:

    def test_behaves_like_filesystem_store(self, clock):
        store = InMemoryObjectStore(secret="k", clock=clock)
        store.upload(REFERENCE, b"abc", "image/jpeg")

        assert store.exists(REFERENCE)
        assert store.read(REFERENCE) == b"abc"
        with pytest.raises(UploadFailedError):
            store.upload(REFERENCE, b"again")

        url = store.create_temporary_access_url(REFERENCE, 30)
        assert store.verify_access_url(url) == REFERENCE

        store.delete(REFERENCE)
        assert store.read(REFERENCE) is None
        assert store.create_temporary_access_url(REFERENCE, 30) is None

    def test_rejects_traversal(self):
        with pytest.raises(UploadFailedError):
            InMemoryObjectStore().upload("../x", b"x")
