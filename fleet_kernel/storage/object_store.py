"""
Module: fleet_kernel.storage.object_store
Responsibility: Binary object storage for expense bill documents.
Architecture position: Kernel > Storage.  Used by ExpenseService (upload,
    delete) and TripSelector (temporary access URLs).  MUST NOT import from
    services/ or selectors/.

Invariants enforced:
    - Objects are never overwritten: uploading to an existing reference is
      an UploadFailedError.  Bill references embed a fresh uuid4.
    - Temporary access URLs carry an expiry and an HMAC signature over
      (reference, expiry); verify_access_url() rejects tampered or expired
      URLs.
    - References never escape the store root (no absolute paths, no "..").

Failure modes:
    - UploadFailedError when the backing store rejects the write.
    - create_temporary_access_url() returns None for a missing object.
"""

import hashlib
import hmac
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from urllib.parse import parse_qs, quote, unquote, urlsplit

from fleet_kernel.domain.clock import Clock, SystemClock
from fleet_kernel.exceptions import UploadFailedError
from fleet_kernel.logging_config import get_logger

logger = get_logger("storage.object_store")

DEFAULT_CONTENT_TYPE = "application/octet-stream"


@dataclass(frozen=True)
class StoredObject:
    """Result of a successful upload."""

    reference: str
    size: int
    content_type: str


@dataclass(frozen=True)
class BillUpload:
    """A bill document supplied alongside an expense."""

    filename: str
    content: bytes
    content_type: str = DEFAULT_CONTENT_TYPE

    @property
    def extension(self) -> str:
        """Text after the last dot of the filename, or ``bin`` when there is none."""
        name = PurePosixPath(self.filename).name
        if "." not in name:
            return "bin"
        ext = name.rsplit(".", 1)[1].strip().lower()
        return ext or "bin"


def _clean_reference(reference: str) -> str | None:
    if not reference:
        return None
    path = PurePosixPath(reference)
    if path.is_absolute() or any(part in ("..", "") for part in path.parts):
        return None
    return path.as_posix()


def _sign(secret: str, reference: str, expires: int) -> str:
    return hmac.new(
        secret.encode("utf-8"),
        f"{reference}:{expires}".encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


class ObjectStore(ABC):
    """Contract for bill document storage."""

    @abstractmethod
    def upload(
        self,
        path: str,
        data: bytes,
        content_type: str = DEFAULT_CONTENT_TYPE,
    ) -> StoredObject:
        """Store ``data`` at ``path``; raise UploadFailedError on failure."""

    @abstractmethod
    def create_temporary_access_url(self, reference: str, ttl_seconds: int) -> str | None:
        """Signed URL valid for ``ttl_seconds``, or None if the object is missing."""

    @abstractmethod
    def delete(self, reference: str) -> None:
        """Remove an object.  Deleting a missing object is not an error."""

    @abstractmethod
    def exists(self, reference: str) -> bool:
        """Whether an object is stored under ``reference``."""


class _SignedUrlMixin:
    """Expiring HMAC-signed URLs shared by the concrete stores."""

    _secret: str
    _base_url: str
    _clock: Clock

    def _signed_url(self, reference: str, ttl_seconds: int) -> str:
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive (got {ttl_seconds})")
        expires = int(self._clock.now().timestamp()) + ttl_seconds
        signature = _sign(self._secret, reference, expires)
        return (
            f"{self._base_url.rstrip('/')}/{quote(reference)}"
            f"?expires={expires}&signature={signature}"
        )

    def verify_access_url(self, url: str) -> str | None:
        """
        Check a URL produced by create_temporary_access_url().

        Returns:
            The object reference if the signature matches and the URL has
            not expired, otherwise None.
        """
        parts = urlsplit(url)
        base = urlsplit(self._base_url.rstrip("/"))
        if (parts.scheme, parts.netloc) != (base.scheme, base.netloc):
            return None

        prefix = base.path.rstrip("/") + "/"
        if not parts.path.startswith(prefix):
            return None
        reference = unquote(parts.path[len(prefix):])

        query = parse_qs(parts.query)
        try:
            expires = int(query["expires"][0])
            signature = query["signature"][0]
        except (KeyError, IndexError, ValueError):
            return None

        expected = _sign(self._secret, reference, expires)
        if not hmac.compare_digest(signature, expected):
            return None
        if int(self._clock.now().timestamp()) > expires:
            return None
        return reference


class FilesystemObjectStore(_SignedUrlMixin, ObjectStore):
    """
    Object store backed by a directory tree.

    Each reference maps to a file under ``root``; writes go to a temporary
    file first and are renamed into place.
    """

    def __init__(
        self,
        root: str | Path,
        secret: str,
        base_url: str = "http://localhost/bills",
        clock: Clock | None = None,
    ):
        if not secret:
            raise ValueError("storage secret must not be empty")
        self.root = Path(root)
        self._secret = secret
        self._base_url = base_url
        self._clock = clock or SystemClock()

    def _path_for(self, reference: str) -> Path | None:
        cleaned = _clean_reference(reference)
        if cleaned is None:
            return None
        return self.root.joinpath(*PurePosixPath(cleaned).parts)

    def upload(
        self,
        path: str,
        data: bytes,
        content_type: str = DEFAULT_CONTENT_TYPE,
    ) -> StoredObject:
        target = self._path_for(path)
        if target is None:
            raise UploadFailedError(path, "invalid object path")
        if target.exists():
            raise UploadFailedError(path, "object already exists")

        tmp = target.with_name(f".{target.name}.partial")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_bytes(data)
            os.replace(tmp, target)
        except OSError as exc:
            if tmp.exists():
                tmp.unlink()
            logger.error(
                "object_upload_failed",
                extra={"reference": path, "error": str(exc)},
            )
            raise UploadFailedError(path, str(exc)) from exc

        logger.info(
            "object_uploaded",
            extra={"reference": path, "size": len(data), "content_type": content_type},
        )
        return StoredObject(reference=path, size=len(data), content_type=content_type)

    def exists(self, reference: str) -> bool:
        target = self._path_for(reference)
        return target is not None and target.is_file()

    def create_temporary_access_url(self, reference: str, ttl_seconds: int) -> str | None:
        if not self.exists(reference):
            return None
        return self._signed_url(reference, ttl_seconds)

    def read(self, reference: str) -> bytes | None:
        """Contents of an object, or None if it does not exist."""
        if not self.exists(reference):
            return None
        return self._path_for(reference).read_bytes()

    def delete(self, reference: str) -> None:
        target = self._path_for(reference)
        if target is None:
            return
        target.unlink(missing_ok=True)
        logger.info("object_deleted", extra={"reference": reference})


class InMemoryObjectStore(_SignedUrlMixin, ObjectStore):
    """Dictionary-backed store for tests and local runs."""

    def __init__(
        self,
        secret: str = "in-memory",
        base_url: str = "memory://bills",
        clock: Clock | None = None,
    ):
        self.objects: dict[str, tuple[bytes, str]] = {}
        self._secret = secret
        self._base_url = base_url
        self._clock = clock or SystemClock()

    def upload(
        self,
        path: str,
        data: bytes,
        content_type: str = DEFAULT_CONTENT_TYPE,
    ) -> StoredObject:
        if _clean_reference(path) is None:
            raise UploadFailedError(path, "invalid object path")
        if path in self.objects:
            raise UploadFailedError(path, "object already exists")
        self.objects[path] = (bytes(data), content_type)
        return StoredObject(reference=path, size=len(data), content_type=content_type)

    def exists(self, reference: str) -> bool:
        return reference in self.objects

    def create_temporary_access_url(self, reference: str, ttl_seconds: int) -> str | None:
        if reference not in self.objects:
            return None
        return self._signed_url(reference, ttl_seconds)

    def read(self, reference: str) -> bytes | None:
        stored = self.objects.get(reference)
        return stored[0] if stored else None

    def delete(self, reference: str) -> None:
        self.objects.pop(reference, None)
