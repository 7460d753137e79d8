"""
Blob store adapter: raw file bytes under a single storage root.

Blobs are written under generated opaque names (uuid4 hex + the lower-cased
original extension) and optionally namespaced per owner:

    {storage_root}/{owner namespace}/{uuid}{ext}

Every path-accepting method canonicalizes its argument and refuses anything
that does not resolve inside the canonical root. An escape attempt is logged
on the `pc.security` logger and raised as PathTraversal.
"""

import hashlib
import logging
import os
import shutil
import threading
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Iterator, Optional, Union

from personal_cloud.core.errors import PathTraversal

logger = logging.getLogger("pc.storage")
security_logger = logging.getLogger("pc.security")

CHUNK_SIZE = 8192

PathLike = Union[str, "os.PathLike[str]"]


class BlobTooLarge(ValueError):
    """The source stream was longer than the allowed number of bytes."""


@dataclass(frozen=True)
class BlobWriteResult:
    path: Path
    size: int
    sha256: str


class BlobStore:
    def __init__(self, root: PathLike):
        self._configured_root = Path(root)
        self._root: Optional[Path] = None
        self._root_lock = threading.Lock()

    @property
    def root(self) -> Path:
        """Canonical storage root, created on first use."""
        if self._root is not None:
            return self._root
        with self._root_lock:
            if self._root is None:
                self._configured_root.mkdir(parents=True, exist_ok=True)
                self._root = self._configured_root.resolve()
                logger.info("Storage root ready: %s", self._root)
        return self._root

    # -------------------------------------------------------------------
    # Containment
    # -------------------------------------------------------------------

    def resolve(self, path: PathLike) -> Path:
        """
        Canonicalize `path` and require it to be a descendant of the root.

        Relative paths are taken relative to the root. Symlinks are resolved
        before the comparison, so a link pointing outside the root is rejected.
        """
        root = self.root
        raw = str(path)
        if not raw or "\x00" in raw:
            self._report_escape(raw)
        candidate = Path(os.path.abspath(os.path.join(root, raw))).resolve()
        if candidate == root or root not in candidate.parents:
            self._report_escape(raw)
        return candidate

    def _report_escape(self, raw: str) -> None:
        security_logger.error(
            "security_event=path_traversal root=%s candidate=%r", self.root, raw[:1024]
        )
        raise PathTraversal()

    def _namespace_dir(self, namespace: Optional[str]) -> Path:
        if namespace is None:
            return self.root
        ns = str(namespace)
        if not ns or ns in {".", ".."} or "/" in ns or "\\" in ns or "\x00" in ns:
            self._report_escape(ns)
        directory = self.resolve(ns)
        directory.mkdir(parents=True, exist_ok=True)
        return directory

    # -------------------------------------------------------------------
    # Blob operations
    # -------------------------------------------------------------------

    @staticmethod
    def opaque_name(original_name: Optional[str]) -> str:
        # Keep the extension for content-type inference on download.
        ext = os.path.splitext(os.path.basename(original_name or ""))[1].lower()
        if not ext[1:].isalnum():
            ext = ""
        return f"{uuid.uuid4().hex}{ext[:16]}"

    def put(
        self,
        namespace: Optional[str],
        source: BinaryIO,
        original_name: Optional[str] = None,
        max_bytes: Optional[int] = None,
    ) -> BlobWriteResult:
        """
        Copy `source` into a freshly named blob and return where it landed.

        When `max_bytes` is given and the stream turns out to be longer, the
        partial blob is removed and BlobTooLarge is raised.
        """
        directory = self._namespace_dir(namespace)
        target = self.resolve(directory / self.opaque_name(original_name))

        written = 0
        digest = hashlib.sha256()
        try:
            # "xb": a uuid collision must never overwrite an existing blob
            with open(target, "xb") as fh:
                while True:
                    chunk = source.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    written += len(chunk)
                    if max_bytes is not None and written > max_bytes:
                        raise BlobTooLarge(f"blob exceeds {max_bytes} bytes")
                    fh.write(chunk)
                    digest.update(chunk)
        except BaseException:
            self._discard(target)
            raise

        logger.info("Blob written: %s (%s bytes, sha256=%s)", target.name, written, digest.hexdigest()[:12])
        return BlobWriteResult(path=target, size=written, sha256=digest.hexdigest())

    def exists(self, path: PathLike) -> bool:
        return self.resolve(path).is_file()

    def open(self, path: PathLike) -> BinaryIO:
        target = self.resolve(path)
        return open(target, "rb")

    def size(self, path: PathLike) -> int:
        return self.resolve(path).stat().st_size

    def delete(self, path: PathLike) -> bool:
        """Remove a blob. Returns False when it was already gone."""
        target = self.resolve(path)
        try:
            target.unlink()
        except FileNotFoundError:
            return False
        logger.info("Blob deleted: %s", target.name)
        return True

    def _discard(self, target: Path) -> None:
        try:
            target.unlink()
        except FileNotFoundError:
            pass
        except OSError:
            logger.exception("Failed to remove partial blob %s", target)

    def iter_blobs(self) -> Iterator[Path]:
        """All blob files under the root (symlinks are skipped)."""
        for dirpath, _dirnames, filenames in os.walk(self.root):
            for name in filenames:
                p = Path(dirpath) / name
                if p.is_symlink():
                    continue
                yield p.resolve()

    def free_bytes(self) -> int:
        return shutil.disk_usage(self.root).free
