"""Utilities for working with the local blobstore that holds the snapshot."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Union

# ``feedwindow/blobstore`` is part of the package so the storage lives alongside the
# code.  This keeps runtime artefacts encapsulated within the distributable module.
_PACKAGE_DIR = Path(__file__).resolve().parent

#: Name of the directory under :mod:`feedwindow.blobstore` that contains the data.
DEFAULT_BLOB_SUBDIR = "data"

#: Default location where snapshots are stored.
DEFAULT_BLOB_ROOT = _PACKAGE_DIR / DEFAULT_BLOB_SUBDIR


_Pathish = Union[str, Path]


def resolve_blob_root(blob_root: _Pathish | None = None) -> Path:
    """Return a :class:`Path` pointing at the blob root.

    ``blob_root`` may be either a string or :class:`Path`.  When ``None`` is
    provided, :data:`DEFAULT_BLOB_ROOT` is returned.  The path is not created on
    disk; callers can use :func:`ensure_blob_root` if they need to create it.
    """

    if blob_root is None:
        return DEFAULT_BLOB_ROOT
    if isinstance(blob_root, Path):
        return blob_root
    return Path(blob_root)


def ensure_blob_root(blob_root: _Pathish | None = None) -> Path:
    """Ensure the blob root exists and return it as a :class:`Path`."""

    root = resolve_blob_root(blob_root)
    root.mkdir(parents=True, exist_ok=True)
    return root


class BlobStore:
    """Minimal string key-value store backed by one file per key."""

    def __init__(self, blob_root: _Pathish | None = None) -> None:
        self.root = resolve_blob_root(blob_root)

    def _path_for(self, key: str) -> Path:
        if not key or key in {".", ".."} or "/" in key or os.sep in key:
            raise ValueError(f"Invalid blob key: {key!r}")
        return self.root / key

    def get(self, key: str) -> str | None:
        """Return the stored value for ``key`` or ``None`` when absent."""

        path = self._path_for(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def put(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``.

        The value is written to a temporary file first and moved into place, so
        readers see either the previous value or the new one.
        """

        path = self._path_for(key)
        root = ensure_blob_root(self.root)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{key}.", dir=root)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as file:
                file.write(value)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise


__all__ = [
    "BlobStore",
    "DEFAULT_BLOB_ROOT",
    "DEFAULT_BLOB_SUBDIR",
    "ensure_blob_root",
    "resolve_blob_root",
]
