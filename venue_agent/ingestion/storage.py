"""
Object Storage Module
=====================

Abstract and concrete implementations for persisting venue image bytes
under deterministic paths and exposing them by public URL.
"""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from pathlib import Path, PurePosixPath

from venue_agent.core.errors import ExternalServiceError


class ObjectStorage(ABC):
    """
    Abstract base class for object storage.

    Paths are relative, "/"-separated keys such as
    ``venues/dishoom_covent-garden-london/images/dishoom_..._01.jpg``.
    """

    @abstractmethod
    def write(self, path: str, data: bytes, content_type: str = "image/jpeg") -> str:
        """
        Store bytes at a path, replacing any existing object.

        Args:
            path: Storage key
            data: Raw bytes
            content_type: MIME type of the data

        Returns:
            Public URL of the stored object

        Raises:
            ExternalServiceError: If the object cannot be stored
        """
        pass

    @abstractmethod
    def read(self, path: str) -> bytes | None:
        """
        Read an object.

        Args:
            path: Storage key

        Returns:
            Raw bytes, or None if not found
        """
        pass

    @abstractmethod
    def delete(self, path: str) -> bool:
        """
        Delete an object.

        Returns:
            True if deleted, False if not found
        """
        pass

    @abstractmethod
    def public_url(self, path: str) -> str:
        """Public URL for a storage key."""
        pass


class LocalObjectStorage(ObjectStorage):
    """
    Local filesystem object storage.

    Directory structure:
        {base_path}/{path}

    Public URLs are ``{base_url}/{path}`` when a base URL is configured,
    otherwise ``file://`` URLs.
    """

    def __init__(self, base_path: str | Path, base_url: str = "") -> None:
        self.base_path = Path(base_path).expanduser().resolve()
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.base_url = base_url.rstrip("/")

    def _full_path(self, path: str) -> Path:
        relative = PurePosixPath(path)
        if relative.is_absolute() or ".." in relative.parts:
            raise ValueError(f"Invalid storage path: {path}")
        return self.base_path.joinpath(*relative.parts)

    def write(self, path: str, data: bytes, content_type: str = "image/jpeg") -> str:
        full_path = self._full_path(path)
        try:
            full_path.parent.mkdir(parents=True, exist_ok=True)
            full_path.write_bytes(data)
        except OSError as e:
            raise ExternalServiceError("object-storage", f"could not write {path}: {e}") from e
        return self.public_url(path)

    def read(self, path: str) -> bytes | None:
        full_path = self._full_path(path)
        if not full_path.exists():
            return None
        return full_path.read_bytes()

    def delete(self, path: str) -> bool:
        full_path = self._full_path(path)
        if not full_path.exists():
            return False
        full_path.unlink()
        return True

    def public_url(self, path: str) -> str:
        if self.base_url:
            return f"{self.base_url}/{path}"
        return self._full_path(path).as_uri()


def get_default_storage(base_path: str | None = None, base_url: str | None = None) -> LocalObjectStorage:
    """
    Get the default storage instance.

    Uses VENUE_STORAGE_PATH and VENUE_STORAGE_BASE_URL environment variables,
    defaulting to ~/.venue_agent/storage.
    """
    storage_path = base_path or os.environ.get("VENUE_STORAGE_PATH", "~/.venue_agent/storage")
    storage_url = base_url if base_url is not None else os.environ.get("VENUE_STORAGE_BASE_URL", "")
    return LocalObjectStorage(storage_path, storage_url)
