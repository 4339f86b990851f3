"""
Interfaces to the services the receiver consults but does not own.

- ``SecurityGate`` decides whether a destination file may be written.
- ``LibraryIndexer`` is told about every channel directory the receiver
  creates so the media library can pick it up.

Each interface ships with a default implementation suitable for running
the receiver on its own.
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

logger = logging.getLogger(__name__)


class WriteAccessDenied(PermissionError):
    """Raised when the security gate refuses a destination path."""


# ---------------------------------------------------------------------------
#  Security gate
# ---------------------------------------------------------------------------

class SecurityGate(ABC):
    """Write-permission check consulted before any destination file is opened."""

    @abstractmethod
    def is_write_allowed(self, path: Path) -> bool:
        """Return True if the receiver may create or overwrite ``path``."""


class StorageFolderSecurityGate(SecurityGate):
    """
    Allows writes only inside a base folder.

    Paths are resolved first, so ``..`` components or symlinks that point
    outside the folder are refused.
    """

    def __init__(self, storage_folder: Path) -> None:
        self.storage_folder = Path(storage_folder)

    def is_write_allowed(self, path: Path) -> bool:
        root = self.storage_folder.resolve()
        target = Path(path).resolve()
        return target != root and target.is_relative_to(root)


# ---------------------------------------------------------------------------
#  Library indexer
# ---------------------------------------------------------------------------

@dataclass
class FolderMetadata:
    """
    Library metadata attached to a media folder.

    Attributes:
        enabled: Whether the library should index the folder
        comment: Free text shown next to the folder (the channel description)
    """

    enabled: bool = True
    comment: Optional[str] = None


class LibraryIndexer(ABC):
    """Receives notifications about new channel directories."""

    @abstractmethod
    def register_folder(self, path: Path) -> None:
        """Make the library aware of a newly created folder."""

    @abstractmethod
    def set_folder_metadata(self, path: Path, metadata: FolderMetadata) -> None:
        """Attach metadata to a previously registered folder."""


class LoggingLibraryIndexer(LibraryIndexer):
    """Indexer used when no media library is attached; only logs."""

    def register_folder(self, path: Path) -> None:
        logger.info("New podcast folder %s", path)

    def set_folder_metadata(self, path: Path, metadata: FolderMetadata) -> None:
        logger.debug(
            "Folder %s enabled=%s comment=%r", path, metadata.enabled, metadata.comment
        )


class InMemoryLibraryIndexer(LibraryIndexer):
    """Indexer that keeps registered folders in a dict; thread-safe."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.folders: Dict[Path, Optional[FolderMetadata]] = {}

    def register_folder(self, path: Path) -> None:
        with self._lock:
            self.folders.setdefault(Path(path), None)

    def set_folder_metadata(self, path: Path, metadata: FolderMetadata) -> None:
        with self._lock:
            if Path(path) not in self.folders:
                raise KeyError(f"Folder not registered: {path}")
            self.folders[Path(path)] = metadata
