# src/storage/trash.py — v1
"""Recoverable deletion.

Every destructive operation in paravault goes through a Trash: the system
trash via send2trash, or a vault-local trash directory that keeps the
original relative layout so files can be restored by hand.
"""

from __future__ import annotations

import logging
import shutil
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path

from send2trash import send2trash

from paravault.core.errors import LocalIOError
from paravault.storage.atomic import resolve_conflict

logger = logging.getLogger(__name__)


class BaseTrash(ABC):
    """Move files somewhere they can be recovered from."""

    @abstractmethod
    def discard(self, path: Path) -> Path | None:
        """Move *path* to the trash.

        Returns:
            Location inside the trash when known, None for the system trash.

        Raises:
            LocalIOError: If the file could not be moved.
        """


class SystemTrash(BaseTrash):
    """Operating system trash / recycle bin."""

    def discard(self, path: Path) -> Path | None:
        try:
            send2trash(str(path))
        except OSError as e:
            raise LocalIOError(f"Could not trash {path}: {e}") from e
        logger.info("Moved %s to system trash", path)
        return None


class VaultTrash(BaseTrash):
    """Trash directory inside the vault state folder.

    Each trash instance writes into its own timestamped batch directory:
    ``<state_dir>/trash/<YYYYmmdd-HHMMSS>/<relative path>``.
    """

    def __init__(self, root: Path, state_dirname: str = ".paravault") -> None:
        self._root = Path(root)
        stamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
        self._batch_dir = self._root / state_dirname / "trash" / stamp

    @property
    def batch_dir(self) -> Path:
        return self._batch_dir

    def discard(self, path: Path) -> Path | None:
        path = Path(path)
        try:
            relative = path.resolve().relative_to(self._root.resolve())
        except ValueError:
            relative = Path(path.name)
        target = resolve_conflict(self._batch_dir / relative)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.move(str(path), str(target))
        except OSError as e:
            raise LocalIOError(f"Could not trash {path}: {e}") from e
        logger.info("Moved %s to vault trash %s", path, target)
        return target


def create_trash(backend: str, root: Path, state_dirname: str = ".paravault") -> BaseTrash:
    """Build the trash named by the ``trash_backend`` setting."""
    if backend == "system":
        return SystemTrash()
    if backend == "vault":
        return VaultTrash(root, state_dirname=state_dirname)
    raise ValueError(f"Unknown trash backend: {backend!r}")
