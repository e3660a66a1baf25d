"""
Per-request keychain session.

A session runs one inspect, update or delete against one backup:

1. irestore dumps the decrypted keychain and restores the keychain container
2. the keychain package reconciles the two
3. for updates, irestore re-encrypts the edited dump and the new payloads
   are merged into the container

Every request gets its own temporary working area, removed on every exit path.
Nothing is kept between requests.
"""

import logging
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional

from config import Config, config
from errors import HelperError, PreconditionError
from keychain import (
    DeleteDescriptor,
    EditDescriptor,
    KeychainBackup,
    KeychainDump,
    apply_edits,
    merge_deletes,
    merge_edits,
    project,
)
from .irestore import IRestore

logger = logging.getLogger(__name__)

KEYCHAIN_DOMAIN = "KeychainDomain"
KEYCHAIN_FILE = "keychain-backup.plist"
DUMP_FILE = "keys.json"
UPDATED_DUMP_FILE = "keys-updated.json"
FRAGMENT_FILE = "keys-updated.plist"


class WorkingArea:
    """File layout of one session's temporary directory."""

    def __init__(self, root: Path):
        self.root = root

    @property
    def dump_path(self) -> Path:
        return self.root / DUMP_FILE

    @property
    def domain_dir(self) -> Path:
        return self.root / KEYCHAIN_DOMAIN

    @property
    def container_path(self) -> Path:
        return self.domain_dir / KEYCHAIN_FILE

    @property
    def updated_dump_path(self) -> Path:
        return self.root / UPDATED_DUMP_FILE

    @property
    def fragment_path(self) -> Path:
        return self.root / FRAGMENT_FILE


@contextmanager
def working_area(parent: Optional[str] = None) -> Iterator[WorkingArea]:
    """Temporary working area, deleted when the block exits."""
    with tempfile.TemporaryDirectory(prefix="keychain-editor-", dir=parent) as temp_dir:
        yield WorkingArea(Path(temp_dir))


def check_backup_request(backup_path: Optional[str], password: Optional[str]) -> None:
    """
    Validate the inputs every operation needs.

    Raises:
        PreconditionError: if the path or password is missing, or the path does not exist
    """
    if not backup_path or not password:
        raise PreconditionError("Missing path or password")
    if not Path(backup_path).exists():
        raise PreconditionError("Backup path does not exist")


class KeychainSession:
    """Inspects and edits the keychain of one backup."""

    def __init__(
        self,
        backup_path: str,
        password: str,
        settings: Config = config,
        helper: Any = None,
    ):
        """
        Initialize the session.

        Args:
            backup_path: Path to the backup directory
            password: Backup password
            settings: Application configuration
            helper: Object with async dump_keys/restore/encrypt_keys; defaults to IRestore
        """
        check_backup_request(backup_path, password)
        self.backup_path = backup_path
        self.settings = settings
        self.helper = helper or IRestore(
            backup_path,
            password,
            binary=settings.IRESTORE_BIN,
            timeout=settings.IRESTORE_TIMEOUT,
        )

    async def _load(self, area: WorkingArea) -> tuple[KeychainBackup, KeychainDump]:
        """Dump and restore the keychain into `area` and load both documents."""
        await self.helper.dump_keys(area.dump_path)
        await self.helper.restore(KEYCHAIN_DOMAIN, area.domain_dir)

        if not area.dump_path.exists():
            raise HelperError(f"irestore did not write {DUMP_FILE}")
        if not area.container_path.exists():
            raise HelperError(f"irestore did not restore {KEYCHAIN_FILE}")

        return KeychainBackup.read(area.container_path), KeychainDump.load(area.dump_path)

    async def inspect(self) -> dict[str, dict[str, Any]]:
        """Editable view of every record class."""
        with working_area(self.settings.work_dir) as area:
            backup, dump = await self._load(area)
            views = project(backup, dump)
        return {tag: view.to_dict() for tag, view in views.items()}

    async def update(self, edits: list[EditDescriptor]) -> bytes:
        """Apply `edits` and return the updated keychain container."""
        with working_area(self.settings.work_dir) as area:
            backup, dump = await self._load(area)

            if not edits:
                logger.info("No edits requested; keychain container unchanged")
                return backup.to_bytes()

            apply_edits(dump, edits)
            dump.save(area.updated_dump_path)

            await self.helper.encrypt_keys(area.updated_dump_path, area.fragment_path)
            if not area.fragment_path.exists():
                raise HelperError(f"irestore did not write {FRAGMENT_FILE}")
            fragment = KeychainBackup.read(area.fragment_path)

            merge_edits(backup, fragment, edits)
            return backup.write(area.container_path)

    async def delete(self, deletes: list[DeleteDescriptor]) -> bytes:
        """Remove the referenced records and return the updated keychain container."""
        if not deletes:
            raise PreconditionError("No items specified for deletion")

        with working_area(self.settings.work_dir) as area:
            backup, dump = await self._load(area)
            merge_deletes(backup, dump, deletes)
            return backup.write(area.container_path)
