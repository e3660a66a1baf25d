"""
The binary keychain container restored from a backup (keychain-backup.plist).

Each record class is a list of dictionaries keyed by the class tag. A record
is opaque apart from its composite persistent reference (v_PersistentRef)
and its encrypted payload (v_Data).
"""

import logging
import plistlib
from pathlib import Path
from typing import Any, Optional
from xml.parsers.expat import ExpatError

from errors import FormatInconsistencyError
from .classes import RecordClass

logger = logging.getLogger(__name__)

PERSISTENT_REF = "v_PersistentRef"
PAYLOAD = "v_Data"

ContainerRecord = dict[str, Any]


def reference_of(record: ContainerRecord) -> Optional[bytes]:
    """Composite persistent reference of a container record, if it has one."""
    value = record.get(PERSISTENT_REF)
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    return None


class KeychainBackup:
    """In-memory keychain container; serialises to its original bytes until modified."""

    def __init__(self, document: dict[str, Any], raw: Optional[bytes] = None):
        self._document = document
        self._raw = raw
        self.modified = raw is None

    @classmethod
    def from_bytes(cls, raw: bytes) -> "KeychainBackup":
        """
        Parse a keychain container.

        Raises:
            FormatInconsistencyError: if `raw` is not a plist dictionary
        """
        try:
            document = plistlib.loads(raw)
        except (ValueError, ExpatError) as e:
            raise FormatInconsistencyError(f"Keychain container is not a readable plist: {e}") from e
        if not isinstance(document, dict):
            raise FormatInconsistencyError("Keychain container is not a dictionary")
        return cls(document, raw)

    @classmethod
    def read(cls, path: Path) -> "KeychainBackup":
        return cls.from_bytes(Path(path).read_bytes())

    def has_class(self, record_class: RecordClass) -> bool:
        return isinstance(self._document.get(record_class.tag), list)

    def records(self, record_class: RecordClass) -> list[ContainerRecord]:
        """
        Records of one class, in container order.

        Raises:
            FormatInconsistencyError: if the container has no list for the class
        """
        if not self.has_class(record_class):
            raise FormatInconsistencyError(f"Keychain container has no '{record_class.tag}' records")
        return self._document[record_class.tag]

    def count(self, record_class: RecordClass) -> int:
        return len(self.records(record_class))

    def set_payload(self, record: ContainerRecord, payload: Any) -> bool:
        """Replace a record's encrypted payload. Returns whether anything changed."""
        if record.get(PAYLOAD) == payload:
            return False
        record[PAYLOAD] = payload
        self.modified = True
        return True

    def replace_records(self, record_class: RecordClass, records: list[ContainerRecord]) -> None:
        current = self.records(record_class)
        if len(records) != len(current):
            self.modified = True
        self._document[record_class.tag] = records

    def to_bytes(self) -> bytes:
        if not self.modified and self._raw is not None:
            return self._raw
        return plistlib.dumps(self._document, fmt=plistlib.FMT_BINARY, sort_keys=False)

    def write(self, path: Path) -> bytes:
        """Write the container to `path` and return the written bytes."""
        data = self.to_bytes()
        Path(path).write_bytes(data)
        logger.debug(f"Wrote keychain container ({len(data)} bytes) to {path}")
        return data
