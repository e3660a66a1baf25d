"""
The plaintext keychain dump exchanged with irestore (keys.json).

The document is an object keyed by class label ("Certs", "General", ...)
holding lists of decrypted items. Top-level keys this module does not know
about are carried through untouched.
"""

import json
from pathlib import Path
from typing import Any

from errors import FormatInconsistencyError
from .classes import RECORD_CLASSES, RecordClass
from .models import KeychainItem, item_from_dump


class KeychainDump:
    """Decrypted keychain items grouped by record class."""

    def __init__(self, items: dict[RecordClass, list[KeychainItem]], other: dict[str, Any] | None = None):
        self._items = items
        self.other = other or {}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "KeychainDump":
        """
        Build from the decoded JSON document.

        Raises:
            FormatInconsistencyError: if the document or one of its class sections has the wrong shape
        """
        if not isinstance(data, dict):
            raise FormatInconsistencyError("Keychain dump is not a JSON object")

        items = {}
        for record_class in RECORD_CLASSES:
            if record_class.label not in data:
                continue
            entries = data[record_class.label] or []
            if not isinstance(entries, list) or not all(isinstance(entry, dict) for entry in entries):
                raise FormatInconsistencyError(
                    f"Keychain dump section '{record_class.label}' is not a list of objects"
                )
            items[record_class] = [item_from_dump(record_class, entry) for entry in entries]

        labels = {record_class.label for record_class in RECORD_CLASSES}
        other = {key: value for key, value in data.items() if key not in labels}
        return cls(items, other)

    @classmethod
    def load(cls, path: Path) -> "KeychainDump":
        try:
            data = json.loads(Path(path).read_text(encoding="utf-8"))
        except ValueError as e:
            raise FormatInconsistencyError(f"Keychain dump is not valid JSON: {e}") from e
        return cls.from_dict(data)

    def has_class(self, record_class: RecordClass) -> bool:
        return record_class in self._items

    def items(self, record_class: RecordClass) -> list[KeychainItem]:
        """
        Items of one class.

        Raises:
            FormatInconsistencyError: if the dump has no entry for the class
        """
        try:
            return self._items[record_class]
        except KeyError:
            raise FormatInconsistencyError(
                f"Keychain dump has no '{record_class.label}' section"
            ) from None

    def replace_items(self, record_class: RecordClass, items: list[KeychainItem]) -> None:
        self._items[record_class] = items

    def count(self, record_class: RecordClass) -> int:
        return len(self._items.get(record_class, []))

    def to_dict(self) -> dict[str, Any]:
        data = dict(self.other)
        for record_class, items in self._items.items():
            data[record_class.label] = [item.to_dump() for item in items]
        return data

    def save(self, path: Path) -> None:
        Path(path).write_text(json.dumps(self.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8")
