"""
Typed keychain records and the descriptors callers use to change them.

Plaintext records come from the irestore dump. Every record class shares the
common attributes (group, label, creation and modification date) and adds
its own known fields; anything else lands in the open attribute map as-is.
Fields starting with the internal marker are decryption metadata. They are
kept apart so they can be written back to irestore but never shown.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar

from .classes import RecordClass

INTERNAL_MARKER = "_"
REFERENCE_FIELD = "persistref"

COMMON_FIELDS = ("agrp", "labl", "cdat", "mdat")


def is_internal(name: str) -> bool:
    return name.startswith(INTERNAL_MARKER)


def reference_value(value: Any) -> str:
    """Persistent reference as a string. Any other JSON value becomes '', which never matches."""
    return value if isinstance(value, str) else ""


@dataclass
class KeychainItem:
    """One decrypted keychain record from the plaintext dump."""

    record_class: ClassVar[RecordClass]
    KNOWN_FIELDS: ClassVar[tuple[str, ...]] = COMMON_FIELDS

    persistref: str
    attributes: dict[str, Any] = field(default_factory=dict)
    internal: dict[str, Any] = field(default_factory=dict)
    # Field names in dump order
    order: list[str] = field(default_factory=list, repr=False, compare=False)

    @classmethod
    def from_dump(cls, data: dict[str, Any]) -> "KeychainItem":
        item = cls(persistref=reference_value(data.get(REFERENCE_FIELD)), order=list(data))
        for name, value in data.items():
            if name != REFERENCE_FIELD:
                item.set(name, value)
        return item

    def set(self, name: str, value: Any) -> None:
        if name == REFERENCE_FIELD:
            self.persistref = reference_value(value)
        elif is_internal(name):
            self.internal[name] = value
        else:
            self.attributes[name] = value

    def update(self, attributes: dict[str, Any]) -> None:
        """Overwrite only the given attributes; everything else is untouched."""
        for name, value in attributes.items():
            self.set(name, value)

    @property
    def known(self) -> dict[str, Any]:
        return {name: self.attributes[name] for name in self.KNOWN_FIELDS if name in self.attributes}

    @property
    def extra(self) -> dict[str, Any]:
        return {name: value for name, value in self.attributes.items() if name not in self.KNOWN_FIELDS}

    def _ordered(self, fields: dict[str, Any]) -> dict[str, Any]:
        ordered = {name: fields[name] for name in self.order if name in fields}
        # Fields added by edits go last
        ordered.update(fields)
        return ordered

    def to_view(self) -> dict[str, Any]:
        """Editable representation, internal fields stripped."""
        return self._ordered({REFERENCE_FIELD: self.persistref, **self.attributes})

    def to_dump(self) -> dict[str, Any]:
        """Full representation handed back to irestore for encryption."""
        return self._ordered({REFERENCE_FIELD: self.persistref, **self.attributes, **self.internal})


@dataclass
class CertificateItem(KeychainItem):
    record_class: ClassVar[RecordClass] = RecordClass.CERT
    KNOWN_FIELDS: ClassVar[tuple[str, ...]] = COMMON_FIELDS + ("ctyp", "cenc", "subj", "issr", "slnr", "skid", "pkhh")


@dataclass
class GenericPasswordItem(KeychainItem):
    record_class: ClassVar[RecordClass] = RecordClass.GENP
    KNOWN_FIELDS: ClassVar[tuple[str, ...]] = COMMON_FIELDS + ("acct", "svce", "gena", "desc", "icmt", "pdmn")


@dataclass
class InternetPasswordItem(KeychainItem):
    record_class: ClassVar[RecordClass] = RecordClass.INET
    KNOWN_FIELDS: ClassVar[tuple[str, ...]] = COMMON_FIELDS + ("acct", "srvr", "ptcl", "port", "path", "sdmn", "atyp")


@dataclass
class KeyItem(KeychainItem):
    record_class: ClassVar[RecordClass] = RecordClass.KEYS
    KNOWN_FIELDS: ClassVar[tuple[str, ...]] = COMMON_FIELDS + ("kcls", "klbl", "atag", "type", "bsiz", "esiz")


ITEM_TYPES: dict[RecordClass, type[KeychainItem]] = {
    RecordClass.CERT: CertificateItem,
    RecordClass.GENP: GenericPasswordItem,
    RecordClass.INET: InternetPasswordItem,
    RecordClass.KEYS: KeyItem,
}


def item_from_dump(record_class: RecordClass, data: dict[str, Any]) -> KeychainItem:
    return ITEM_TYPES[record_class].from_dump(data)


@dataclass
class EditDescriptor:
    """Caller-supplied change: new attribute values for one reference."""

    reference: str
    attributes: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_item(cls, data: dict[str, Any]) -> "EditDescriptor":
        """Build from a full item object as the browser client sends it."""
        attributes = {name: value for name, value in data.items() if name != REFERENCE_FIELD}
        return cls(reference=reference_value(data.get(REFERENCE_FIELD)), attributes=attributes)


@dataclass
class DeleteDescriptor:
    """Caller-supplied removal of one reference."""

    reference: str

    @classmethod
    def from_item(cls, data: dict[str, Any]) -> "DeleteDescriptor":
        return cls(reference=reference_value(data.get(REFERENCE_FIELD)))


@dataclass
class ClassView:
    """Per-class projection returned by inspect."""

    total: int
    items: list[dict[str, Any]] = field(default_factory=list)

    @property
    def undecrypted(self) -> int:
        """Container records irestore could not turn into plaintext."""
        return self.total - len(self.items)

    def to_dict(self) -> dict[str, Any]:
        return {"total": self.total, "items": self.items, "undecrypted": self.undecrypted}

