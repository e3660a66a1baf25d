"""
The closed table of keychain record classes.

Each class is known by a 4-byte tag inside the backup plist and by a label
inside the plaintext dump written by irestore.
"""

from enum import Enum


class RecordClass(Enum):
    """Keychain record class. Declaration order is the matching order."""

    CERT = ("cert", "Certs")
    GENP = ("genp", "General")
    INET = ("inet", "Internet")
    KEYS = ("keys", "Keys")

    def __init__(self, tag: str, label: str):
        self.tag = tag
        self.label = label

    @property
    def tag_bytes(self) -> bytes:
        """Tag as it prefixes a persistent reference inside the container."""
        return self.tag.encode("ascii")

    @classmethod
    def from_tag(cls, tag: str) -> "RecordClass":
        for record_class in cls:
            if record_class.tag == tag:
                return record_class
        raise KeyError(tag)

    @classmethod
    def from_label(cls, label: str) -> "RecordClass":
        for record_class in cls:
            if record_class.label == label:
                return record_class
        raise KeyError(label)


RECORD_CLASSES = tuple(RecordClass)
