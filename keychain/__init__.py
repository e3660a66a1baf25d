"""
Keychain reconciliation for Keychain Editor.

Handles:
- Record classes and typed keychain items
- Persistent reference transcoding
- Plaintext dump and binary container documents
- Projection, edit and delete merging between the two
"""

from .classes import RecordClass, RECORD_CLASSES
from .container import KeychainBackup
from .dump import KeychainDump
from .models import ClassView, DeleteDescriptor, EditDescriptor, KeychainItem
from .reconcile import apply_edits, merge_deletes, merge_edits, project
from .reference import composite_key

__all__ = [
    "RecordClass",
    "RECORD_CLASSES",
    "KeychainBackup",
    "KeychainDump",
    "ClassView",
    "DeleteDescriptor",
    "EditDescriptor",
    "KeychainItem",
    "apply_edits",
    "merge_deletes",
    "merge_edits",
    "project",
    "composite_key",
]
