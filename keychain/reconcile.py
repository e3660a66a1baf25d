"""
Reconciliation between the plaintext dump and the binary keychain container.

- project: container + dump -> editable per-class view
- apply_edits: overwrite attributes of dump items, matched by persistent reference
- merge_edits: copy re-encrypted payloads of edited records into the container
- merge_deletes: drop records from both the dump and the container

Plaintext items are identified by their bare persistent reference; container
records by the class tag followed by the same raw bytes (see reference.py).
Callers never say which class a reference belongs to.
"""

import logging
from typing import Iterable

from .classes import RECORD_CLASSES, RecordClass
from .container import KeychainBackup, reference_of, PAYLOAD
from .dump import KeychainDump
from .models import ClassView, DeleteDescriptor, EditDescriptor, KeychainItem
from .reference import composite_key

logger = logging.getLogger(__name__)


def _composite_keys(record_class: RecordClass, references: Iterable[str]) -> set[bytes]:
    keys = (composite_key(record_class, reference) for reference in references)
    return {key for key in keys if key is not None}


def project(backup: KeychainBackup, dump: KeychainDump) -> dict[str, ClassView]:
    """
    Build the editable view of every record class.

    `total` counts container records, `items` holds the decrypted items with
    internal fields stripped. Neither input is modified.

    Raises:
        FormatInconsistencyError: if a class is missing from either source
    """
    views = {}
    for record_class in RECORD_CLASSES:
        view = ClassView(
            total=backup.count(record_class),
            items=[item.to_view() for item in dump.items(record_class)],
        )
        if view.undecrypted > 0:
            logger.info(
                f"{record_class.tag}: {view.undecrypted} of {view.total} record(s) could not be decrypted"
            )
        views[record_class.tag] = view
    return views


def index_items(dump: KeychainDump) -> dict[str, KeychainItem]:
    """Map each persistent reference to its first item in class order."""
    index: dict[str, KeychainItem] = {}
    for record_class in RECORD_CLASSES:
        for item in dump.items(record_class):
            if not item.persistref:
                continue
            first = index.get(item.persistref)
            if first is not None:
                logger.warning(
                    f"Persistent reference {item.persistref} appears in both "
                    f"{first.record_class.tag} and {record_class.tag}; edits apply to {first.record_class.tag}"
                )
                continue
            index[item.persistref] = item
    return index


def apply_edits(dump: KeychainDump, edits: list[EditDescriptor]) -> KeychainDump:
    """
    Overwrite the attributes named by each edit on the matching dump item.

    Edits whose reference matches nothing are ignored. The dump is modified
    in place and returned.
    """
    index = index_items(dump)
    matched = 0
    for edit in edits:
        item = index.get(edit.reference)
        if item is None:
            logger.debug(f"Edit for unknown reference {edit.reference!r} ignored")
            continue
        item.update(edit.attributes)
        matched += 1
    logger.info(f"Applied {matched} of {len(edits)} edit(s) to the keychain dump")
    return dump


def merge_edits(backup: KeychainBackup, fragment: KeychainBackup, edits: list[EditDescriptor]) -> int:
    """
    Copy the re-encrypted payload of every edited record into `backup`.

    `fragment` is the container irestore produced from the edited dump.
    Records not named by an edit keep their bytes. Returns the number of
    container records whose payload changed.
    """
    references = [edit.reference for edit in edits]
    changed = 0
    for record_class in RECORD_CLASSES:
        keys = _composite_keys(record_class, references)
        if not keys:
            continue

        replacements = {}
        if fragment.has_class(record_class):
            for record in fragment.records(record_class):
                key = reference_of(record)
                if key in keys:
                    replacements[key] = record.get(PAYLOAD)
        else:
            logger.warning(f"Re-encrypted keychain has no '{record_class.tag}' records")

        for record in backup.records(record_class):
            key = reference_of(record)
            if key not in keys:
                continue
            if key not in replacements:
                logger.warning(f"{record_class.tag}: no re-encrypted payload for an edited record")
                continue
            if backup.set_payload(record, replacements[key]):
                changed += 1

    logger.info(f"Merged {changed} re-encrypted record(s) into the keychain container")
    return changed


def delete_items(dump: KeychainDump, deletes: list[DeleteDescriptor]) -> int:
    """Drop dump items whose reference is in `deletes`. Returns the number removed."""
    references = {delete.reference for delete in deletes if delete.reference}
    removed = 0
    for record_class in RECORD_CLASSES:
        items = dump.items(record_class)
        kept = [item for item in items if item.persistref not in references]
        removed += len(items) - len(kept)
        dump.replace_items(record_class, kept)
    return removed


def delete_records(backup: KeychainBackup, deletes: list[DeleteDescriptor]) -> int:
    """Drop container records matching any delete. Returns the number removed."""
    references = [delete.reference for delete in deletes]
    removed = 0
    for record_class in RECORD_CLASSES:
        keys = _composite_keys(record_class, references)
        records = backup.records(record_class)
        kept = [record for record in records if reference_of(record) not in keys]
        removed += len(records) - len(kept)
        backup.replace_records(record_class, kept)
    return removed


def merge_deletes(backup: KeychainBackup, dump: KeychainDump, deletes: list[DeleteDescriptor]) -> int:
    """
    Remove the referenced records from both the dump and the container.

    Container records irestore could not decrypt have no plaintext reference
    and therefore can never be deleted here. Returns the number of container
    records removed.
    """
    items_removed = delete_items(dump, deletes)
    records_removed = delete_records(backup, deletes)
    if items_removed != records_removed:
        logger.warning(
            f"Deleted {items_removed} dump item(s) but {records_removed} container record(s)"
        )
    logger.info(f"Deleted {records_removed} record(s) from the keychain container")
    return records_removed
