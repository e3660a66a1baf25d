import asyncio
import plistlib
from pathlib import Path

import pytest

from backup import KeychainSession
from errors import BadPasswordError, FormatInconsistencyError, PreconditionError
from keychain import DeleteDescriptor, EditDescriptor, KeychainDump
from conftest import GENP_REFS, FakeIRestore, b64


def run(coro):
    return asyncio.run(coro)


def session(backup_dir, settings, helper):
    return KeychainSession(str(backup_dir), "secret", settings, helper=helper)


def test_preconditions(backup_dir, settings, fake_irestore):
    with pytest.raises(PreconditionError, match="Missing path or password"):
        KeychainSession("", "secret", settings, helper=fake_irestore)
    with pytest.raises(PreconditionError, match="Missing path or password"):
        KeychainSession(str(backup_dir), "", settings, helper=fake_irestore)
    with pytest.raises(PreconditionError, match="does not exist"):
        KeychainSession(str(backup_dir / "missing"), "secret", settings, helper=fake_irestore)
    assert fake_irestore.calls == []


def test_inspect_returns_view_for_every_class(backup_dir, settings, fake_irestore):
    result = run(session(backup_dir, settings, fake_irestore).inspect())

    assert set(result) == {"cert", "genp", "inet", "keys"}
    assert result["genp"]["total"] == 3
    assert result["inet"] == {
        "total": 2,
        "items": [{
            "persistref": result["inet"]["items"][0]["persistref"],
            "agrp": "com.apple.safari",
            "srvr": "example.com",
            "labl": "example.com (user)",
        }],
        "undecrypted": 1,
    }
    assert all("_uuid" not in item for item in result["genp"]["items"])
    assert fake_irestore.calls == ["dumpkeys", "restore"]


def test_update_without_edits_returns_original_bytes(backup_dir, settings, fake_irestore, container_bytes):
    content = run(session(backup_dir, settings, fake_irestore).update([]))

    assert content == container_bytes
    assert "encryptkeys" not in fake_irestore.calls


def test_update_changes_only_edited_payload(backup_dir, settings, fake_irestore, container_data):
    edits = [EditDescriptor(reference=b64(GENP_REFS[1]), attributes={"labl": "renamed"})]

    content = run(session(backup_dir, settings, fake_irestore).update(edits))
    updated = plistlib.loads(content)

    assert fake_irestore.calls == ["dumpkeys", "restore", "encryptkeys"]
    assert [item["labl"] for item in fake_irestore.encrypted_dump["General"]] == ["label-0", "renamed", "label-2"]
    assert fake_irestore.encrypted_dump["General"][1]["_uuid"] == "uuid-1"

    assert updated["genp"][0] == container_data["genp"][0]
    assert updated["genp"][2] == container_data["genp"][2]
    assert updated["genp"][1]["v_PersistentRef"] == container_data["genp"][1]["v_PersistentRef"]
    assert updated["genp"][1]["v_Data"].startswith(b"enc:")
    assert updated["inet"] == container_data["inet"]
    assert updated["keys"] == container_data["keys"]


def test_delete_removes_records(backup_dir, settings, fake_irestore):
    deletes = [DeleteDescriptor(reference=b64(GENP_REFS[0]))]

    content = run(session(backup_dir, settings, fake_irestore).delete(deletes))
    updated = plistlib.loads(content)

    assert len(updated["genp"]) == 2
    assert len(updated["inet"]) == 2
    assert "encryptkeys" not in fake_irestore.calls


def test_delete_requires_items(backup_dir, settings, fake_irestore):
    with pytest.raises(PreconditionError):
        run(session(backup_dir, settings, fake_irestore).delete([]))
    assert fake_irestore.calls == []


def test_working_area_is_released(backup_dir, settings, fake_irestore):
    run(session(backup_dir, settings, fake_irestore).inspect())

    assert list(settings.WORK_DIR.iterdir()) == []


def test_capability_failure_propagates_and_releases_working_area(backup_dir, settings, bad_password_irestore):
    with pytest.raises(BadPasswordError):
        run(session(backup_dir, settings, bad_password_irestore).update([]))

    assert list(settings.WORK_DIR.iterdir()) == []


class UnreadableDumpIRestore(FakeIRestore):
    async def dump_keys(self, output_file: Path):
        self.calls.append("dumpkeys")
        Path(output_file).write_text("not json")


class UnreadableFragmentIRestore(FakeIRestore):
    async def encrypt_keys(self, input_file: Path, output_file: Path):
        self.calls.append("encryptkeys")
        Path(output_file).write_bytes(b"not a plist")


def test_unreadable_dump_is_a_format_inconsistency(backup_dir, settings, container_bytes, dump_data):
    helper = UnreadableDumpIRestore(container_bytes, dump_data)

    with pytest.raises(FormatInconsistencyError, match="not valid JSON"):
        run(session(backup_dir, settings, helper).inspect())
    assert list(settings.WORK_DIR.iterdir()) == []


def test_unreadable_container_is_a_format_inconsistency(backup_dir, settings, dump_data):
    helper = FakeIRestore(b"garbage", dump_data)

    with pytest.raises(FormatInconsistencyError):
        run(session(backup_dir, settings, helper).inspect())


def test_unreadable_fragment_is_a_format_inconsistency(backup_dir, settings, container_bytes, dump_data):
    helper = UnreadableFragmentIRestore(container_bytes, dump_data)
    edits = [EditDescriptor(reference=b64(GENP_REFS[0]), attributes={"labl": "x"})]

    with pytest.raises(FormatInconsistencyError):
        run(session(backup_dir, settings, helper).update(edits))
    assert list(settings.WORK_DIR.iterdir()) == []


def test_delete_with_non_string_reference_keeps_other_deletes(backup_dir, settings, fake_irestore):
    deletes = [
        DeleteDescriptor.from_item({"persistref": ["x"]}),
        DeleteDescriptor.from_item({"persistref": 12345}),
        DeleteDescriptor(reference=b64(GENP_REFS[1])),
    ]

    updated = plistlib.loads(run(session(backup_dir, settings, fake_irestore).delete(deletes)))

    assert len(updated["genp"]) == 2
    assert len(updated["inet"]) == 2


def test_delete_does_not_write_the_dump(monkeypatch, backup_dir, settings, fake_irestore):
    saved = []
    monkeypatch.setattr(KeychainDump, "save", lambda self, path: saved.append(path))

    run(session(backup_dir, settings, fake_irestore).delete([DeleteDescriptor(reference=b64(GENP_REFS[0]))]))

    assert saved == []
