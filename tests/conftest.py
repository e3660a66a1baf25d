import base64
import json
import plistlib
from pathlib import Path

import pytest

from config import Config
from errors import BadPasswordError
from keychain import RECORD_CLASSES, KeychainBackup, KeychainDump
from keychain.reference import decode_reference


def b64(raw: bytes) -> str:
    return base64.b64encode(raw).decode("ascii")


GENP_REFS = [b"\x00\x01genp-one", b"\x00\x02genp-two", b"\x00\x03genp-three"]
INET_REF = b"\xfb\xff\xfeinet"
INET_UNDECRYPTED_REF = b"\x09\x09lost"
KEY_REF = b"\x10key"


def make_dump() -> dict:
    return {
        "Certs": [],
        "General": [
            {
                "persistref": b64(raw),
                "agrp": "com.example.app",
                "labl": f"label-{i}",
                "acct": f"user{i}",
                "cdat": "2023-01-01T00:00:00Z",
                "mdat": "2023-01-02T00:00:00Z",
                "_class": "genp",
                "_uuid": f"uuid-{i}",
            }
            for i, raw in enumerate(GENP_REFS)
        ],
        "Internet": [
            {
                "persistref": b64(INET_REF),
                "agrp": "com.apple.safari",
                "srvr": "example.com",
                "labl": "example.com (user)",
                "_metadata": {"version": 2},
            }
        ],
        "Keys": [
            {"persistref": b64(KEY_REF), "agrp": "com.example.keys", "kcls": 1},
        ],
        "Version": 7,
    }


def make_container() -> dict:
    def record(tag: str, raw: bytes, payload: bytes) -> dict:
        return {"v_PersistentRef": tag.encode() + raw, "v_Data": payload}

    return {
        "cert": [],
        "genp": [record("genp", raw, b"cipher-genp-%d" % i) for i, raw in enumerate(GENP_REFS)],
        "inet": [
            record("inet", INET_REF, b"cipher-inet-0"),
            record("inet", INET_UNDECRYPTED_REF, b"cipher-inet-lost"),
        ],
        "keys": [record("keys", KEY_REF, b"cipher-keys-0")],
    }


@pytest.fixture
def dump_data() -> dict:
    return make_dump()


@pytest.fixture
def container_data() -> dict:
    return make_container()


@pytest.fixture
def container_bytes(container_data) -> bytes:
    return plistlib.dumps(container_data, fmt=plistlib.FMT_BINARY)


@pytest.fixture
def dump(dump_data) -> KeychainDump:
    return KeychainDump.from_dict(dump_data)


@pytest.fixture
def backup(container_bytes) -> KeychainBackup:
    return KeychainBackup.from_bytes(container_bytes)


class FakeIRestore:
    """Stands in for irestore: writes fixture documents and 'encrypts' with a counter."""

    def __init__(self, container_bytes: bytes, dump_data: dict):
        self.container_bytes = container_bytes
        self.dump_data = dump_data
        self.calls = []
        self.encrypted_dump = None
        self._counter = 0

    async def dump_keys(self, output_file: Path):
        self.calls.append("dumpkeys")
        Path(output_file).write_text(json.dumps(self.dump_data))

    async def restore(self, domain: str, dest_path: Path):
        self.calls.append("restore")
        Path(dest_path).mkdir(parents=True, exist_ok=True)
        (Path(dest_path) / "keychain-backup.plist").write_bytes(self.container_bytes)

    async def encrypt_keys(self, input_file: Path, output_file: Path):
        self.calls.append("encryptkeys")
        self.encrypted_dump = json.loads(Path(input_file).read_text())
        fragment = {}
        for record_class in RECORD_CLASSES:
            fragment[record_class.tag] = [
                {
                    "v_PersistentRef": record_class.tag_bytes + decode_reference(item["persistref"]),
                    "v_Data": self._encrypt(item),
                }
                for item in self.encrypted_dump.get(record_class.label, [])
            ]
        Path(output_file).write_bytes(plistlib.dumps(fragment, fmt=plistlib.FMT_BINARY))

    def _encrypt(self, item: dict) -> bytes:
        self._counter += 1
        return b"enc:%d:" % self._counter + json.dumps(item, sort_keys=True).encode()


class BadPasswordIRestore(FakeIRestore):
    async def dump_keys(self, output_file: Path):
        self.calls.append("dumpkeys")
        raise BadPasswordError("Bad password.")


@pytest.fixture
def fake_irestore(container_bytes, dump_data) -> FakeIRestore:
    return FakeIRestore(container_bytes, dump_data)


@pytest.fixture
def backup_dir(tmp_path) -> Path:
    path = tmp_path / "backup"
    path.mkdir()
    return path


@pytest.fixture
def settings(tmp_path) -> Config:
    return Config(WORK_DIR=tmp_path / "work")


@pytest.fixture
def bad_password_irestore(container_bytes, dump_data) -> BadPasswordIRestore:
    return BadPasswordIRestore(container_bytes, dump_data)
