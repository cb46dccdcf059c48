"""Tests for loading and generating the root CA"""

import pathlib
import re

import pytest
from cryptography import x509

from mitmca import storage
from mitmca.ca import get_default_ca
from mitmca.config import cert_folders
from mitmca.errors import ParseError, StoragePersistError, StorageReadError


async def test_generates_ca_in_empty_folder(tmp_path):
    folders = cert_folders(tmp_path / "fresh")
    ca = await get_default_ca(folders)

    assert re.fullmatch(r"[0-9a-f]{32}", ca.serial)
    assert (folders.certs / "ca.pem").exists()
    assert (folders.keys / "ca.private.key").exists()
    assert (folders.keys / "ca.public.key").exists()

    bc = ca.cert.extensions.get_extension_for_class(x509.BasicConstraints)
    assert bc.value.ca is True
    assert ca.cert.subject == ca.cert.issuer
    ca.cert.verify_directly_issued_by(ca.cert)


async def test_generated_validity_is_one_year(folders):
    ca = await get_default_ca(folders)
    not_before = ca.cert.not_valid_before_utc
    not_after = ca.cert.not_valid_after_utc
    assert (not_after.month, not_after.day) == (not_before.month, not_before.day) or (
        (not_before.month, not_before.day) == (2, 29) and (not_after.month, not_after.day) == (2, 28)
    )
    assert not_after.year == not_before.year + 1
    assert not_after.time() == not_before.time()


async def test_bootstrap_is_idempotent(folders):
    first = await get_default_ca(folders)
    second = await get_default_ca(folders)

    assert first.serial == second.serial
    assert first.keys.public_key.public_numbers() == second.keys.public_key.public_numbers()


async def test_reload_after_restart(tmp_path):
    base = tmp_path / "persisted"
    generated = await get_default_ca(cert_folders(base))

    # a new process only knows the folder name
    reloaded = await get_default_ca(cert_folders(str(base)))
    assert reloaded.serial == generated.serial
    assert reloaded.cert.subject == generated.cert.subject
    assert reloaded.cert == generated.cert


async def test_unreadable_ca_is_not_replaced(folders, ca_material):
    cert, keys = ca_material
    storage.write_ca(folders, cert, keys)
    (folders.keys / "ca.private.key").unlink()

    with pytest.raises(StorageReadError):
        await get_default_ca(folders)

    assert (folders.certs / "ca.pem").read_bytes() == storage.cert_to_pem(cert)
    assert not (folders.keys / "ca.private.key").exists()


async def test_corrupt_ca_is_not_replaced(folders):
    (folders.certs / "ca.pem").write_text("garbage")
    (folders.keys / "ca.private.key").write_text("garbage")
    (folders.keys / "ca.public.key").write_text("garbage")

    with pytest.raises(ParseError):
        await get_default_ca(folders)

    assert (folders.certs / "ca.pem").read_text() == "garbage"


async def test_persist_failure_still_hands_back_ca(folders, monkeypatch, caplog):
    def failing_write(path, data):
        raise OSError("disk full")

    monkeypatch.setattr(storage, "_write_pem", failing_write)

    with pytest.raises(StoragePersistError) as excinfo:
        await get_default_ca(folders)

    ca = excinfo.value.ca
    assert ca is not None
    assert ca.cert.extensions.get_extension_for_class(x509.BasicConstraints).value.ca
    assert not storage.ca_exists(folders)
    assert any(
        isinstance(r.msg, dict) and r.msg["event"] == "ca_persist_fail"
        for r in caplog.records
    )

    # the unsaved CA can still issue
    cert_pem, _ = await ca.issue("example.com")
    assert cert_pem.startswith(b"-----BEGIN CERTIFICATE-----")
    await ca.flush()


async def test_unwritable_folder_still_hands_back_ca(tmp_path, caplog):
    blocker = tmp_path / "blocker"
    blocker.write_text("a file, not a directory")
    folders = cert_folders(blocker / "ca")

    with pytest.raises(StoragePersistError) as excinfo:
        await get_default_ca(folders)

    ca = excinfo.value.ca
    assert ca is not None
    assert re.fullmatch(r"[0-9a-f]{32}", ca.serial)
    assert any(
        isinstance(r.msg, dict) and r.msg["event"] == "ca_persist_fail"
        for r in caplog.records
    )


async def test_existence_check_failure_is_a_read_error(folders, monkeypatch):
    def denied(self, *args, **kwargs):
        raise PermissionError("denied")

    monkeypatch.setattr(pathlib.Path, "exists", denied)

    with pytest.raises(StorageReadError):
        await get_default_ca(folders)
