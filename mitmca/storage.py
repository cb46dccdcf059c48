"""
mitmca.storage
~~~~~~~~~~~~~~
PEM files under a CA folder:

<base>/certs/ca.pem          root certificate
<base>/keys/ca.private.key   root private key
<base>/keys/ca.public.key    root public key
<base>/certs/<host>.pem      leaf certificate   (``*`` -> ``_``)
<base>/keys/<host>.key       leaf private key
<base>/keys/<host>.public.key
"""

from __future__ import annotations

import os
import pathlib
import uuid
from typing import List, Optional, Tuple

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from .config import CertFolders
from .errors import ParseError, StoragePersistError, StorageReadError
from .keys import KeyPair


CA_CERT = "ca.pem"
CA_PRIVATE_KEY = "ca.private.key"
CA_PUBLIC_KEY = "ca.public.key"


def ca_paths(folders: CertFolders) -> Tuple[pathlib.Path, pathlib.Path, pathlib.Path]:
    return (
        folders.certs / CA_CERT,
        folders.keys / CA_PRIVATE_KEY,
        folders.keys / CA_PUBLIC_KEY,
    )


def leaf_paths(
    folders: CertFolders, host: str
) -> Tuple[pathlib.Path, pathlib.Path, pathlib.Path]:
    name = safe_name(host)
    return (
        folders.certs / f"{name}.pem",
        folders.keys / f"{name}.key",
        folders.keys / f"{name}.public.key",
    )


def safe_name(host: str) -> str:
    return host.replace("*", "_")


def ca_exists(folders: CertFolders) -> bool:
    try:
        return (folders.certs / CA_CERT).exists()
    except OSError as e:
        raise StorageReadError(f"Cannot check {folders.certs}: {e}") from e


# ------------------------------------------------------------------ #
# PEM encoding
# ------------------------------------------------------------------ #

def cert_to_pem(cert: x509.Certificate) -> bytes:
    return cert.public_bytes(serialization.Encoding.PEM)


def private_key_to_pem(key: rsa.RSAPrivateKey) -> bytes:
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )


def public_key_to_pem(key: rsa.RSAPublicKey) -> bytes:
    return key.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )


# ------------------------------------------------------------------ #
# root CA
# ------------------------------------------------------------------ #

def write_ca(folders: CertFolders, cert: x509.Certificate, keys: KeyPair) -> None:
    """Write the three CA files as one unit, creating the folders first.

    ``ca.pem`` goes last since its presence is what marks a CA as
    existing.  On failure every file written so far is removed.
    """
    cert_path, private_path, public_path = ca_paths(folders)
    blobs = [
        (private_path, private_key_to_pem(keys.private_key)),
        (public_path, public_key_to_pem(keys.public_key)),
        (cert_path, cert_to_pem(cert)),
    ]

    written: List[pathlib.Path] = []
    try:
        folders.ensure()
        for path, data in blobs:
            _write_pem(path, data)
            written.append(path)
    except OSError as e:
        for path in written:
            path.unlink(missing_ok=True)
        raise StoragePersistError(f"Failed to save CA to {folders.base}: {e}") from e


def load_ca(folders: CertFolders) -> Tuple[x509.Certificate, KeyPair]:
    cert_path, private_path, public_path = ca_paths(folders)
    cert_pem = _read_pem(cert_path)
    private_pem = _read_pem(private_path)
    public_pem = _read_pem(public_path)

    try:
        cert = x509.load_pem_x509_certificate(cert_pem)
    except ValueError as e:
        raise ParseError(f"Bad CA certificate in {cert_path}") from e
    try:
        private_key = serialization.load_pem_private_key(private_pem, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise ParseError(f"Bad CA private key in {private_path}") from e
    try:
        public_key = serialization.load_pem_public_key(public_pem)
    except (ValueError, UnsupportedAlgorithm) as e:
        raise ParseError(f"Bad CA public key in {public_path}") from e

    return cert, KeyPair(private_key=private_key, public_key=public_key)


# ------------------------------------------------------------------ #
# leaf certificates
# ------------------------------------------------------------------ #

def write_leaf(
    folders: CertFolders,
    host: str,
    cert_pem: bytes,
    private_pem: bytes,
    public_pem: bytes,
) -> List[Tuple[pathlib.Path, Optional[Exception]]]:
    """Write the leaf files independently.

    Returns ``(path, error)`` per file; ``error`` is None on success.
    Host names are not validated, so a name the filesystem refuses
    (e.g. one with a NUL byte) is just another failed write.
    """
    outcomes: List[Tuple[pathlib.Path, Optional[Exception]]] = []
    for path, data in zip(leaf_paths(folders, host), (cert_pem, private_pem, public_pem)):
        try:
            _write_pem(path, data)
        except (OSError, ValueError) as e:
            outcomes.append((path, e))
        else:
            outcomes.append((path, None))
    return outcomes


# ------------------------------------------------------------------ #
# private
# ------------------------------------------------------------------ #

def _read_pem(path: pathlib.Path) -> bytes:
    try:
        return path.read_bytes()
    except OSError as e:
        raise StorageReadError(f"Cannot read {path}: {e}") from e


def _write_pem(path: pathlib.Path, data: bytes) -> None:
    tmp = path.with_name(f"{path.name}.{uuid.uuid4().hex}.tmp")
    try:
        tmp.write_bytes(data)
        os.replace(tmp, path)
    except OSError:
        tmp.unlink(missing_ok=True)
        raise
