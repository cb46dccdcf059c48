"""
mitmca.ca
~~~~~~~~~
Root CA bootstrap and on-demand leaf certificate issuance.

    folders = cert_folders(".http-mitm-proxy")
    ca = await get_default_ca(folders)
    cert_pem, key_pem = await ca.issue(["example.com", "192.168.1.5"])

``issue`` returns as soon as the PEM pair exists; the files under
``certs/`` and ``keys/`` are written by a background task.
"""

from __future__ import annotations

import asyncio
import threading
from typing import Callable, List, Optional, Sequence, Set, Tuple, Union

from cryptography import x509
from cryptography.hazmat.primitives import hashes

from . import storage
from .config import CertFolders
from .errors import StoragePersistError
from .keys import KeyPair
from .logger import CALogger
from .profiles import build_ca_request, build_server_request, validity_window
from .serial import format_serial, random_serial_number

PersistCallback = Callable[[str, List[Tuple[str, Optional[Exception]]]], None]

# Guards the exists-then-load-or-generate section within this process.
_bootstrap_lock = threading.Lock()


class CA:
    def __init__(
        self,
        folders: CertFolders,
        cert: x509.Certificate,
        keys: KeyPair,
        logger: CALogger | None = None,
        on_persisted: PersistCallback | None = None,
    ) -> None:
        self.folders = folders
        self.cert = cert
        self.keys = keys
        self.logger = logger or CALogger()
        self.on_persisted = on_persisted
        self._pending: Set[asyncio.Task] = set()

    @classmethod
    def create(
        cls,
        folders: CertFolders,
        cert: x509.Certificate,
        keys: KeyPair,
        **kwargs,
    ) -> "CA":
        return cls(folders, cert, keys, **kwargs)

    @property
    def serial(self) -> str:
        return format_serial(self.cert.serial_number)

    @property
    def cert_pem(self) -> bytes:
        return storage.cert_to_pem(self.cert)

    # ------------------------------------------------------------------ #
    # issuance
    # ------------------------------------------------------------------ #

    def build_leaf(
        self, hosts: Union[str, Sequence[str]]
    ) -> Tuple[x509.Certificate, KeyPair]:
        """Generate and sign a leaf certificate.  CPU bound, no I/O."""
        hosts = _normalize_hosts(hosts)
        keys = KeyPair.generate()
        subject, extensions = build_server_request(hosts, keys.public_key)
        not_before, not_after = validity_window()

        builder = (
            x509.CertificateBuilder()
            .subject_name(subject)
            .issuer_name(self.cert.issuer)
            .public_key(keys.public_key)
            .serial_number(int(random_serial_number(), 16))
            .not_valid_before(not_before)
            .not_valid_after(not_after)
        )
        for ext, critical in extensions:
            builder = builder.add_extension(ext, critical=critical)
        cert = builder.sign(private_key=self.keys.private_key, algorithm=hashes.SHA256())
        return cert, keys

    async def issue(self, hosts: Union[str, Sequence[str]]) -> Tuple[bytes, bytes]:
        """Return ``(cert_pem, private_key_pem)`` for *hosts*.

        hosts[0] is the commonName and names the files on disk.  Writing
        the files is left to a background task whose failures are only
        logged (and passed to ``on_persisted``).
        """
        hosts = _normalize_hosts(hosts)
        cert, keys = await asyncio.to_thread(self.build_leaf, hosts)

        cert_pem = storage.cert_to_pem(cert)
        private_pem = storage.private_key_to_pem(keys.private_key)
        public_pem = storage.public_key_to_pem(keys.public_key)
        self.logger.leaf_issued(hosts[0], format_serial(cert.serial_number), hosts)

        task = asyncio.create_task(
            self._persist_leaf(hosts[0], cert_pem, private_pem, public_pem)
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

        return cert_pem, private_pem

    async def flush(self) -> None:
        """Wait for outstanding leaf writes."""
        while self._pending:
            await asyncio.gather(*self._pending)

    async def _persist_leaf(
        self, host: str, cert_pem: bytes, private_pem: bytes, public_pem: bytes
    ) -> None:
        try:
            outcomes = await asyncio.to_thread(
                storage.write_leaf, self.folders, host, cert_pem, private_pem, public_pem
            )
        except Exception as e:  # noqa: BLE001
            outcomes = [(p, e) for p in storage.leaf_paths(self.folders, host)]

        for path, error in outcomes:
            if error is None:
                self.logger.leaf_persisted(host, path)
            else:
                self.logger.leaf_persist_fail(host, path, error)

        if self.on_persisted:
            try:
                self.on_persisted(host, [(str(p), e) for p, e in outcomes])
            except Exception as e:  # noqa: BLE001
                self.logger.persist_callback_fail(host, e)


def _normalize_hosts(hosts: Union[str, Sequence[str]]) -> List[str]:
    if isinstance(hosts, str):
        hosts = [hosts]
    hosts = list(hosts)
    if not hosts:
        raise ValueError("at least one host is required")
    return hosts


# ---------------------------------------------------------------------- #
# bootstrap
# ---------------------------------------------------------------------- #

async def get_default_ca(
    folders: CertFolders,
    logger: CALogger | None = None,
    on_persisted: PersistCallback | None = None,
) -> CA:
    """Load the CA stored under *folders*, or generate and save a new one.

    An existing but unreadable CA raises StorageReadError/ParseError and
    is never replaced.  If a new CA cannot be saved, StoragePersistError
    is raised with the usable in-memory CA on its ``ca`` attribute.
    """
    logger = logger or CALogger()
    return await asyncio.to_thread(_bootstrap, folders, logger, on_persisted)


def _bootstrap(
    folders: CertFolders,
    logger: CALogger,
    on_persisted: PersistCallback | None,
) -> CA:
    with _bootstrap_lock:
        if storage.ca_exists(folders):
            cert, keys = storage.load_ca(folders)
            ca = CA.create(folders, cert, keys, logger=logger, on_persisted=on_persisted)
            logger.ca_loaded(folders.base, ca.serial)
            return ca

        cert, keys = generate_ca()
        ca = CA.create(folders, cert, keys, logger=logger, on_persisted=on_persisted)
        try:
            storage.write_ca(folders, cert, keys)
        except StoragePersistError as e:
            logger.ca_persist_fail(folders.base, e)
            e.ca = ca
            raise
        logger.ca_generated(folders.base, ca.serial)
        return ca


def generate_ca() -> Tuple[x509.Certificate, KeyPair]:
    """Self-signed root certificate with a fresh key pair."""
    keys = KeyPair.generate()
    subject, issuer, extensions = build_ca_request(keys.public_key)
    not_before, not_after = validity_window()

    builder = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer)
        .public_key(keys.public_key)
        .serial_number(int(random_serial_number(), 16))
        .not_valid_before(not_before)
        .not_valid_after(not_after)
    )
    for ext, critical in extensions:
        builder = builder.add_extension(ext, critical=critical)
    return builder.sign(private_key=keys.private_key, algorithm=hashes.SHA256()), keys
