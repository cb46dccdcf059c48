from __future__ import annotations

import os
import pathlib
from dataclasses import dataclass

from dotenv import find_dotenv, load_dotenv


@dataclass(frozen=True, slots=True)
class CertFolders:
    base: pathlib.Path
    certs: pathlib.Path
    keys: pathlib.Path

    def ensure(self) -> None:
        self.certs.mkdir(parents=True, exist_ok=True)
        self.keys.mkdir(parents=True, exist_ok=True)


def cert_folders(base: str | pathlib.Path) -> CertFolders:
    base = pathlib.Path(base)
    return CertFolders(base=base, certs=base / "certs", keys=base / "keys")


@dataclass
class Config:
    ca_dir: str
    log_path: str
    log_level: str

    @property
    def folders(self) -> CertFolders:
        return cert_folders(self.ca_dir)


def load_config():
    load_dotenv(find_dotenv(usecwd=True), override=True)
    return Config(
        ca_dir=os.getenv("MITMCA_DIR", ".http-mitm-proxy"),
        log_path=os.getenv("MITMCA_LOG_PATH", "mitmca.log"),
        log_level=os.getenv("MITMCA_LOG_LEVEL", "INFO").upper(),
    )
