"""
mitmca.errors
~~~~~~~~~~~~~
Failures of the CA lifecycle.  Read and parse errors always propagate;
persistence errors on the leaf path are only logged.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .ca import CA


class CAError(Exception):
    pass


class StorageReadError(CAError):
    pass


class ParseError(CAError):
    pass


class KeyGenerationError(CAError):
    pass


class StoragePersistError(CAError):
    def __init__(self, msg: str, ca: Optional["CA"] = None):
        self.ca = ca
        super().__init__(msg)
