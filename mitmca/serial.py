"""
mitmca.serial
~~~~~~~~~~~~~
Certificate serial numbers: 16 random bytes as 32 lowercase hex chars.
Issued serials are not recorded, so uniqueness is only probabilistic.
"""

from __future__ import annotations

import os

SERIAL_BYTES = 16


def random_serial_number() -> str:
    while True:
        sn = os.urandom(SERIAL_BYTES).hex()
        if int(sn, 16):  # X.509 serials must be positive
            return sn


def format_serial(number: int) -> str:
    return f"{number:0{SERIAL_BYTES * 2}x}"
