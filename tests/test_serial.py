import re

from mitmca.serial import format_serial, random_serial_number


def test_random_serial_is_32_lowercase_hex():
    for _ in range(200):
        sn = random_serial_number()
        assert re.fullmatch(r"[0-9a-f]{32}", sn)


def test_random_serials_differ():
    serials = {random_serial_number() for _ in range(1000)}
    assert len(serials) == 1000


def test_format_serial_pads_to_fixed_width():
    assert format_serial(1) == "0" * 31 + "1"
    assert format_serial(int("ff" * 16, 16)) == "f" * 32
