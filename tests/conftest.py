"""Test configuration for mitmca"""

import logging

import pytest

from mitmca.ca import CA, generate_ca
from mitmca.config import cert_folders


@pytest.fixture(autouse=True)
def reset_logger():
    """Undo handlers and propagation changes made by CALogger"""
    log = logging.getLogger("mitmca")
    handlers = list(log.handlers)
    yield
    for h in log.handlers:
        if h not in handlers:
            log.removeHandler(h)
            h.close()
    log.propagate = True
    log.setLevel(logging.NOTSET)


@pytest.fixture
def folders(tmp_path):
    f = cert_folders(tmp_path / "ca")
    f.ensure()
    return f


@pytest.fixture(scope="session")
def ca_material():
    """One root certificate and key pair shared by the whole session"""
    return generate_ca()


@pytest.fixture
def ca(folders, ca_material):
    cert, keys = ca_material
    return CA.create(folders, cert, keys)
