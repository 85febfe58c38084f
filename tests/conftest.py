from __future__ import annotations

import pytest
from PySide6 import QtCore


@pytest.fixture(scope="session")
def qapp():
    app = QtCore.QCoreApplication.instance() or QtCore.QCoreApplication([])
    yield app
