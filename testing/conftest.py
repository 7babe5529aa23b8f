import time

import pytest

try:
    from PyQt6.QtCore import QCoreApplication
except Exception:
    from PyQt5.QtCore import QCoreApplication


@pytest.fixture(scope="session")
def qapp():
    app = QCoreApplication.instance()
    if app is None:
        app = QCoreApplication([])
    return app


@pytest.fixture
def wait_until(qapp):
    ''' Run the event loop until condition() is true or timeout_s passed '''
    def wait(condition, timeout_s=2.0):
        deadline = time.perf_counter() + timeout_s
        while not condition():
            if time.perf_counter() > deadline:
                return False
            qapp.processEvents()
            time.sleep(0.001)
        return True
    return wait
