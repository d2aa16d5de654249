import threading

import pytest

from pingmap.models import ProbeOutcome


class ScriptedProbe:
    """Fake prober: returns/raises per address from a table, REPLY by default."""

    def __init__(self, table=None, default=ProbeOutcome.REPLY):
        self.table = dict(table or {})
        self.default = default
        self.calls = []
        self._lock = threading.Lock()

    def __call__(self, address):
        with self._lock:
            self.calls.append(address)
        behaviour = self.table.get(address, self.default)
        if isinstance(behaviour, type) and issubclass(behaviour, Exception):
            raise behaviour(f"scripted failure for {address}")
        if isinstance(behaviour, Exception):
            raise behaviour
        return behaviour

    def count(self, address):
        with self._lock:
            return self.calls.count(address)


@pytest.fixture
def scripted_probe():
    return ScriptedProbe
