import pytest

from app import create_app
from config import Settings
from json_file_handler import MemoryStorage
from ledger import Ledger

PIN = "0431"


class SequenceRandom:
    """Stand-in for random.Random that replays fixed randint results."""

    def __init__(self, values):
        self.values = iter(values)
        self.calls = 0

    def randint(self, a, b):
        self.calls += 1
        return next(self.values)


class StepClock:
    def __init__(self, *values):
        self.values = list(values)

    def __call__(self):
        if len(self.values) > 1:
            return self.values.pop(0)
        return self.values[0]


def make_settings(tmp_path, **overrides) -> Settings:
    values = dict(
        pin=PIN,
        host="127.0.0.1",
        port=3000,
        data_dir=str(tmp_path),
        location_label="",
        cors_origins=("*",),
        log_level="INFO",
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture()
def records():
    return MemoryStorage()


@pytest.fixture()
def tokens():
    return MemoryStorage()


@pytest.fixture()
def ledger(records, tokens):
    return Ledger(PIN, records, tokens)


@pytest.fixture()
def app(tmp_path, ledger):
    return create_app(make_settings(tmp_path), ledger=ledger)


@pytest.fixture()
def client(app):
    return app.test_client()
