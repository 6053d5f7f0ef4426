"""Pytest configuration and shared fixtures."""
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from familytree.config import Settings
from familytree.core.tree_store import TreeStore
from familytree.main import create_app
from familytree.storage import ImageStore


class StepClock:
    """Deterministic clock: every call is one second after the previous one."""

    def __init__(self, start=datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)):
        self.current = start

    def __call__(self):
        self.current += timedelta(seconds=1)
        return self.current


class ManualTimer:
    def __init__(self, when, callback):
        self.when = when
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self):
        self.cancelled = True


class ManualScheduler:
    """Scheduler whose time only moves when the test calls advance()."""

    def __init__(self):
        self.now = 0.0
        self.timers = []

    def call_later(self, delay, callback):
        timer = ManualTimer(self.now + delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def active(self):
        return [t for t in self.timers if not t.cancelled and not t.fired]

    def advance(self, seconds):
        target = self.now + seconds
        while True:
            due = sorted((t for t in self.active if t.when <= target), key=lambda t: t.when)
            if not due:
                break
            timer = due[0]
            self.now = timer.when
            timer.fired = True
            timer.callback()
        self.now = target


class FakeChart:
    def __init__(self):
        self.data = None
        self.updates = []

    def set_data(self, data):
        self.data = data

    def update_tree(self, initial=False):
        self.updates.append(initial)


class FakeEditor:
    def __init__(self, data=None):
        self.data = data if data is not None else []
        self.callback = None

    def export_data(self):
        return [dict(p) for p in self.data]

    def set_on_change(self, callback):
        self.callback = callback

    def edit(self, data):
        self.data = data
        if self.callback:
            self.callback()


@pytest.fixture
def settings(tmp_path):
    s = Settings()
    s.DATA_DIR = str(tmp_path / "data")
    s.BACKUP_DIR = str(tmp_path / "backups")
    s.IMAGES_DIR = str(tmp_path / "images")
    s.MAX_UPLOAD_BYTES = 5 * 1024 * 1024
    s.BACKUP_RETENTION_COUNT = 10
    return s


@pytest.fixture
def tree_store(settings):
    return TreeStore(
        data_dir=settings.DATA_DIR,
        backup_dir=settings.BACKUP_DIR,
        retention=settings.BACKUP_RETENTION_COUNT,
        clock=StepClock(),
    )


@pytest.fixture
def image_store(settings):
    return ImageStore(images_dir=settings.IMAGES_DIR, max_bytes=settings.MAX_UPLOAD_BYTES)


@pytest.fixture
def app(settings, tree_store, image_store):
    return create_app(settings, tree_store=tree_store, image_store=image_store)


@pytest.fixture
def api(app):
    with TestClient(app) as client:
        yield client


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def chart():
    return FakeChart()


@pytest.fixture
def editor():
    return FakeEditor()
