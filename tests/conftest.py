from datetime import date
from types import SimpleNamespace
from typing import Any, List, Tuple

import pytest

from scriptroom.budget import BudgetLedger
from scriptroom.errors import GeneratorFailure, PublishFailure
from scriptroom.store import ProjectRepository
from scriptroom.tools.executor import ToolExecutor
from scriptroom.tools.video_gen import VideoResult


class RecordingSink:
    def __init__(self):
        self.events: List[Tuple[str, Any]] = []

    def emit(self, project_id, event):
        self.events.append((project_id, event))

    def types(self) -> List[str]:
        return [e.type for _, e in self.events]


class FakeImageGenerator:
    def __init__(self, url="https://provider.example.com/tmp/image.png", error=None):
        self.url = url
        self.error = error
        self.calls: List[str] = []

    async def generate(self, description):
        self.calls.append(description)
        if self.error:
            raise GeneratorFailure(self.error)
        return self.url


class FakeVideoGenerator:
    def __init__(self, url="https://provider.example.com/tmp/clip.mp4", cost=0.0, error=None, note=None):
        self.url = url
        self.cost = cost
        self.error = error
        self.note = note
        self.calls: List[Tuple[str, str, int]] = []

    async def generate(self, image_url, description, duration):
        self.calls.append((image_url, description, duration))
        if self.error:
            raise GeneratorFailure(self.error)
        return VideoResult(asset_url=self.url, cost=self.cost, note=self.note)


class FakePublisher:
    def __init__(self, fail=False):
        self.fail = fail
        self.calls: List[Tuple[str, str]] = []

    async def publish(self, source_url, logical_name):
        self.calls.append((source_url, logical_name))
        if self.fail:
            raise PublishFailure("storage unavailable")
        return f"https://assets.example.com/{logical_name}"


@pytest.fixture
def fakes():
    return SimpleNamespace(
        ImageGenerator=FakeImageGenerator,
        VideoGenerator=FakeVideoGenerator,
        Publisher=FakePublisher,
        Sink=RecordingSink,
    )


@pytest.fixture
def repository(tmp_path):
    repo = ProjectRepository(data_dir=tmp_path / "projects")
    yield repo
    repo.close()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def ledger():
    return BudgetLedger(daily_cap=5.0, monthly_cap=50.0, today=lambda: date(2024, 1, 15))


@pytest.fixture
def image_generator():
    return FakeImageGenerator()


@pytest.fixture
def video_generator():
    return FakeVideoGenerator()


@pytest.fixture
def publisher():
    return FakePublisher()


@pytest.fixture
def make_executor(repository, sink, ledger, image_generator, video_generator, publisher):
    def _make(**overrides):
        kwargs = dict(
            repository=repository,
            sink=sink,
            ledger=ledger,
            image_generator=image_generator,
            video_generator=video_generator,
            publisher=publisher,
            stamp=iter(range(1000, 100000)).__next__,
        )
        kwargs.update(overrides)
        return ToolExecutor(**kwargs)

    return _make


@pytest.fixture
def executor(make_executor):
    return make_executor()
