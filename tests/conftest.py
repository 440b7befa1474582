"""Shared pytest fixtures."""

from __future__ import annotations

import sys
import threading
from collections.abc import Iterator
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from fakes import FakeAdapter, FakeRss  # noqa: E402


@pytest.fixture
def audio_file(tmp_path: Path) -> Path:
    """Ten seconds of audio at the default byte rate."""
    path = tmp_path / "captures" / "voice-memo.m4a"
    path.parent.mkdir(parents=True)
    path.write_bytes(b"\x00" * 160_000)
    return path


@pytest.fixture
def fake_adapter() -> FakeAdapter:
    return FakeAdapter()


@pytest.fixture
def fake_rss() -> FakeRss:
    return FakeRss()


@pytest.fixture
def release_blocked() -> Iterator[threading.Event]:
    """Event released at teardown so abandoned model threads exit."""
    event = threading.Event()
    yield event
    event.set()
