"""
Shared pytest fixtures for all validator_sync tests.

Provides core fixtures used across multiple test modules.
Import these fixtures automatically via pytest discovery.
"""

from __future__ import annotations

from collections.abc import Generator

import pytest

from tests.validator_sync.helpers import RecordingStore


@pytest.fixture
def store() -> Generator[RecordingStore, None, None]:
    """Recording store over an in-memory SQLite database."""
    recording = RecordingStore()
    yield recording
    recording.close()
