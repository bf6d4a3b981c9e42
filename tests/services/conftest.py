from __future__ import annotations

import pytest

from tests.services.service_fixtures import RecordingOrchestrator


@pytest.fixture
def orchestrator() -> RecordingOrchestrator:
    return RecordingOrchestrator()
