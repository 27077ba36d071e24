from __future__ import annotations

import pytest

from rcsx.clock import ManualClock
from rcsx.rbm.capture import EventFactory


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def factory(clock: ManualClock) -> EventFactory:
    return EventFactory(clock, conversation_id="c1")
