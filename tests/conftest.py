import sys
import os

# Add project root to sys.path so tests can import from all modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Never open a real audio device during tests
os.environ.setdefault("SDL_AUDIODRIVER", "dummy")

from unittest.mock import MagicMock

import pytest
from hypothesis import settings

from alerts.sinks import AlertSink

# CI profile: more examples for thorough testing
settings.register_profile("ci", max_examples=200, deadline=None)
# Dev profile: fewer examples for faster iteration
settings.register_profile("dev", max_examples=50, deadline=None)
settings.load_profile(os.environ.get("HYPOTHESIS_PROFILE", "dev"))


@pytest.fixture
def sink():
    """Alert sink mock that records every device call."""
    return MagicMock(spec=AlertSink)
