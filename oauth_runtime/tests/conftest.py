"""
Pytest configuration for oauth_runtime. In-memory SQLite registry and in-memory key-value store,
so tests touch neither the filesystem nor a Redis server.
"""
import os

import pytest

# Must be set before oauth_runtime.database is imported; database.py uses StaticPool for :memory:
os.environ["OAUTH_REGISTRY_DATABASE_URL"] = "sqlite:///:memory:"
os.environ["OAUTH_REDIS_URL"] = "memory://"
# Avoid seed_from_env picking up credentials from the developer's environment
for _name in ("OAUTH_CLIENT_ID", "OAUTH_CLIENT_SECRET", "OAUTH_SEED_USER", "OAUTH_SEED_PASSWORD"):
    os.environ.pop(_name, None)


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()
