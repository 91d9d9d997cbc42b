"""
Test helpers shared across test modules.
"""

TEST_SECRET = "test-secret-do-not-use"

# 2023-11-14T22:13:20Z
START_TIME = 1_700_000_000.0


class FakeClock:
    """Controllable replacement for time.time()."""

    def __init__(self, now: float = START_TIME):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds
