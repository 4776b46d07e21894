"""
Time Test Doubles

Deterministic replacements for ``time.time`` and ``asyncio.sleep``.
"""


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class SleepRecorder:
    """Awaitable sleep that returns at once and remembers what was asked."""

    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)

    @property
    def positive(self) -> list[float]:
        """Delays that would actually have blocked."""
        return [s for s in self.calls if s > 0]
