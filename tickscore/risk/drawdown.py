"""Drawdown tracking — pure math, no I/O.

Tracks peak total asset value and the deepest peak-to-trough decline
seen during a run.
"""


class DrawdownTracker:
    """Tracks value peaks and computes drawdown metrics.

    Args:
        initial_value: Starting total asset value.
    """

    def __init__(self, initial_value: float) -> None:
        if initial_value < 0:
            raise ValueError(
                f"initial_value must be non-negative, got {initial_value}"
            )
        self._peak_value: float = initial_value
        self._current_value: float = initial_value
        self._max_drawdown: float = 0.0

    # ── Mutation ─────────────────────────────────────────────────────────

    def update(self, value: float) -> None:
        """Record the latest total asset value.

        If *value* exceeds the current peak, the peak is raised.
        """
        self._current_value = value
        if value > self._peak_value:
            self._peak_value = value
        dd = self.drawdown
        if dd > self._max_drawdown:
            self._max_drawdown = dd

    # ── Queries ──────────────────────────────────────────────────────────

    @property
    def peak_value(self) -> float:
        """Highest value recorded."""
        return self._peak_value

    @property
    def current_value(self) -> float:
        """Most recently recorded value."""
        return self._current_value

    @property
    def drawdown(self) -> float:
        """Current drawdown as a fraction of the peak (0.1 = 10 %)."""
        if self._peak_value <= 0:
            return 0.0
        return (self._peak_value - self._current_value) / self._peak_value

    @property
    def max_drawdown(self) -> float:
        """Deepest drawdown seen so far, as a fraction of the peak."""
        return self._max_drawdown
