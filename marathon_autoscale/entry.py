from dataclasses import dataclass, field
from typing import Optional

from .clock import to_iso
from .config import app_id_for
from .metrics_window import RateWindow


@dataclass
class TrackedEntry:
    """Control state for one monitored `<app>_<port>` frontend.

    Each field has a single writer: the aggregator owns ``window`` and
    ``rate_avg``, the instance tracker owns ``current_instances`` and the
    decision engine owns the rest.
    """

    key: str
    window: RateWindow
    rate_avg: float = 0.0
    current_instances: Optional[int] = None
    target_instances: int = 1
    intervals_past_threshold: int = 0
    last_scaled: Optional[object] = None
    app_id: str = field(init=False)

    def __post_init__(self):
        self.app_id = app_id_for(self.key)

    @classmethod
    def create(cls, key, samples):
        return cls(key=key, window=RateWindow(window_size=samples))

    def record(self, value):
        self.window.add(value)
        self.rate_avg = self.window.average()

    def to_dict(self):
        return {
            "key": self.key,
            "app_id": self.app_id,
            "window": self.window.values(),
            "stats": self.window.get_stats(),
            "rate_avg": round(self.rate_avg, 2),
            "current_instances": self.current_instances,
            "target_instances": self.target_instances,
            "intervals_past_threshold": self.intervals_past_threshold,
            "last_scaled": to_iso(self.last_scaled),
        }


def build_entries(apps, samples):
    return {key: TrackedEntry.create(key, samples) for key in sorted(apps)}
