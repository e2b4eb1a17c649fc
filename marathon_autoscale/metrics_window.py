from collections import deque


class RateWindow:
    """Fixed-length window of combined rate observations, oldest evicted first."""

    def __init__(self, window_size=10):
        if window_size < 1:
            raise ValueError(f"window_size must be at least 1, got {window_size}")
        self.window_size = window_size
        self.data = deque(maxlen=window_size)

    def add(self, value):
        self.data.append(value)

    def average(self):
        if not self.data:
            return 0.0
        return sum(self.data) / len(self.data)

    def is_full(self):
        return len(self.data) == self.window_size

    def values(self):
        return list(self.data)

    def __len__(self):
        return len(self.data)

    def get_stats(self):
        if not self.data:
            return {"count": 0}

        values = list(self.data)
        return {
            "avg": round(self.average(), 2),
            "min": min(values),
            "max": max(values),
            "last": values[-1],
            "count": len(values),
        }
