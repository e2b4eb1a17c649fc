import logging

logger = logging.getLogger(__name__)

# HAProxy reports HTTP request rate as req_rate; older feeds only carry rate
RATE_FIELDS = ("req_rate", "rate")
QUEUE_FIELD = "qcur"


def _counter(row, name):
    value = (row.get(name) or "").strip()
    if not value:
        return 0
    count = int(value)
    if count < 0:
        raise ValueError(f"negative counter {name}={value}")
    return count


def offered_load(row):
    """Current request rate plus queued requests for one frontend row."""
    rate_field = next((name for name in RATE_FIELDS if (row.get(name) or "").strip()), RATE_FIELDS[0])
    return _counter(row, rate_field) + _counter(row, QUEUE_FIELD)


class SignalAggregator:
    def __init__(self, entries):
        self.entries = entries
        self.ticks = 0

    def warmed_up(self, samples):
        return self.ticks >= samples

    def aggregate(self, host_samples):
        """Merge one tick of per-host rows into each entry's window.

        `host_samples` is a list of ``(host_url, {key: row})``. Returns True if
        the tick recorded samples.
        """
        if not host_samples:
            logger.warning("No HAProxy host answered this tick, skipping aggregation")
            return False

        for key, entry in self.entries.items():
            total = 0
            seen = 0
            for host, frontends in host_samples:
                row = frontends.get(key)
                if row is None:
                    continue
                try:
                    total += offered_load(row)
                except ValueError as e:
                    logger.warning(f"Malformed row for {key} from {host}: {e}")
                    continue
                seen += 1

            if not seen:
                logger.warning(f"No HAProxy host reported {key} this tick")
                continue

            entry.record(total)
            logger.debug(f"{key}: sample={total} rate_avg={entry.rate_avg:.2f} window={len(entry.window)}")

        self.ticks += 1
        return True
