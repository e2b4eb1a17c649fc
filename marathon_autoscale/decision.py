import logging
import math
from datetime import timedelta

from .clock import now_dt

logger = logging.getLogger(__name__)


def target_instances(rate_avg, target_rps):
    """Instances needed to serve `rate_avg` at `target_rps` each, never below one."""
    return max(1, math.ceil(rate_avg / target_rps))


def relative_deviation(rate_avg, current, target_rps):
    """How far the per-instance rate is from the target, as a fraction of the target."""
    if current <= 0:
        return math.inf
    return abs(rate_avg / current - target_rps) / target_rps


class DecisionEngine:
    def __init__(self, options, clock=now_dt):
        self.options = options
        self.clock = clock

    def _cooldown_deadlines(self, entries):
        """Per app id, the moment its last scale stops suppressing new ones."""
        cooldown = timedelta(seconds=self.options.cooldown_seconds)
        deadlines = {}
        for entry in entries.values():
            if entry.last_scaled is None:
                continue
            deadline = entry.last_scaled + cooldown
            if entry.app_id not in deadlines or deadline > deadlines[entry.app_id]:
                deadlines[entry.app_id] = deadline
        return deadlines

    def _app_demand(self, entries):
        """Per app id, the largest target among its keys that have data."""
        demand = {}
        for entry in entries.values():
            if not len(entry.window) or entry.current_instances is None:
                continue
            target = target_instances(entry.rate_avg, self.options.target_rps)
            demand[entry.app_id] = max(demand.get(entry.app_id, 1), target)
        return demand

    def update_targets(self, entries):
        for entry in entries.values():
            if len(entry.window):
                entry.target_instances = target_instances(entry.rate_avg, self.options.target_rps)

    def decide(self, entries):
        """Build this tick's scaling batch, `{app_id: instances}`.

        Sibling keys of one app id collapse into a single decision carrying
        the largest target among them.
        """
        opts = self.options
        now = self.clock()
        deadlines = self._cooldown_deadlines(entries)
        demand = self._app_demand(entries)
        to_scale = {}

        for key, entry in entries.items():
            if not len(entry.window):
                logger.debug(f"{key}: no samples yet")
                continue
            if entry.current_instances is None:
                logger.debug(f"{key}: current instance count unknown")
                continue

            target = target_instances(entry.rate_avg, opts.target_rps)
            entry.target_instances = target
            current = entry.current_instances

            if target < demand[entry.app_id]:
                entry.intervals_past_threshold = 0
                logger.debug(f"{key}: {entry.app_id} needs {demand[entry.app_id]} for a sibling key")
                continue

            if target == current:
                entry.intervals_past_threshold = 0
                continue

            deviation = relative_deviation(entry.rate_avg, current, opts.target_rps)
            gap = abs(target - current)
            if deviation < opts.threshold_percent and gap < opts.threshold_instances:
                entry.intervals_past_threshold = 0
                continue

            entry.intervals_past_threshold += 1
            if entry.intervals_past_threshold < opts.intervals_past_threshold:
                logger.info(
                    f"{key}: outside threshold for {entry.intervals_past_threshold}/"
                    f"{opts.intervals_past_threshold} intervals (target={target} current={current})")
                continue

            current_rps = entry.rate_avg / current if current else math.inf
            deadline = deadlines.get(entry.app_id)
            if deadline is not None and now < deadline:
                remaining = int((deadline - now).total_seconds())
                logger.info(
                    f"Would scale {entry.app_id} from {current} to {target} instances, "
                    f"in cooldown ({remaining}s remaining)")
                logger.info(
                    f"app_id={entry.app_id} rate_avg={entry.rate_avg:.2f} "
                    f"target_rps={opts.target_rps} current_rps={current_rps:.2f}")
                continue

            if to_scale.get(entry.app_id, 0) > target:
                logger.debug(f"{key}: {entry.app_id} already scaling to {to_scale[entry.app_id]}")
                continue

            logger.info(f"Scaling {entry.app_id} from {current} to {target} instances")
            logger.info(
                f"app_id={entry.app_id} rate_avg={entry.rate_avg:.2f} "
                f"target_rps={opts.target_rps} current_rps={current_rps:.2f}")
            to_scale[entry.app_id] = target
            entry.last_scaled = now

        return to_scale
