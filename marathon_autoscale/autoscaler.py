import logging
import threading
import time

from .aggregator import SignalAggregator
from .clock import now_dt
from .decision import DecisionEngine
from .entry import build_entries
from .haproxy_monitor import HAProxyMonitor
from .marathon_monitor import MarathonMonitor
from .marathon_scaler import MarathonScaler

logger = logging.getLogger(__name__)


class Autoscaler:
    """Owns the tracked entries and drives one sample/decide/scale cycle per interval."""

    def __init__(self, options, sampler=None, tracker=None, scaler=None,
                 clock=now_dt, timer=time.time, sleep=None):
        self.options = options
        self.entries = build_entries(options.apps, options.samples)

        self.sampler = sampler or HAProxyMonitor(
            options.haproxy, options.apps,
            timeout=options.request_timeout, max_workers=options.max_workers,
        )
        self.tracker = tracker or MarathonMonitor(options.marathon, timeout=options.request_timeout)
        self.scaler = scaler or MarathonScaler(
            options.marathon, timeout=options.request_timeout,
            max_workers=options.max_workers, clock=clock,
        )
        self.aggregator = SignalAggregator(self.entries)
        self.engine = DecisionEngine(options, clock=clock)

        self.clock = clock
        self.timer = timer
        self.last_tick = None
        self._stopped = threading.Event()
        self.sleep = sleep or self._stopped.wait

    @property
    def warmed_up(self):
        return self.aggregator.warmed_up(self.options.samples)

    def run_once(self):
        """Run one tick; returns the scaling batch that was issued."""
        host_samples = self.sampler.sample_all()
        recorded = self.aggregator.aggregate(host_samples)
        self.tracker.update_instances(self.entries)
        if not recorded:
            return {}

        if not self.warmed_up:
            self.engine.update_targets(self.entries)
            logger.info(f"Warming up: {self.aggregator.ticks}/{self.options.samples} samples")
            return {}

        scale_list = self.engine.decide(self.entries)
        if scale_list:
            self.scaler.scale_apps(scale_list)
        return scale_list

    def tick(self):
        """Run one tick, logging instead of raising on failure."""
        self.last_tick = self.clock()
        try:
            return self.run_once()
        except Exception:
            logger.exception("Autoscale tick failed, retrying next interval")
            return {}

    def run(self, max_ticks=None):
        logger.info("Starting autoscale controller")
        logger.info(f"Options: {self.options}")

        ticks = 0
        while not self._stopped.is_set():
            tick_start = self.timer()
            self.tick()

            ticks += 1
            if max_ticks is not None and ticks >= max_ticks:
                break

            delay = max(0.0, tick_start + self.options.interval - self.timer())
            if delay:
                self.sleep(delay)
        logger.info("Autoscale controller stopped")

    def stop(self):
        self._stopped.set()

    def status(self):
        opts = self.options
        return {
            "timestamp": self.clock().isoformat(),
            "last_tick": self.last_tick.isoformat() if self.last_tick else None,
            "ticks": self.aggregator.ticks,
            "warmed_up": self.warmed_up,
            "options": {
                "interval": opts.interval,
                "samples": opts.samples,
                "cooldown": opts.cooldown,
                "target_rps": opts.target_rps,
                "threshold_percent": opts.threshold_percent,
                "threshold_instances": opts.threshold_instances,
                "intervals_past_threshold": opts.intervals_past_threshold,
            },
            "apps": [entry.to_dict() for entry in self.entries.values()],
        }
