import argparse
import os
import re
from dataclasses import dataclass, field
from typing import List, Tuple
from urllib.parse import urlparse

from .errors import ConfigError

# Orchestrator and load balancer endpoints
MARATHON_URL = os.environ.get("MARATHON_URL", "http://localhost:8080")
HAPROXY_URLS = os.environ.get("HAPROXY_URLS", "http://127.0.0.1:9090")

# Control loop cadence
INTERVAL = float(os.environ.get("AUTOSCALE_INTERVAL", "60"))
SAMPLES = int(os.environ.get("AUTOSCALE_SAMPLES", "10"))
COOLDOWN = float(os.environ.get("AUTOSCALE_COOLDOWN", "5"))  # in intervals

# Scaling targets and hysteresis band
TARGET_RPS = int(os.environ.get("AUTOSCALE_TARGET_RPS", "1000"))
APPS = os.environ.get("AUTOSCALE_APPS", "")
THRESHOLD_PERCENT = float(os.environ.get("AUTOSCALE_THRESHOLD_PERCENT", "0.5"))
THRESHOLD_INSTANCES = int(os.environ.get("AUTOSCALE_THRESHOLD_INSTANCES", "3"))
INTERVALS_PAST_THRESHOLD = int(os.environ.get("AUTOSCALE_INTERVALS_PAST_THRESHOLD", "3"))

# I/O limits
REQUEST_TIMEOUT = float(os.environ.get("AUTOSCALE_REQUEST_TIMEOUT", "5"))
MAX_WORKERS = int(os.environ.get("AUTOSCALE_MAX_WORKERS", "8"))

# Status dashboard, 0 disables it
STATUS_PORT = int(os.environ.get("AUTOSCALE_STATUS_PORT", "0"))
LOG_LEVEL = os.environ.get("AUTOSCALE_LOG_LEVEL", "INFO")

# HAProxy stats endpoint and orchestrator API paths
HAPROXY_STATS_PATH = "/haproxy?stats;csv"
MARATHON_APPS_PATH = "/v2/apps"

MONITORED_KEY_RE = re.compile(r"^(.+)_(\d+)$")


def app_id_for(key):
    """Return the Application ID of a `<application>_<port>` key."""
    match = MONITORED_KEY_RE.match(key)
    if not match:
        raise ConfigError(f"Monitored key {key!r} is not of the form <app>_<port>")
    return match.group(1)


def split_list(value):
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class AutoscaleOptions:
    marathon: str = MARATHON_URL
    haproxy: List[str] = field(default_factory=lambda: split_list(HAPROXY_URLS))
    interval: float = INTERVAL
    samples: int = SAMPLES
    cooldown: float = COOLDOWN
    target_rps: int = TARGET_RPS
    apps: Tuple[str, ...] = field(default_factory=lambda: tuple(sorted(set(split_list(APPS)))))
    threshold_percent: float = THRESHOLD_PERCENT
    threshold_instances: int = THRESHOLD_INSTANCES
    intervals_past_threshold: int = INTERVALS_PAST_THRESHOLD
    request_timeout: float = REQUEST_TIMEOUT
    max_workers: int = MAX_WORKERS
    status_port: int = STATUS_PORT
    log_level: str = LOG_LEVEL

    @property
    def cooldown_seconds(self):
        """Quiet period after a scale before the same app is reconsidered."""
        return self.cooldown * self.interval + self.interval * self.samples

    def validate(self):
        for url in [self.marathon] + list(self.haproxy):
            _check_url(url)
        if not self.haproxy:
            raise ConfigError("At least one HAProxy URL is required")
        if not self.apps:
            raise ConfigError("At least one <app>_<port> key must be given with --apps")
        for key in self.apps:
            app_id_for(key)

        if self.interval <= 0:
            raise ConfigError(f"interval must be positive, got {self.interval}")
        if self.samples < 1:
            raise ConfigError(f"samples must be at least 1, got {self.samples}")
        if self.cooldown < 0:
            raise ConfigError(f"cooldown must not be negative, got {self.cooldown}")
        if self.target_rps <= 0:
            raise ConfigError(f"target-rps must be positive, got {self.target_rps}")
        if self.threshold_percent < 0:
            raise ConfigError(f"threshold-percent must not be negative, got {self.threshold_percent}")
        if self.threshold_instances < 1:
            raise ConfigError(f"threshold-instances must be at least 1, got {self.threshold_instances}")
        if self.intervals_past_threshold < 1:
            raise ConfigError(
                f"intervals-past-threshold must be at least 1, got {self.intervals_past_threshold}")
        if self.request_timeout <= 0:
            raise ConfigError(f"request-timeout must be positive, got {self.request_timeout}")
        if self.max_workers < 1:
            raise ConfigError(f"max-workers must be at least 1, got {self.max_workers}")
        if not 0 <= self.status_port <= 65535:
            raise ConfigError(f"status-port out of range: {self.status_port}")
        return self


def _check_url(url):
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        raise ConfigError(f"Malformed URL: {url!r}")
    try:
        parsed.port
    except ValueError as e:
        raise ConfigError(f"Malformed URL: {url!r} ({e})") from e


def build_parser():
    parser = argparse.ArgumentParser(
        prog="marathon-autoscale",
        description="Scale Marathon apps to track a target request rate seen by HAProxy.",
    )
    parser.add_argument("--marathon", default=MARATHON_URL, metavar="URL",
                        help=f"URL for Marathon (default: {MARATHON_URL})")
    parser.add_argument("--haproxy", default=HAPROXY_URLS, metavar="URLS",
                        help="Comma separated list of URLs for HAProxy. If an http hostname resolves to "
                             "several addresses, all of them are polled and summed, so a name with both "
                             "IPv4 and IPv6 records for one HAProxy (such as localhost) is counted twice; "
                             "use an IP address there. https URLs are polled by name "
                             f"(default: {HAPROXY_URLS})")
    parser.add_argument("--interval", type=float, default=INTERVAL,
                        help=f"Number of seconds between update intervals (default: {INTERVAL})")
    parser.add_argument("--samples", type=int, default=SAMPLES,
                        help=f"Number of samples to average (default: {SAMPLES})")
    parser.add_argument("--cooldown", type=float, default=COOLDOWN,
                        help="Number of additional intervals to wait after making a scale change "
                             f"(default: {COOLDOWN})")
    parser.add_argument("--target-rps", type=int, default=TARGET_RPS,
                        help=f"Target number of requests per second per app instance (default: {TARGET_RPS})")
    parser.add_argument("--apps", default=APPS,
                        help="Comma separated list of <app>_<service port> pairs to monitor")
    parser.add_argument("--threshold-percent", type=float, default=THRESHOLD_PERCENT,
                        help="Scaling will occur when the per-instance rate deviates from the target "
                             f"by at least this fraction (default: {THRESHOLD_PERCENT})")
    parser.add_argument("--threshold-instances", type=int, default=THRESHOLD_INSTANCES,
                        help="Scaling will occur when the target number of instances differs from "
                             f"the actual number by at least this amount (default: {THRESHOLD_INSTANCES})")
    parser.add_argument("--intervals-past-threshold", type=int, default=INTERVALS_PAST_THRESHOLD,
                        help="Number of consecutive intervals outside the threshold before scaling "
                             f"(default: {INTERVALS_PAST_THRESHOLD})")
    parser.add_argument("--request-timeout", type=float, default=REQUEST_TIMEOUT,
                        help=f"Timeout in seconds for every HTTP request (default: {REQUEST_TIMEOUT})")
    parser.add_argument("--max-workers", type=int, default=MAX_WORKERS,
                        help=f"Upper bound on concurrent HTTP requests per tick (default: {MAX_WORKERS})")
    parser.add_argument("--status-port", type=int, default=STATUS_PORT,
                        help=f"Port for the status dashboard, 0 disables it (default: {STATUS_PORT})")
    parser.add_argument("--log-level", default=LOG_LEVEL,
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                        help=f"Log level (default: {LOG_LEVEL})")
    return parser


def parse_options(argv=None):
    """Parse and validate command-line options, exiting on a bad configuration."""
    parser = build_parser()
    args = parser.parse_args(argv)

    options = AutoscaleOptions(
        marathon=args.marathon.rstrip("/"),
        haproxy=[url.rstrip("/") for url in split_list(args.haproxy)],
        interval=args.interval,
        samples=args.samples,
        cooldown=args.cooldown,
        target_rps=args.target_rps,
        apps=tuple(sorted(set(split_list(args.apps)))),
        threshold_percent=args.threshold_percent,
        threshold_instances=args.threshold_instances,
        intervals_past_threshold=args.intervals_past_threshold,
        request_timeout=args.request_timeout,
        max_workers=args.max_workers,
        status_port=args.status_port,
        log_level=args.log_level,
    )
    try:
        return options.validate()
    except ConfigError as e:
        parser.error(str(e))
