import logging
import socket
from concurrent.futures import ThreadPoolExecutor
from urllib.parse import urlparse, urlunparse

import requests

from .config import HAPROXY_STATS_PATH
from .errors import SampleError

logger = logging.getLogger(__name__)

FRONTEND = "FRONTEND"


def parse_header_labels(lines):
    """Map column position to column name from the `# pxname,svname,...` header."""
    if not lines:
        raise ValueError("empty stats feed")
    header = lines[0].strip().lstrip("#").strip().rstrip(",")
    if not header:
        raise ValueError("missing stats header")
    return {i: label.strip() for i, label in enumerate(header.split(","))}


def parse_frontends(lines, header_labels):
    rows = [
        line for line in lines
        if line.strip() and not line.lstrip().startswith("#")
    ]

    frontends = {}
    for line in rows:
        fields = line.split(",")
        if len(fields) < 2 or fields[1] != FRONTEND:
            continue
        frontends[fields[0]] = {
            label: fields[i] for i, label in header_labels.items() if i < len(fields)
        }
    return frontends


def parse_stats(text):
    """Parse an HAProxy CSV stats page into `{frontend name: {column: value}}`."""
    lines = text.splitlines()
    header_labels = parse_header_labels(lines)
    return parse_frontends(lines, header_labels)


class HAProxyMonitor:
    def __init__(self, urls, apps, timeout=5, max_workers=8, session=None, resolver=None):
        self.urls = list(urls)
        self.apps = set(apps)
        self.timeout = timeout
        self.max_workers = max_workers
        self.session = session or requests.Session()
        self.resolver = resolver or socket.getaddrinfo

    def resolve_hosts(self, url):
        """Expand a load balancer URL into one URL per resolved address.

        https URLs are polled by name so the certificate is checked against
        the hostname it was issued for.
        """
        parsed = urlparse(url)
        if parsed.scheme == "https":
            return [url]
        port = parsed.port or 80
        try:
            infos = self.resolver(parsed.hostname, port, proto=socket.IPPROTO_TCP)
        except (socket.gaierror, OSError) as e:
            raise SampleError(parsed.hostname, f"name resolution failed: {e}") from e

        addresses = sorted({info[4][0] for info in infos})
        if not addresses:
            raise SampleError(parsed.hostname, "name resolved to no addresses")

        hosts = []
        for address in addresses:
            host = f"[{address}]" if ":" in address else address
            netloc = f"{host}:{parsed.port}" if parsed.port else host
            hosts.append(urlunparse(parsed._replace(netloc=netloc)))
        return hosts

    def sample(self, host_url):
        """Fetch one host's stats page and keep only the monitored frontends."""
        stats_url = host_url.rstrip("/") + HAPROXY_STATS_PATH
        try:
            resp = self.session.get(stats_url, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as e:
            raise SampleError(host_url, f"stats request failed: {e}") from e

        try:
            frontends = parse_stats(resp.text)
        except ValueError as e:
            raise SampleError(host_url, f"unparseable stats feed: {e}") from e

        return {name: row for name, row in frontends.items() if name in self.apps}

    def _sample_or_skip(self, host_url):
        try:
            return self.sample(host_url)
        except SampleError as e:
            logger.warning(f"Skipping HAProxy host this tick: {e}")
            return None

    def sample_all(self):
        """Poll every resolved host concurrently.

        Returns a list of ``(host_url, frontends)`` for the hosts that answered,
        ordered by host URL regardless of completion order.
        """
        hosts = []
        for url in self.urls:
            try:
                hosts.extend(self.resolve_hosts(url))
            except SampleError as e:
                logger.warning(f"Skipping HAProxy URL {url} this tick: {e}")

        if not hosts:
            return []

        workers = max(1, min(len(hosts), self.max_workers))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            results = list(pool.map(self._sample_or_skip, hosts))

        sampled = [(host, data) for host, data in zip(hosts, results) if data is not None]
        logger.debug(f"Sampled {len(sampled)}/{len(hosts)} HAProxy hosts")
        return sorted(sampled, key=lambda item: item[0])
