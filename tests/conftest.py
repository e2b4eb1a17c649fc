import json
from datetime import datetime, timezone

import pytest
import requests

from marathon_autoscale.config import AutoscaleOptions

NOW = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)

STATS_HEADER = "# pxname,svname,qcur,qmax,scur,smax,slim,stot,rate,req_rate,"


def stats_csv(*rows):
    """Build an HAProxy stats page from `(pxname, svname, qcur, rate, req_rate)` tuples."""
    lines = [STATS_HEADER]
    for pxname, svname, qcur, rate, req_rate in rows:
        lines.append(f"{pxname},{svname},{qcur},0,0,0,0,0,{rate},{req_rate},")
    return "\n".join(lines) + "\n"


class FakeResponse:
    def __init__(self, status_code=200, text="", payload=None):
        self.status_code = status_code
        self.payload = payload
        self.text = text if payload is None else json.dumps(payload)

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error")

    def json(self):
        return json.loads(self.text)


class FakeSession:
    """Serves canned responses keyed by (method, url); exceptions are raised."""

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.calls = []

    def _respond(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        result = self.routes.get((method, url))
        if result is None:
            raise requests.ConnectionError(f"no route to {url}")
        if isinstance(result, Exception):
            raise result
        return result

    def get(self, url, **kwargs):
        return self._respond("GET", url, **kwargs)

    def put(self, url, **kwargs):
        return self._respond("PUT", url, **kwargs)


def fake_resolver(table):
    """getaddrinfo stand-in resolving hostnames from `table`."""
    def resolve(host, port, proto=0):
        import socket
        if host not in table:
            raise socket.gaierror(f"unknown host {host}")
        return [(socket.AF_INET, socket.SOCK_STREAM, proto, "", (addr, port)) for addr in table[host]]
    return resolve


@pytest.fixture
def make_options():
    def make(**overrides):
        values = dict(
            marathon="http://marathon:8080",
            haproxy=["http://lb:9090"],
            interval=60.0,
            samples=10,
            cooldown=5,
            target_rps=1000,
            apps=("web_80",),
            threshold_percent=0.5,
            threshold_instances=3,
            intervals_past_threshold=3,
            request_timeout=5.0,
            max_workers=4,
            status_port=0,
            log_level="INFO",
        )
        values.update(overrides)
        return AutoscaleOptions(**values)
    return make


@pytest.fixture
def clock():
    return lambda: NOW
