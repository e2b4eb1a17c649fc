import logging
from collections import deque
from concurrent.futures import ThreadPoolExecutor

import requests

from .clock import now_dt
from .config import MARATHON_APPS_PATH
from .errors import OrchestratorError

logger = logging.getLogger(__name__)


class MarathonScaler:
    def __init__(self, marathon_url, timeout=5, max_workers=8, session=None, clock=now_dt):
        self.marathon_url = marathon_url.rstrip("/")
        self.timeout = timeout
        self.max_workers = max_workers
        self.session = session or requests.Session()
        self.clock = clock
        self.scale_history = deque(maxlen=50)

    def scale_app(self, app_id, instances):
        url = f"{self.marathon_url}{MARATHON_APPS_PATH}/{app_id}"
        try:
            resp = self.session.put(
                url,
                json={"instances": instances},
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
            resp.raise_for_status()
        except requests.RequestException as e:
            raise OrchestratorError(f"Failed to scale {app_id} to {instances}: {e}") from e

    def _scale_or_log(self, item):
        app_id, instances = item
        try:
            self.scale_app(app_id, instances)
        except OrchestratorError as e:
            logger.warning(str(e))
            return False

        self._record_scale_action(app_id, instances)
        logger.info(f"Scaled {app_id} to {instances} instances")
        return True

    def scale_apps(self, scale_list):
        """Issue one PUT per app id; returns `{app_id: succeeded}`."""
        if not scale_list:
            return {}

        items = sorted(scale_list.items())
        workers = max(1, min(len(items), self.max_workers))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            results = list(pool.map(self._scale_or_log, items))
        return {app_id: ok for (app_id, _), ok in zip(items, results)}

    def _record_scale_action(self, app_id, instances):
        self.scale_history.append({
            "timestamp": self.clock(),
            "app_id": app_id,
            "instances": instances,
        })

    def recent_history(self, limit=10):
        return [
            {
                "timestamp": h["timestamp"].isoformat(),
                "app_id": h["app_id"],
                "instances": h["instances"],
            }
            for h in list(self.scale_history)[-limit:]
        ]
