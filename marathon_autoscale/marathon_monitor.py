import logging

import requests

from .config import MARATHON_APPS_PATH
from .errors import OrchestratorError

logger = logging.getLogger(__name__)


class MarathonMonitor:
    def __init__(self, marathon_url, timeout=5, session=None):
        self.marathon_url = marathon_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def get_instances(self):
        """Return `{app_id: instances}` for every app Marathon knows about."""
        try:
            resp = self.session.get(self.marathon_url + MARATHON_APPS_PATH, timeout=self.timeout)
            resp.raise_for_status()
            apps = resp.json()["apps"]
            return {app["id"].lstrip("/"): int(app["instances"]) for app in apps}
        except requests.RequestException as e:
            raise OrchestratorError(f"Failed to list Marathon apps: {e}") from e
        except (ValueError, KeyError, TypeError) as e:
            raise OrchestratorError(f"Unexpected Marathon app list: {e!r}") from e

    def update_instances(self, entries):
        """Refresh `current_instances` of every entry whose app Marathon reports.

        Entries missing from the listing, or all entries when the listing fails,
        keep their last known count.
        """
        try:
            instances = self.get_instances()
        except OrchestratorError as e:
            logger.warning(f"{e}; keeping last known instance counts")
            return False

        for key, entry in entries.items():
            if entry.app_id in instances:
                entry.current_instances = instances[entry.app_id]
            else:
                logger.debug(f"Marathon did not report {entry.app_id} ({key})")
        return True
