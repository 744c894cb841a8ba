# escontroller/esconfig.py
import json
import logging
from typing import Any, List, Optional, Sequence

from escontroller import settings
from escontroller.errors import UnacceptableStatus
from escontroller.models import ConfigOperation

HTTP_OK = 200
HTTP_NOT_FOUND = 404


def is_superset_match(observed: Any, desired: Any) -> bool:
    """Reports whether observed contains everything in desired.

    Objects may carry extra keys and are compared regardless of key order.
    Arrays match element by element over the desired length; observed may
    carry extra trailing elements.
    """
    if isinstance(desired, dict):
        if not isinstance(observed, dict):
            return False
        return all(k in observed and is_superset_match(observed[k], v) for k, v in desired.items())
    if isinstance(desired, list):
        if not isinstance(observed, list) or len(observed) < len(desired):
            return False
        return all(is_superset_match(o, d) for o, d in zip(observed, desired))
    # True == 1 in python, not in JSON
    if isinstance(desired, bool) or isinstance(observed, bool):
        return type(desired) is type(observed) and desired == observed
    return observed == desired


class ConvergenceEngine:
    """Converges declared operations against a live cluster.

    Every call re-reads the current state; nothing is cached between
    operations or passes.
    """

    def __init__(self, client, timeout: float = settings.ES_REQUEST_TIMEOUT, logger: Optional[logging.Logger] = None):
        self.client = client
        self.timeout = timeout
        self.logger = logger or logging.getLogger(__name__)

    def update_required(self, url: str, desired: Any) -> bool:
        self.logger.debug("Requesting url %s", url)
        resp = self.client.request("GET", url, timeout=self.timeout)

        # nothing exists at this url yet, time to create it
        if resp.status_code == HTTP_NOT_FOUND:
            self.logger.debug("resource does not exist yet: %s", url)
            return True

        if resp.status_code != HTTP_OK:
            self.logger.error("error getting current setting: url=%s status_code=%s", url, resp.status_code)
            raise UnacceptableStatus("GET", url, resp.status_code)

        try:
            observed = json.loads(resp.body)
        except ValueError:
            self.logger.debug("Content returned is not JSON, reconciliation required: %s", url)
            return True

        if is_superset_match(observed, desired):
            self.logger.debug("Content returned is a match, no action required: url=%s actual=%s expected=%s",
                              url, resp.body, desired)
            return False
        self.logger.debug("Content returned is not a superset match, reconciliation required: url=%s actual=%s expected=%s",
                          url, resp.body, desired)
        return True

    def reconcile_operation(self, op: ConfigOperation) -> bool:
        """Brings one operation in line. Returns whether a write was issued."""
        desired = op.desired()
        if not self.update_required(op.url, desired):
            return False

        self.logger.info("Content is different, sending PUT to %s", op.url)
        body = op.body.encode("utf-8") if op.body.strip() else b"{}"
        resp = self.client.request("PUT", op.url, body=body, timeout=self.timeout)
        self.logger.debug("Response from PUT: url=%s status_code=%s body=%s", op.url, resp.status_code, resp.body)
        if resp.status_code >= 300:
            raise UnacceptableStatus("PUT", op.url, resp.status_code, resp.body.decode("utf-8", errors="replace"))
        return True

    def run(self, operations: Sequence[ConfigOperation]) -> List[str]:
        """Reconciles operations in declared order, stopping at the first failure.

        Returns the urls that were written.
        """
        written = []
        for op in operations:
            if self.reconcile_operation(op):
                written.append(op.url)
        return written
