# escontroller/observer.py
"""Best-effort observations of a running cluster used for status reporting.

Failures here never fail a pass: they are logged and reported as missing data.
"""
import json
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from escontroller.errors import ReconcileError
from escontroller.models import ClusterHealth, NodeSet, NodeShutdown, Pod

SHUTDOWN_STALLED = "STALLED"
SHUTDOWN_IN_PROGRESS = "IN_PROGRESS"
SHUTDOWN_TYPE_REMOVE = "REMOVE"


@dataclass
class Cluster:
    """A resolved reference to an Elasticsearch cluster."""

    namespace: str
    name: str
    client: object
    pods: List[Pod] = field(default_factory=list)
    node_sets: List[NodeSet] = field(default_factory=list)


def _get_json(client, path: str, timeout: float, logger: logging.Logger):
    try:
        resp = client.request("GET", path, timeout=timeout)
    except ReconcileError as e:
        logger.warning("failed to observe %s: %s", path, e)
        return None
    if resp.status_code != 200:
        logger.warning("failed to observe %s: status_code=%s", path, resp.status_code)
        return None
    try:
        return json.loads(resp.body)
    except ValueError as e:
        logger.warning("failed to parse %s: %s", path, e)
        return None


def observe_health(client, timeout: float, logger: Optional[logging.Logger] = None) -> Optional[ClusterHealth]:
    logger = logger or logging.getLogger(__name__)
    data = _get_json(client, "/_cluster/health", timeout, logger)
    if not isinstance(data, dict):
        return None
    return ClusterHealth(status=str(data.get("status") or ""))


def observe_shutdowns(client, timeout: float, logger: Optional[logging.Logger] = None) -> List[NodeShutdown]:
    logger = logger or logging.getLogger(__name__)
    data = _get_json(client, "/_nodes/shutdown", timeout, logger)
    if not isinstance(data, dict):
        return []
    shutdowns = []
    for node in data.get("nodes") or []:
        migration = node.get("shard_migration") or {}
        shutdowns.append(NodeShutdown(
            node_id=node.get("node_id", ""),
            type=node.get("type", ""),
            status=node.get("status", ""),
            explanation=migration.get("explanation", ""),
        ))
    return shutdowns


def stalled_shutdowns(shutdowns: List[NodeShutdown]) -> List[NodeShutdown]:
    return [s for s in shutdowns if s.status == SHUTDOWN_STALLED]


def migrating_shutdowns(shutdowns: List[NodeShutdown]) -> List[NodeShutdown]:
    return [s for s in shutdowns if s.status == SHUTDOWN_IN_PROGRESS and s.type == SHUTDOWN_TYPE_REMOVE]
