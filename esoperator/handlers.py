# esoperator/handlers.py
# run with: kopf run -m esoperator.handlers
import logging
import threading
from typing import Dict, Tuple

import kopf

from escontroller.controller import Controller
from escontroller.settings import (
    CONTROLLER_VERSION,
    ESCONFIG_GROUP,
    ESCONFIG_PLURAL,
    ESCONFIG_VERSION,
    LOG_LEVEL,
    MANAGED_ANNOTATION,
    RESYNC_INTERVAL,
    RETRY_DELAY,
)
from esoperator.k8s import ClusterResolver, KopfRecorder, KubernetesStore, ensure_k8s

RESOURCE = (ESCONFIG_GROUP, ESCONFIG_VERSION, ESCONFIG_PLURAL)

# kopf posts records of its per-object logger as Kubernetes events, so the
# reconcile loop logs here and only the recorder emits events
LOGGER = logging.getLogger("esoperator")

# the resync timer runs beside the change handlers; one pass per resource at a time
_locks: Dict[Tuple[str, str], threading.Lock] = {}
_locks_guard = threading.Lock()


def _lock_for(namespace: str, name: str) -> threading.Lock:
    with _locks_guard:
        return _locks.setdefault((namespace, name), threading.Lock())


@kopf.on.startup()
def configure(settings: kopf.OperatorSettings, logger, **kwargs):
    ensure_k8s()
    LOGGER.setLevel(logging.getLevelName(LOG_LEVEL.upper()))
    settings.posting.level = logging.WARNING
    logger.info("Elasticsearch config operator started: version=%s", CONTROLLER_VERSION)


def build_controller() -> Controller:
    return Controller(
        store=KubernetesStore(),
        resolver=ClusterResolver(logger=LOGGER),
        recorder=KopfRecorder(),
        logger=LOGGER,
    )


def run_reconcile(name, namespace):
    with _lock_for(namespace, name):
        result = build_controller().reconcile(namespace, name)
    if result.requeue:
        # kopf owns the backoff
        raise kopf.TemporaryError(str(result.error or "requeue requested"), delay=RETRY_DELAY)


@kopf.on.resume(*RESOURCE)
@kopf.on.create(*RESOURCE)
@kopf.on.update(*RESOURCE, field="spec")
@kopf.on.update(*RESOURCE, field=("metadata", "annotations", MANAGED_ANNOTATION))
def reconcile_esconfig(name, namespace, **kwargs):
    LOGGER.debug("Reconciling ElasticsearchConfig %s/%s", namespace, name)
    run_reconcile(name, namespace)


@kopf.timer(*RESOURCE, interval=RESYNC_INTERVAL, idle=RESYNC_INTERVAL)
def resync_esconfig(name, namespace, **kwargs):
    # operations are re-read every pass, so drift on the cluster side is corrected here
    run_reconcile(name, namespace)


@kopf.on.delete(*RESOURCE, optional=True)
def forget_esconfig(name, namespace, **kwargs):
    with _locks_guard:
        _locks.pop((namespace, name), None)
