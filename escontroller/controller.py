# escontroller/controller.py
import itertools
import logging
import time
from dataclasses import dataclass
from typing import Optional

from escontroller import settings
from escontroller.errors import (
    AssociationNotFound,
    HintsError,
    MalformedVersion,
    ReconcileError,
    ValidationError,
)
from escontroller.esconfig import ConvergenceEngine
from escontroller.events import (
    EVENT_REASON_ASSOCIATION_ERROR,
    EVENT_REASON_COMPAT_CHECK_ERROR,
    EVENT_TYPE_WARNING,
    Event,
)
from escontroller.hints import FIRST_CONVERGED_VERSION, WRITES_PENDING
from escontroller.models import ClusterResource, validate_spec
from escontroller.observer import (
    Cluster,
    migrating_shutdowns,
    observe_health,
    observe_shutdowns,
    stalled_shutdowns,
)
from escontroller.state import ReconcileState
from escontroller.version import check_compatibility, parse


@dataclass
class ReconcileResult:
    requeue: bool = False
    error: Optional[Exception] = None


class Controller:
    """Reconciles ElasticsearchConfig resources.

    store:    get(namespace, name) -> ClusterResource | None, update_status(resource)
    resolver: resolve(namespace, name) -> Cluster, raises AssociationNotFound
    recorder: emit(resource, event)
    """

    # number of reconcile runs in this process, shared by controllers built per pass
    _iteration = itertools.count(1)

    def __init__(
        self,
        store,
        resolver,
        recorder,
        version: str = settings.CONTROLLER_VERSION,
        request_timeout: float = settings.ES_REQUEST_TIMEOUT,
        logger: Optional[logging.Logger] = None,
    ):
        self.store = store
        self.resolver = resolver
        self.recorder = recorder
        self.version = version
        self.request_timeout = request_timeout
        self.logger = logger or logging.getLogger(__name__)

    def reconcile(self, namespace: str, name: str) -> ReconcileResult:
        iteration = next(self._iteration)
        start = time.monotonic()
        self.logger.info("Starting reconciliation run: iteration=%d namespace=%s esc_name=%s", iteration, namespace, name)
        try:
            return self._reconcile(namespace, name)
        finally:
            self.logger.info(
                "Ending reconciliation run: iteration=%d namespace=%s esc_name=%s took=%.3fs",
                iteration, namespace, name, time.monotonic() - start,
            )

    def _reconcile(self, namespace: str, name: str) -> ReconcileResult:
        resource = self.store.get(namespace, name)
        if resource is None:
            self.logger.debug("Resource %s/%s not found, nothing to do", namespace, name)
            return ReconcileResult()

        if resource.unmanaged:
            self.logger.info("Object is currently not managed by this controller. Skipping reconciliation: namespace=%s esc_name=%s",
                             namespace, name)
            return ReconcileResult()

        try:
            compatible = self.is_compatible(resource)
        except MalformedVersion as e:
            self._emit(resource, Event(EVENT_TYPE_WARNING, EVENT_REASON_COMPAT_CHECK_ERROR,
                                       f"Error during compatibility check: {e}"))
            return ReconcileResult(requeue=True, error=e)
        if not compatible:
            return ReconcileResult()

        try:
            state = ReconcileState(resource, logger=self.logger)
        except HintsError as e:
            self.logger.error("Failed to load orchestration hints: %s", e)
            return ReconcileResult(requeue=True, error=e)
        state.set_controller_version(self.version)

        return self.do_reconcile(resource, state)

    def is_compatible(self, resource: ClusterResource) -> bool:
        recorded = resource.status.controller_version
        compatible = check_compatibility(recorded, self.version)
        if not compatible:
            self.logger.info(
                "Resource was reconciled by an incompatible controller version, skipping: "
                "namespace=%s esc_name=%s recorded=%s current=%s",
                resource.namespace, resource.name, recorded, self.version,
            )
        return compatible

    def do_reconcile(self, resource: ClusterResource, state: ReconcileState) -> ReconcileResult:
        # run validation in case the admission webhook is disabled
        try:
            spec = validate_spec(resource.spec)
        except ValidationError as e:
            self.logger.error("Validation failed: %s", e)
            state.mark_invalid(e)
            # retrying cannot succeed without a spec change
            return self._finish(resource, state, ReconcileResult())

        ref = spec.elasticsearch_ref
        try:
            cluster = self.resolver.resolve(ref.namespace or resource.namespace, ref.name)
        except AssociationNotFound as e:
            self.logger.error("Associated object doesn't exist yet: %s", e)
            self._emit(resource, Event(EVENT_TYPE_WARNING, EVENT_REASON_ASSOCIATION_ERROR, str(e)))
            return ReconcileResult(requeue=True, error=e)
        except ReconcileError as e:
            return ReconcileResult(requeue=True, error=e)

        try:
            return self._converge(resource, state, spec, cluster)
        finally:
            close = getattr(cluster.client, "close", None)
            if close is not None:
                close()

    def _converge(self, resource, state, spec, cluster: Cluster) -> ReconcileResult:
        engine = ConvergenceEngine(cluster.client, timeout=self.request_timeout, logger=self.logger)
        try:
            written = engine.run(spec.operations)
        except ReconcileError as e:
            self.logger.error("Failed to reconcile operation: %s", e)
            state.update(cluster.pods, cluster.node_sets, observe_health(cluster.client, self.request_timeout, self.logger))
            return self._finish(resource, state, ReconcileResult(requeue=True, error=e))

        if written:
            self.logger.info("Applied %d of %d operations: %s", len(written), len(spec.operations), ", ".join(written))
            state.mark_applying_changes(cluster.pods)
            state.update_hints({WRITES_PENDING: True})
        else:
            self._observe_converged(cluster, state)
        return self._finish(resource, state, ReconcileResult())

    def _observe_converged(self, cluster: Cluster, state: ReconcileState):
        health = observe_health(cluster.client, self.request_timeout, self.logger)
        lowest = state.min_running_version(cluster.pods, cluster.node_sets)
        shutdowns = []
        if lowest is not None and lowest.gte(parse(settings.SHUTDOWN_API_MIN_VERSION)):
            shutdowns = observe_shutdowns(cluster.client, self.request_timeout, self.logger)

        stalled = stalled_shutdowns(shutdowns)
        if stalled:
            detail = " ".join(f"{s.node_id}: {s.explanation}".strip() for s in stalled)
            state.mark_shutdown_stalled(cluster.pods, cluster.node_sets, health, detail)
            return
        if migrating_shutdowns(shutdowns):
            state.mark_migrating_data(cluster.pods, cluster.node_sets, health)
            return

        state.mark_ready(cluster.pods, cluster.node_sets, health)
        state.update_hints({WRITES_PENDING: False})
        if state.status.version:
            state.update_hints({FIRST_CONVERGED_VERSION: state.status.version}, set_once=[FIRST_CONVERGED_VERSION])

    def _finish(self, resource: ClusterResource, state: ReconcileState, result: ReconcileResult) -> ReconcileResult:
        events, updated = state.apply()
        if updated is not None:
            try:
                self.store.update_status(updated)
            except ReconcileError as e:
                self.logger.error("Failed to update status: %s", e)
                if result.error is None:
                    result = ReconcileResult(requeue=True, error=e)
        for event in events:
            self._emit(resource, event)
        return result

    def _emit(self, resource: ClusterResource, event: Event):
        self.recorder.emit(resource, event)
