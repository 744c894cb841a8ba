# escontroller/state.py
import logging
from typing import Callable, Iterable, List, Mapping, Optional, Sequence, Tuple

from escontroller import settings
from escontroller.errors import MalformedVersion
from escontroller.events import (
    EVENT_REASON_DELAYED,
    EVENT_REASON_STALLED,
    EVENT_REASON_UNHEALTHY,
    EVENT_REASON_VALIDATION,
    EVENT_TYPE_NORMAL,
    EVENT_TYPE_WARNING,
    Event,
    EventRecorder,
)
from escontroller.hints import OrchestrationHints
from escontroller.models import (
    HEALTH_ORDER,
    ClusterHealth,
    ClusterResource,
    Health,
    NodeSet,
    Pod,
    Phase,
    Status,
)
from escontroller.version import Version, min_version


def pod_ready(pod: Pod) -> bool:
    return pod.ready


def available_nodes(pods: Iterable[Pod], is_ready: Callable[[Pod], bool] = pod_ready) -> List[Pod]:
    """Filters pods for the ones that are ready."""
    return [p for p in pods if is_ready(p)]


def is_degraded(current: Status, previous: Status) -> bool:
    """Whether current is a worse place to be than previous.

    Losing available nodes always counts. A lower health counts unless the
    new phase is ApplyingChanges, where red is reported for every pass and
    says nothing about the cluster itself.
    """
    if current.available_nodes < previous.available_nodes:
        return True
    if current.phase == Phase.APPLYING_CHANGES:
        return False
    return HEALTH_ORDER[current.health] < HEALTH_ORDER[previous.health]


class ReconcileState:
    """Holds the state accumulated during one reconcile pass of a resource.

    The new status is built up by the update/mark methods and compared with
    the persisted one in apply().
    """

    def __init__(
        self,
        resource: ClusterResource,
        recorder: Optional[EventRecorder] = None,
        logger: Optional[logging.Logger] = None,
        is_pod_ready: Callable[[Pod], bool] = pod_ready,
    ):
        self.logger = logger or logging.getLogger(__name__)
        self.recorder = recorder or EventRecorder()
        self.is_pod_ready = is_pod_ready
        self.resource = resource.model_copy(deep=True)
        self.status = resource.status.model_copy(deep=True)
        self._hints = OrchestrationHints.from_annotations(resource.annotations)

    @property
    def hints(self) -> OrchestrationHints:
        return self._hints

    def update_hints(self, hints: Mapping, set_once: Iterable[str] = ()):
        self._hints = self._hints.merge(hints, set_once=set_once)

    def _min_version(self, items, source: str) -> Optional[Version]:
        labels = [i.labels[settings.VERSION_LABEL] for i in items if settings.VERSION_LABEL in i.labels]
        try:
            return min_version(labels)
        except MalformedVersion as e:
            self.logger.error(
                "failed to parse %s version: %s (namespace=%s name=%s)",
                source, e, self.resource.namespace, self.resource.name,
            )
            return None

    def min_running_version(self, pods: Sequence[Pod], node_sets: Sequence[NodeSet]) -> Optional[Version]:
        pod_version = self._min_version(pods, "running Pods")
        set_version = self._min_version(node_sets, "node set")
        if pod_version is None:
            return set_version
        if set_version is None:
            return pod_version
        return min(pod_version, set_version)

    def update_with_phase(
        self,
        phase: Phase,
        pods: Sequence[Pod],
        node_sets: Sequence[NodeSet],
        cluster_health: Optional[ClusterHealth],
    ) -> "ReconcileState":
        self.status.available_nodes = len(available_nodes(pods, self.is_pod_ready))
        self.status.phase = phase

        lowest = self.min_running_version(pods, node_sets)
        if lowest is not None:
            self.status.version = str(lowest)

        self.status.health = Health.UNKNOWN
        if cluster_health is not None and cluster_health.status:
            self.status.health = Status(health=cluster_health.status).health
        return self

    def update(self, pods, node_sets, cluster_health) -> "ReconcileState":
        """Refreshes the observed fields, keeping the current phase."""
        phase = self.status.phase or Phase.APPLYING_CHANGES
        return self.update_with_phase(phase, pods, node_sets, cluster_health)

    def mark_ready(self, pods, node_sets, cluster_health) -> "ReconcileState":
        return self.update_with_phase(Phase.READY, pods, node_sets, cluster_health)

    def is_ready(self) -> bool:
        return self.status.phase == Phase.READY

    def mark_applying_changes(self, pods: Sequence[Pod]) -> "ReconcileState":
        self.status.available_nodes = len(available_nodes(pods, self.is_pod_ready))
        self.status.phase = Phase.APPLYING_CHANGES
        self.status.health = Health.RED
        return self

    def mark_migrating_data(self, pods, node_sets, cluster_health) -> "ReconcileState":
        self.recorder.add_event(
            EVENT_TYPE_NORMAL,
            EVENT_REASON_DELAYED,
            "Requested topology change delayed by data migration. Ensure index settings allow node removal.",
        )
        return self.update_with_phase(Phase.MIGRATING_DATA, pods, node_sets, cluster_health)

    def mark_shutdown_stalled(self, pods, node_sets, cluster_health, reason_detail: str) -> "ReconcileState":
        self.recorder.add_event(
            EVENT_TYPE_WARNING,
            EVENT_REASON_STALLED,
            "Requested topology change is stalled. User intervention maybe required "
            f"if this condition persists. {reason_detail}",
        )
        return self.update_with_phase(Phase.NODE_SHUTDOWN_STALLED, pods, node_sets, cluster_health)

    def mark_invalid(self, err: Exception) -> "ReconcileState":
        self.status.phase = Phase.INVALID
        self.recorder.add_event(EVENT_TYPE_WARNING, EVENT_REASON_VALIDATION, str(err))
        return self

    def set_controller_version(self, version: str):
        self.status.controller_version = version

    def apply(self) -> Tuple[List[Event], Optional[ClusterResource]]:
        """Compares the new status with the persisted one.

        Returns the events to emit and, when status or hints changed, the
        resource with both committed onto it.
        """
        previous = self.resource.status
        current = self.status
        persisted_hints = OrchestrationHints.from_annotations(self.resource.annotations)
        if previous == current and persisted_hints == self._hints:
            return self.recorder.events(), None

        if is_degraded(current, previous):
            self.recorder.add_event(EVENT_TYPE_WARNING, EVENT_REASON_UNHEALTHY, "Elasticsearch cluster health degraded")
        self.resource.status = current.model_copy(deep=True)
        if persisted_hints != self._hints:
            self.resource.annotations[settings.HINTS_ANNOTATION] = self._hints.to_annotation()
        return self.recorder.events(), self.resource.model_copy(deep=True)
