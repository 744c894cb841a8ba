import logging

import pytest
from conftest import make_node_sets, make_pods, make_resource

from escontroller.errors import HintsError
from escontroller.events import Event
from escontroller.models import ClusterHealth, Health, Phase, Status
from escontroller.state import ReconcileState, is_degraded

HINTS = "eck.k8s.elastic.co/orchestration-hints"

READY_GREEN_3 = {"phase": "Ready", "health": "green", "availableNodes": 3, "version": "7.10.0"}


def test_new_state_fails_on_bad_hints() -> None:
    with pytest.raises(HintsError):
        ReconcileState(make_resource(annotations={HINTS: "{"}))


def test_update_with_phase_recomputes_everything() -> None:
    state = ReconcileState(make_resource(status={"availableNodes": 7}))
    pods = make_pods(("7.10.0", True), ("7.9.1", True), ("7.10.0", False))
    state.update_with_phase(Phase.READY, pods, make_node_sets("7.10.0"), ClusterHealth(status="yellow"))
    assert state.status.available_nodes == 2
    assert state.status.phase == Phase.READY
    assert state.status.version == "7.9.1"
    assert state.status.health == Health.YELLOW


def test_version_takes_lower_side() -> None:
    state = ReconcileState(make_resource())
    state.update_with_phase(Phase.READY, make_pods(("7.10.0", True)), make_node_sets("7.9.0", "7.10.0"), None)
    assert state.status.version == "7.9.0"


def test_version_uses_single_available_side() -> None:
    state = ReconcileState(make_resource())
    state.update_with_phase(Phase.READY, [], make_node_sets("7.11.0"), None)
    assert state.status.version == "7.11.0"


def test_malformed_label_drops_only_that_side(caplog) -> None:
    state = ReconcileState(make_resource(status={"version": "7.8.0"}))
    pods = make_pods(("7.10.0", True), ("garbage", True))
    with caplog.at_level(logging.ERROR):
        state.update_with_phase(Phase.READY, pods, make_node_sets("7.10.1"), None)
    assert state.status.version == "7.10.1"
    assert "failed to parse running Pods version" in caplog.text


def test_version_kept_when_nothing_is_known() -> None:
    state = ReconcileState(make_resource(status={"version": "7.8.0"}))
    state.update_with_phase(Phase.READY, make_pods(("bad", True)), make_node_sets("worse"), None)
    assert state.status.version == "7.8.0"


@pytest.mark.parametrize("health", [None, ClusterHealth(status="")])
def test_missing_health_is_unknown(health) -> None:
    state = ReconcileState(make_resource(status={"health": "green"}))
    state.update_with_phase(Phase.READY, [], [], health)
    assert state.status.health == Health.UNKNOWN


def test_mark_applying_changes_forces_red() -> None:
    state = ReconcileState(make_resource(status=READY_GREEN_3))
    state.update_with_phase(Phase.READY, make_pods(("7.10.0", True)), [], ClusterHealth(status="green"))
    state.mark_applying_changes(make_pods(("7.10.0", True)))
    assert state.status.health == Health.RED
    assert state.status.phase == Phase.APPLYING_CHANGES


def test_mark_migrating_data_records_delayed_event() -> None:
    state = ReconcileState(make_resource())
    state.mark_migrating_data([], [], None)
    assert state.status.phase == Phase.MIGRATING_DATA
    assert [(e.type, e.reason) for e in state.recorder.events()] == [("Normal", "Delayed")]


def test_mark_shutdown_stalled_includes_detail() -> None:
    state = ReconcileState(make_resource())
    state.mark_shutdown_stalled([], [], None, "node-1: cannot move shards")
    assert state.status.phase == Phase.NODE_SHUTDOWN_STALLED
    (event,) = state.recorder.events()
    assert event.type == "Warning" and event.reason == "Stalled"
    assert "node-1: cannot move shards" in event.message


def test_mark_invalid_only_touches_phase() -> None:
    state = ReconcileState(make_resource(status=READY_GREEN_3))
    state.mark_invalid(ValueError("bad url"))
    assert state.status.phase == Phase.INVALID
    assert state.status.available_nodes == 3
    assert state.status.health == Health.GREEN
    assert state.status.version == "7.10.0"
    assert state.recorder.events() == [Event("Warning", "Validation", "bad url")]


def test_is_ready_ignores_health() -> None:
    state = ReconcileState(make_resource())
    state.update_with_phase(Phase.READY, [], [], ClusterHealth(status="red"))
    assert state.is_ready()
    state.mark_applying_changes([])
    assert not state.is_ready()


def test_apply_without_changes_returns_no_update() -> None:
    state = ReconcileState(make_resource(status=READY_GREEN_3))
    events, updated = state.apply()
    assert events == [] and updated is None


def test_apply_is_idempotent() -> None:
    state = ReconcileState(make_resource())
    state.update_with_phase(Phase.READY, make_pods(("7.10.0", True)), [], ClusterHealth(status="green"))
    _, first = state.apply()
    assert first is not None and first.status.phase == Phase.READY
    _, second = state.apply()
    assert second is None


def test_apply_persists_hint_changes_with_status() -> None:
    state = ReconcileState(make_resource(status=READY_GREEN_3, annotations={HINTS: '{"a":false,"b":1}'}))
    state.update_hints({"a": True})
    _, updated = state.apply()
    assert updated is not None
    assert updated.annotations[HINTS] == '{"a":true,"b":1}'
    _, again = state.apply()
    assert again is None


def test_topology_change_without_node_loss_is_not_degraded() -> None:
    state = ReconcileState(make_resource(status=READY_GREEN_3))
    state.mark_applying_changes(make_pods(("7.10.0", True), ("7.10.0", True), ("7.10.0", True)))
    events, updated = state.apply()
    assert updated.status.health == Health.RED
    assert all(e.reason != "Unhealthy" for e in events)


def test_topology_change_losing_nodes_is_degraded() -> None:
    state = ReconcileState(make_resource(status=READY_GREEN_3))
    state.mark_applying_changes(make_pods(("7.10.0", True), ("7.10.0", True), ("7.10.0", False)))
    events, updated = state.apply()
    assert updated.status.available_nodes == 2
    assert Event("Warning", "Unhealthy", "Elasticsearch cluster health degraded") in events


def test_observed_health_drop_is_degraded() -> None:
    state = ReconcileState(make_resource(status=READY_GREEN_3))
    pods = make_pods(("7.10.0", True), ("7.10.0", True), ("7.10.0", True))
    state.mark_ready(pods, [], ClusterHealth(status="yellow"))
    events, _ = state.apply()
    assert [e.reason for e in events] == ["Unhealthy"]


HEALTHS = [Health.RED, Health.YELLOW, Health.UNKNOWN, Health.GREEN]


def test_degradation_predicate_over_all_health_pairs() -> None:
    for i, prev in enumerate(HEALTHS):
        for j, cur in enumerate(HEALTHS):
            previous = Status(phase=Phase.READY, health=prev, available_nodes=3)
            current = Status(phase=Phase.READY, health=cur, available_nodes=3)
            assert is_degraded(current, previous) == (j < i), (prev, cur)
            forced = Status(phase=Phase.APPLYING_CHANGES, health=cur, available_nodes=3)
            assert not is_degraded(forced, previous)


def test_degradation_on_node_drop_regardless_of_health() -> None:
    previous = Status(phase=Phase.READY, health=Health.RED, available_nodes=3)
    for health in HEALTHS:
        for phase in Phase:
            current = Status(phase=phase, health=health, available_nodes=2)
            assert is_degraded(current, previous)
