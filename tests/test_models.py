import pytest
from conftest import make_resource

from escontroller.errors import ValidationError
from escontroller.models import Health, Phase, Status, validate_spec


def test_valid_spec_parses():
    spec = validate_spec({
        "elasticsearchRef": {"name": "quickstart"},
        "operations": [
            {"url": "/_cluster/settings", "body": '{"persistent": {}}'},
            {"url": "/_snapshot/repo", "body": ""},
        ],
    })
    assert spec.elasticsearch_ref.name == "quickstart"
    assert [op.url for op in spec.operations] == ["/_cluster/settings", "/_snapshot/repo"]
    assert spec.operations[1].desired() == {}


def test_invalid_spec_lists_every_problem():
    with pytest.raises(ValidationError) as exc:
        validate_spec({
            "operations": [
                {"url": "https://elsewhere:9200/_cluster/settings", "body": "{}"},
                {"url": "/a", "body": "{oops"},
                {"url": "/a", "body": "[1]"},
            ],
        })
    errors = exc.value.errors
    assert "elasticsearchRef.name: must be set" in errors
    assert any("operations[0].url" in e for e in errors)
    assert any("operations[1].body: invalid JSON" in e for e in errors)
    assert any("declared more than once" in e for e in errors)
    assert any("operations[2].body: must be a JSON object" in e for e in errors)


def test_wrong_types_are_validation_errors():
    with pytest.raises(ValidationError):
        validate_spec({"elasticsearchRef": {"name": "es"}, "operations": "nope"})


def test_status_tolerates_missing_and_unknown_values():
    status = Status.model_validate({"phase": "", "health": "purple"})
    assert status.phase is None
    assert status.health == Health.UNKNOWN
    assert status.to_dict() == {
        "phase": None, "health": "unknown", "availableNodes": 0, "version": "", "controllerVersion": "",
    }


def test_resource_from_body():
    resource = make_resource(
        spec={"elasticsearchRef": {"name": "es"}},
        status={"phase": "Ready", "availableNodes": 2, "kopf": {"progress": {}}},
        annotations={"eck.k8s.elastic.co/managed": "false"},
    )
    assert resource.status.phase == Phase.READY
    assert resource.status.available_nodes == 2
    assert resource.unmanaged
    assert not make_resource().unmanaged
