import json
from typing import Dict, List, Optional, Tuple

import pytest

from escontroller.es_client import Response
from escontroller.models import ClusterResource, NodeSet, Pod


class FakeESClient:
    """Answers requests from a path -> (status, body) table and records every call."""

    def __init__(self, responses: Optional[Dict[Tuple[str, str], Tuple[int, object]]] = None):
        self.responses = dict(responses or {})
        self.calls: List[Tuple[str, str, Optional[bytes]]] = []
        self.closed = False

    def request(self, method, path, body=None, timeout=None):
        self.calls.append((method, path, body))
        status, payload = self.responses.get((method, path), (404, {"error": "not found"}))
        if isinstance(payload, Exception):
            raise payload
        if isinstance(payload, (bytes, str)):
            raw = payload if isinstance(payload, bytes) else payload.encode()
        else:
            raw = json.dumps(payload).encode()
        return Response(status_code=status, body=raw)

    def writes(self):
        return [c for c in self.calls if c[0] == "PUT"]

    def close(self):
        self.closed = True


def make_pods(*specs) -> List[Pod]:
    """specs are (version, ready) pairs."""
    return [
        Pod(name=f"es-{i}", labels={"elasticsearch.k8s.elastic.co/version": v}, ready=ready)
        for i, (v, ready) in enumerate(specs)
    ]


def make_node_sets(*versions) -> List[NodeSet]:
    return [
        NodeSet(name=f"es-set-{i}", labels={"elasticsearch.k8s.elastic.co/version": v})
        for i, v in enumerate(versions)
    ]


def make_resource(spec=None, status=None, annotations=None, name="esc", namespace="default") -> ClusterResource:
    return ClusterResource.from_body({
        "apiVersion": "esconfig.k8s.elastic.co/v1alpha1",
        "kind": "ElasticsearchConfig",
        "metadata": {"name": name, "namespace": namespace, "uid": "1234", "annotations": annotations or {}},
        "spec": spec or {},
        "status": status or {},
    })


@pytest.fixture
def fake_client():
    return FakeESClient()
