# escontroller/models.py
import json
from enum import Enum
from typing import Any, Dict, List, Optional
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from escontroller import settings
from escontroller.errors import ValidationError


class Phase(str, Enum):
    APPLYING_CHANGES = "ApplyingChanges"
    MIGRATING_DATA = "MigratingData"
    READY = "Ready"
    NODE_SHUTDOWN_STALLED = "NodeShutdownStalled"
    INVALID = "Invalid"


class Health(str, Enum):
    RED = "red"
    YELLOW = "yellow"
    GREEN = "green"
    UNKNOWN = "unknown"


# unknown sits between yellow and green: it is not evidence of a problem
HEALTH_ORDER = {
    Health.RED: 0,
    Health.YELLOW: 1,
    Health.UNKNOWN: 2,
    Health.GREEN: 3,
}


class _Model(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class Status(_Model):
    phase: Optional[Phase] = None
    health: Health = Health.UNKNOWN
    available_nodes: int = Field(default=0, alias="availableNodes")
    version: str = ""
    controller_version: str = Field(default="", alias="controllerVersion")

    @field_validator("phase", mode="before")
    @classmethod
    def _empty_phase(cls, v):
        return v or None

    @field_validator("health", mode="before")
    @classmethod
    def _known_health(cls, v):
        if v in {h.value for h in Health}:
            return v
        return Health.UNKNOWN

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class ConfigOperation(_Model):
    url: str
    body: str = ""

    def desired(self) -> Any:
        return json.loads(self.body) if self.body.strip() else {}


class ElasticsearchRef(_Model):
    name: str = ""
    namespace: str = ""


class ElasticsearchConfigSpec(_Model):
    elasticsearch_ref: ElasticsearchRef = Field(default_factory=ElasticsearchRef, alias="elasticsearchRef")
    operations: List[ConfigOperation] = Field(default_factory=list)


class ClusterResource(_Model):
    """A managed resource as read from the store: declared spec plus last persisted status."""

    name: str
    namespace: str
    annotations: Dict[str, str] = Field(default_factory=dict)
    spec: Dict[str, Any] = Field(default_factory=dict)
    status: Status = Field(default_factory=Status)
    body: Dict[str, Any] = Field(default_factory=dict, repr=False)

    @classmethod
    def from_body(cls, body: Dict[str, Any]) -> "ClusterResource":
        metadata = body.get("metadata") or {}
        return cls(
            name=metadata.get("name", ""),
            namespace=metadata.get("namespace", ""),
            annotations=dict(metadata.get("annotations") or {}),
            spec=dict(body.get("spec") or {}),
            status=Status.model_validate(body.get("status") or {}),
            body=dict(body),
        )

    @property
    def unmanaged(self) -> bool:
        return self.annotations.get(settings.MANAGED_ANNOTATION, "true").lower() == "false"


class Pod(_Model):
    name: str
    labels: Dict[str, str] = Field(default_factory=dict)
    ready: bool = False


class NodeSet(_Model):
    """An ordered node group (StatefulSet) declared for the cluster."""

    name: str
    labels: Dict[str, str] = Field(default_factory=dict)


class ClusterHealth(_Model):
    status: str = ""


class NodeShutdown(_Model):
    node_id: str
    type: str = ""
    status: str = ""
    explanation: str = ""


def validate_spec(spec: Dict[str, Any]) -> ElasticsearchConfigSpec:
    """Parse and check a declared ElasticsearchConfig spec.

    Raises ValidationError listing every problem found.
    """
    try:
        parsed = ElasticsearchConfigSpec.model_validate(spec or {})
    except PydanticValidationError as e:
        raise ValidationError(
            [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
        )

    errors = []
    if not parsed.elasticsearch_ref.name:
        errors.append("elasticsearchRef.name: must be set")

    seen = set()
    for i, op in enumerate(parsed.operations):
        parts = urlsplit(op.url)
        if parts.scheme or parts.netloc or not op.url.startswith("/"):
            errors.append(f"operations[{i}].url: '{op.url}' must be a path starting with '/'")
        if op.url in seen:
            errors.append(f"operations[{i}].url: '{op.url}' is declared more than once")
        seen.add(op.url)
        try:
            desired = op.desired()
        except ValueError as e:
            errors.append(f"operations[{i}].body: invalid JSON: {e}")
            continue
        if not isinstance(desired, dict):
            errors.append(f"operations[{i}].body: must be a JSON object")

    if errors:
        raise ValidationError(errors)
    return parsed
