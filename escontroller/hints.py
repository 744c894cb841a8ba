# escontroller/hints.py
import json
from typing import Any, Iterable, Mapping, Optional

from escontroller import settings
from escontroller.errors import HintsError

# hint names used by the controller
WRITES_PENDING = "writesPending"
FIRST_CONVERGED_VERSION = "firstConvergedVersion"


class OrchestrationHints(dict):
    """Durable facts about a resource that cannot be derived from what is observed.

    Persisted as a flat JSON object under a single annotation.
    """

    @classmethod
    def from_annotations(cls, annotations: Optional[Mapping[str, str]]) -> "OrchestrationHints":
        raw = (annotations or {}).get(settings.HINTS_ANNOTATION)
        if not raw:
            return cls()
        try:
            parsed = json.loads(raw)
        except ValueError as e:
            raise HintsError(f"cannot parse {settings.HINTS_ANNOTATION}: {e}")
        if not isinstance(parsed, dict):
            raise HintsError(f"{settings.HINTS_ANNOTATION} must hold a JSON object")
        return cls(parsed)

    def merge(self, incoming: Mapping[str, Any], set_once: Iterable[str] = ()) -> "OrchestrationHints":
        """Returns a new hint set where incoming wins, except for set_once keys
        that already hold a value."""
        set_once = set(set_once)
        merged = OrchestrationHints(self)
        for key, value in incoming.items():
            if key in set_once and key in self:
                continue
            merged[key] = value
        return merged

    def to_annotation(self) -> str:
        return json.dumps(dict(self), sort_keys=True, separators=(",", ":"))
