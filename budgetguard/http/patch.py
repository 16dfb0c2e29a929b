"""
JSONPatch construction for the mutating webhook.
"""

import base64
import json
from typing import Any, Dict, List

from budgetguard.core.schemas import Pod

JSON_PATCH = "JSONPatch"


def _escape(key: str) -> str:
    """Escape a map key for use in a JSON pointer (RFC 6901)."""
    return key.replace("~", "~0").replace("/", "~1")


def _map_ops(path: str, before: Dict[str, str], after: Dict[str, str]) -> List[Dict[str, Any]]:
    """Ops turning string map `before` at `path` into `after`. Keys are never removed."""
    changed = {k: v for k, v in after.items() if before.get(k) != v}
    if not changed:
        return []
    if not before:
        return [{"op": "add", "path": path, "value": dict(after)}]

    ops = []
    for key, value in changed.items():
        op = "replace" if key in before else "add"
        ops.append({"op": op, "path": f"{path}/{_escape(key)}", "value": value})
    return ops


def build_patch(before: Pod, after: Pod) -> List[Dict[str, Any]]:
    """
    Diff the fields the auto-sizer may touch: annotations and container limits.

    Args:
        before: Pod as received
        after: Pod after mutation

    Returns:
        List of JSONPatch operations, empty when nothing changed
    """
    ops = _map_ops("/metadata/annotations", before.metadata.annotations, after.metadata.annotations)

    for index, (old, new) in enumerate(zip(before.spec.containers, after.spec.containers)):
        ops.extend(
            _map_ops(
                f"/spec/containers/{index}/resources/limits",
                old.resources.limits,
                new.resources.limits,
            )
        )
    return ops


def encode_patch(ops: List[Dict[str, Any]]) -> str:
    return base64.b64encode(json.dumps(ops).encode("utf-8")).decode("ascii")
