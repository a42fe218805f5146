"""JSON patch computation.

Diffs the serialized resource before and after mutation. Operations that
touch the status subtree are dropped; status belongs to the operator.
"""

import json
from typing import Any

import jsonpatch
from icecream import ic

from tfo_plugin_manager.exceptions import PatchComputationError

STATUS_PATH = "/status"


def touches_status(operation: dict[str, Any]) -> bool:
    """Return True if an operation's path (or source path) is inside ``/status``."""
    for key in ("path", "from"):
        pointer = operation.get(key)
        if pointer is not None and (pointer == STATUS_PATH or pointer.startswith(STATUS_PATH + "/")):
            return True
    return False


def compute_patch(before: bytes, after: bytes) -> list[dict[str, Any]]:
    """Compute the JSON patch turning ``before`` into ``after``.

    Args:
        before: The serialized resource as received.
        after: The serialized resource after mutation.

    Returns:
        The patch operations, without any touching the status subtree.
        An empty list means there is nothing to change.

    Raises:
        PatchComputationError: If either document is not valid JSON.

    """
    try:
        source = json.loads(before)
        target = json.loads(after)
    except (json.JSONDecodeError, UnicodeDecodeError) as err:
        raise PatchComputationError(f"Failed to decode resource for diff: {err}") from err

    operations = jsonpatch.make_patch(source, target).patch
    filtered = [op for op in operations if not touches_status(op)]
    ic(filtered)
    return filtered
