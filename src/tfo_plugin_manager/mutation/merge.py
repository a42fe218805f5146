"""Task option merging.

Merges a policy's task option template into a task option already present
on a resource. Collections merge by key; scalars and the script block are
replaced wholesale.
"""

import copy
import json
from collections.abc import Callable, Hashable
from typing import Any

# Replaced wholesale by the newer task option; removed when it omits them
_REPLACED_FIELDS = ("restartPolicy", "resources", "script")


def _env_key(env: dict[str, Any]) -> Hashable:
    return env.get("name")


def _env_from_key(source: dict[str, Any]) -> Hashable:
    # The whole source reference is the identity
    return json.dumps(source, sort_keys=True)


def merge_keyed_list(
    old: list[dict[str, Any]] | None,
    new: list[dict[str, Any]] | None,
    key: Callable[[dict[str, Any]], Hashable],
) -> list[dict[str, Any]]:
    """Merge two lists of mappings by identity.

    Entries of ``old`` whose key also appears in ``new`` are replaced in
    place by ``new``'s entry (the last one when ``new`` repeats a key).
    Keys only in ``new`` are appended once, in their first-seen order.

    Args:
        old: The existing entries.
        new: The incoming entries.
        key: Computes an entry's identity.

    Returns:
        A new list; neither input is modified.

    """
    incoming: dict[Hashable, dict[str, Any]] = {}
    for entry in new or []:
        incoming[key(entry)] = entry

    merged: list[dict[str, Any]] = []
    for entry in old or []:
        k = key(entry)
        if k in incoming:
            merged.append(copy.deepcopy(incoming.pop(k)))
        else:
            merged.append(copy.deepcopy(entry))
    merged.extend(copy.deepcopy(entry) for entry in incoming.values())
    return merged


def _merge_mapping(old: dict[str, str] | None, new: dict[str, str] | None) -> dict[str, str]:
    merged = dict(old or {})
    merged.update(new or {})
    return merged


def task_option_problem(option: Any) -> str | None:
    """Describe why a task option cannot be merged.

    Args:
        option: A task option from a policy or a resource.

    Returns:
        A short description of the first malformed field, or None if the
        option is safe to merge.

    """
    if not isinstance(option, dict):
        return f"expected a mapping but got {type(option).__name__}"
    for field in ("env", "envFrom"):
        value = option.get(field)
        if value is None:
            continue
        if not isinstance(value, list) or not all(isinstance(entry, dict) for entry in value):
            return f"'{field}' must be a list of mappings"
    for entry in option.get("env") or []:
        if not isinstance(entry.get("name", ""), str):
            return "'env' names must be strings"
    for field in ("labels", "annotations"):
        value = option.get(field)
        if value is not None and not isinstance(value, dict):
            return f"'{field}' must be a mapping"
    return None


def merge_task_options(old: dict[str, Any], new: dict[str, Any]) -> dict[str, Any]:
    """Merge task option ``new`` into ``old``.

    - ``env``: by variable name; replaced in place, new names appended.
    - ``envFrom``: by the source reference itself, same placement rules.
    - ``labels`` and ``annotations``: key-wise union, ``new`` wins.
    - ``restartPolicy``, ``resources`` and ``script``: taken from ``new``.

    Other fields of ``old`` (``for``, ``policyRules``, ...) are kept as is.

    Args:
        old: The task option found on the resource.
        new: The policy's task option template.

    Returns:
        The merged task option; the inputs are not modified.

    """
    merged = copy.deepcopy(old)

    env = merge_keyed_list(old.get("env"), new.get("env"), _env_key)
    if env or "env" in old:
        merged["env"] = env

    env_from = merge_keyed_list(old.get("envFrom"), new.get("envFrom"), _env_from_key)
    if env_from or "envFrom" in old:
        merged["envFrom"] = env_from

    for field in ("labels", "annotations"):
        if field in old or field in new:
            merged[field] = _merge_mapping(old.get(field), new.get(field))

    for field in _REPLACED_FIELDS:
        if new.get(field) is not None:
            merged[field] = copy.deepcopy(new[field])
        else:
            merged.pop(field, None)

    return merged
