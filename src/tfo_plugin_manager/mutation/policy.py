"""Plugin mutation policy loading.

Policies live one per file in a directory, typically a mounted ConfigMap.
The directory is read on every admission request so that policy changes
apply without a restart.
"""

import json
from pathlib import Path
from typing import Any

import yaml
from icecream import ic

from tfo_plugin_manager.exceptions import PolicyParseError, PolicyReadError
from tfo_plugin_manager.models import MutationPolicy
from tfo_plugin_manager.mutation.merge import task_option_problem

JSON_SUFFIX = ".json"
YAML_SUFFIXES = (".yaml", ".yml")
POLICY_SUFFIXES = (JSON_SUFFIX, *YAML_SUFFIXES)


def task_name_for(path: Path) -> str | None:
    """Return the task name a policy file defines, or None if it is not a policy file.

    Args:
        path: The policy file path.

    Returns:
        The file name without its policy suffix.

    """
    name = path.name
    if name.startswith("."):
        return None
    for suffix in POLICY_SUFFIXES:
        if name.endswith(suffix) and len(name) > len(suffix):
            return name[: -len(suffix)]
    return None


def _require_mapping(value: Any, field: str, path: Path) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise PolicyParseError(f"Error parsing plugin data from file '{path}': '{field}' must be a mapping")
    return value


def parse_policy_file(path: Path) -> MutationPolicy:
    """Parse a single policy file.

    Args:
        path: Path to a ``.json``, ``.yaml`` or ``.yml`` policy file.

    Returns:
        The policy, named after the file.

    Raises:
        PolicyReadError: If the file cannot be read.
        PolicyParseError: If the file is not a valid policy document.

    """
    task_name = task_name_for(path)
    if task_name is None:
        raise PolicyParseError(f"'{path}' is not a policy file")

    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as err:
        raise PolicyReadError(f"Error reading plugin mutations file '{path}': {err}") from err

    try:
        if path.suffix == JSON_SUFFIX:
            document = json.loads(text)
        else:
            document = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as err:
        raise PolicyParseError(f"Error parsing plugin data from file '{path}': {err}") from err

    if not isinstance(document, dict):
        raise PolicyParseError(f"Error parsing plugin data from file '{path}': expected a mapping")

    skip_annotation = document.get("skipAnnotation") or ""
    if not isinstance(skip_annotation, str):
        raise PolicyParseError(f"Error parsing plugin data from file '{path}': 'skipAnnotation' must be a string")

    task_config = _require_mapping(document.get("taskConfig"), "taskConfig", path)
    problem = task_option_problem(task_config)
    if problem is not None:
        raise PolicyParseError(f"Error parsing plugin data from file '{path}': taskConfig: {problem}")

    return MutationPolicy(
        task_name=task_name,
        skip_annotation=skip_annotation,
        plugin_config=_require_mapping(document.get("pluginConfig"), "pluginConfig", path),
        task_config=task_config,
        source=path,
    )


class MutationPolicyLoader:
    """Loads every policy in a directory, in file name order.

    Attributes:
        directory: The policy directory.

    """

    def __init__(self, directory: Path | str) -> None:
        self.directory = Path(directory)

    def __repr__(self) -> str:
        """Return a detailed string representation for debugging."""
        return f"MutationPolicyLoader(directory={str(self.directory)!r})"

    def policy_files(self) -> list[Path]:
        """List policy files, sorted lexicographically by file name.

        Sub-directories, dot-prefixed entries (such as ConfigMap ``..data``
        links) and files without a policy suffix are skipped.

        Raises:
            PolicyReadError: If the directory cannot be listed.

        """
        try:
            entries = list(self.directory.iterdir())
        except OSError as err:
            raise PolicyReadError(f"Error listing plugin mutations directory '{self.directory}': {err}") from err

        files = [p for p in entries if task_name_for(p) is not None and p.is_file()]
        return sorted(files, key=lambda p: p.name)

    def load(self) -> list[MutationPolicy]:
        """Read and parse every policy file.

        Returns:
            Policies in file name order.

        Raises:
            PolicyReadError: If the directory or any file cannot be read.
            PolicyParseError: If any file is not a valid policy document.

        """
        policies = [parse_policy_file(path) for path in self.policy_files()]
        ic([p.task_name for p in policies])
        return policies
