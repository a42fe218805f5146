"""Terraform resource schema adapters.

Each supported Terraform API version gets a ResourceSchema describing where
the plugin map, the task option list and the annotations live. The mutation
engine only talks to CustomResource, so one engine serves every version.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from tfo_plugin_manager.exceptions import ResourceDecodeError
from tfo_plugin_manager.models import GroupVersionResource
from tfo_plugin_manager.mutation.merge import task_option_problem


@dataclass(frozen=True, slots=True)
class ResourceSchema:
    """Field layout of one Terraform resource version.

    Attributes:
        resource: Group, version and plural resource name.
        kind: The resource kind.
        plugins_path: Path of the task name to plugin spec map.
        task_options_path: Path of the task option list.

    """

    resource: GroupVersionResource
    kind: str = "Terraform"
    plugins_path: tuple[str, ...] = ("spec", "plugins")
    task_options_path: tuple[str, ...] = ("spec", "taskOptions")

    @property
    def api_version(self) -> str:
        """The ``apiVersion`` manifests of this version carry."""
        return self.resource.api_version

    def decode(self, obj: Any) -> "CustomResource":
        """Wrap a decoded admission object.

        Args:
            obj: The ``request.object`` of an admission review.

        Returns:
            The resource bound to this schema.

        Raises:
            ResourceDecodeError: If ``obj`` is not a resource of this version.

        """
        if not isinstance(obj, dict):
            raise ResourceDecodeError(f"Expected a {self.kind} object but got {type(obj).__name__}")
        api_version = obj.get("apiVersion")
        kind = obj.get("kind")
        if api_version is not None and api_version != self.api_version:
            raise ResourceDecodeError(f"Expected apiVersion {self.api_version} but got {api_version}")
        if kind is not None and kind != self.kind:
            raise ResourceDecodeError(f"Expected kind {self.kind} but got {kind}")
        for path in (self.plugins_path, self.task_options_path, ("metadata", "annotations")):
            _check_path(obj, path)
        for index, task_option in enumerate(_lookup(obj, self.task_options_path) or []):
            problem = task_option_problem(task_option)
            if problem is not None:
                raise ResourceDecodeError(f"'{'.'.join(self.task_options_path)}[{index}]': {problem}")
        return CustomResource(obj, self)


def _lookup(document: dict[str, Any], path: tuple[str, ...]) -> Any:
    node: Any = document
    for key in path:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node


def _check_path(document: dict[str, Any], path: tuple[str, ...]) -> None:
    node: Any = document
    for depth, key in enumerate(path):
        if not isinstance(node, dict):
            raise ResourceDecodeError(f"'{'.'.join(path[:depth])}' must be an object")
        node = node.get(key)
        if node is None:
            return
    expected = list if path[-1] == "taskOptions" else dict
    if not isinstance(node, expected):
        raise ResourceDecodeError(f"'{'.'.join(path)}' must be a {'list' if expected is list else 'map'}")


class CustomResource:
    """A Terraform resource document accessed through its schema.

    The document is mutated in place. Containers are created on first write
    so that an untouched resource serializes unchanged.

    Attributes:
        document: The underlying JSON document.
        schema: The schema describing its layout.

    """

    def __init__(self, document: dict[str, Any], schema: ResourceSchema) -> None:
        self.document = document
        self.schema = schema

    def __repr__(self) -> str:
        """Return a detailed string representation for debugging."""
        return f"CustomResource(apiVersion={self.schema.api_version!r}, name={self.name!r})"

    @property
    def name(self) -> str:
        """``metadata.name``, or ``metadata.generateName`` for unnamed creates."""
        metadata = self.document.get("metadata") or {}
        return str(metadata.get("name") or metadata.get("generateName") or "")

    def _get(self, path: tuple[str, ...]) -> Any:
        return _lookup(self.document, path)

    def _ensure(self, path: tuple[str, ...], factory: type) -> Any:
        node = self.document
        for key in path[:-1]:
            if node.get(key) is None:
                node[key] = {}
            node = node[key]
        if node.get(path[-1]) is None:
            node[path[-1]] = factory()
        return node[path[-1]]

    @property
    def annotations(self) -> dict[str, str]:
        """Read-only view of ``metadata.annotations``."""
        return dict(self._get(("metadata", "annotations")) or {})

    def has_annotation(self, key: str) -> bool:
        """Return True if the annotation key is present, whatever its value."""
        return key in self.annotations

    @property
    def plugins(self) -> dict[str, Any]:
        """Read-only view of the plugin map."""
        return dict(self._get(self.schema.plugins_path) or {})

    def set_plugin(self, task_name: str, plugin: dict[str, Any]) -> bool:
        """Insert or overwrite a plugin.

        Returns:
            True if an existing plugin was overwritten.

        """
        plugins = self._ensure(self.schema.plugins_path, dict)
        existed = task_name in plugins
        plugins[task_name] = plugin
        return existed

    @property
    def task_options(self) -> list[dict[str, Any]]:
        """The task option list, created empty if absent."""
        return self._ensure(self.schema.task_options_path, list)


class SchemaRegistry:
    """Resolves the schema for an admission request."""

    def __init__(self, schemas: Iterable[ResourceSchema]) -> None:
        self._schemas = {schema.resource: schema for schema in schemas}

    @classmethod
    def default(cls) -> "SchemaRegistry":
        """Registry with every Terraform version this service mutates."""
        return cls([TERRAFORM_V1ALPHA2, TERRAFORM_V1BETA1])

    @property
    def resources(self) -> list[GroupVersionResource]:
        """All registered resources, in registration order."""
        return list(self._schemas)

    def for_resource(self, resource: GroupVersionResource) -> ResourceSchema | None:
        """Return the schema for a requested resource, or None if unsupported."""
        return self._schemas.get(resource)


TERRAFORM_V1ALPHA2 = ResourceSchema(GroupVersionResource("tf.isaaguilar.com", "v1alpha2", "terraforms"))
TERRAFORM_V1BETA1 = ResourceSchema(GroupVersionResource("tf.galleybytes.com", "v1beta1", "terraforms"))
