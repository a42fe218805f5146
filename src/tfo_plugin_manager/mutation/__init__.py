"""Mutation engine subpackage.

This package contains policy loading, task option merging, the resource
schema adapters, policy application and JSON patch computation.
"""

from tfo_plugin_manager.mutation.engine import apply_policies, apply_policy
from tfo_plugin_manager.mutation.merge import merge_task_options
from tfo_plugin_manager.mutation.patch import compute_patch
from tfo_plugin_manager.mutation.policy import MutationPolicyLoader
from tfo_plugin_manager.mutation.schema import CustomResource, ResourceSchema, SchemaRegistry

__all__ = [
    "CustomResource",
    "MutationPolicyLoader",
    "ResourceSchema",
    "SchemaRegistry",
    "apply_policies",
    "apply_policy",
    "compute_patch",
    "merge_task_options",
]
