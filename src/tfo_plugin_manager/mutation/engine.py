"""Plugin policy application.

Applies mutation policies, in order, to a Terraform resource: each policy
owns one plugin entry and exactly one task option slot.
"""

import copy
from collections.abc import Iterable
from typing import Any

from tfo_plugin_manager import console
from tfo_plugin_manager.models import MutationPolicy
from tfo_plugin_manager.mutation.merge import merge_task_options
from tfo_plugin_manager.mutation.schema import CustomResource

DEFAULT_RESTART_POLICY = "Always"


def find_task_option_index(task_options: list[Any], task_name: str) -> int | None:
    """Find the task option dedicated to a single task.

    Args:
        task_options: The resource's task option list.
        task_name: The task name to look for.

    Returns:
        The index of the first task option whose ``for`` list is exactly
        ``[task_name]``, or None.

    """
    for index, task_option in enumerate(task_options):
        if isinstance(task_option, dict) and task_option.get("for") == [task_name]:
            return index
    return None


def apply_policy(resource: CustomResource, policy: MutationPolicy) -> bool:
    """Apply one policy to a resource in place.

    Args:
        resource: The resource to mutate.
        policy: The policy to apply.

    Returns:
        False if the resource carries the policy's skip annotation.

    """
    if policy.skip_annotation and resource.has_annotation(policy.skip_annotation):
        console.step(f"Skipping '{policy.task_name}' plugin for {resource.name}: found {policy.skip_annotation}")
        return False

    if resource.set_plugin(policy.task_name, copy.deepcopy(policy.plugin_config)):
        console.step(f"Overwriting existing '{policy.task_name}' plugin")

    task_options = resource.task_options
    index = find_task_option_index(task_options, policy.task_name)
    if index is None:
        task_options.append(copy.deepcopy(policy.task_config))
        index = len(task_options) - 1
    else:
        task_options[index] = merge_task_options(task_options[index], policy.task_config)

    task_option = task_options[index]
    task_option["for"] = [policy.task_name]
    if not task_option.get("restartPolicy"):
        task_option["restartPolicy"] = DEFAULT_RESTART_POLICY
    return True


def apply_policies(resource: CustomResource, policies: Iterable[MutationPolicy]) -> list[str]:
    """Apply policies in the given order.

    Args:
        resource: The resource to mutate in place.
        policies: Policies, normally in file name order.

    Returns:
        Task names of the policies that were applied.

    """
    return [policy.task_name for policy in policies if apply_policy(resource, policy)]
