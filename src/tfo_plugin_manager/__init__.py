"""tfo-plugin-manager: plugin injection webhook for the Terraform Operator.

This package runs a mutating admission webhook that injects plugin task
definitions into Terraform resources according to policy files, and
maintains the self-signed TLS material the webhook needs.

Example usage:
    from tfo_plugin_manager import MutationPolicyLoader, MutationService, SchemaRegistry

    service = MutationService(MutationPolicyLoader("/plugins"), SchemaRegistry.default())
    response = service.review(admission_review)
"""

__version__ = "0.3.0"

from tfo_plugin_manager.certs.authority import CertificateAuthority
from tfo_plugin_manager.certs.lifecycle import CertificateLifecycleManager
from tfo_plugin_manager.certs.store import SecretStore
from tfo_plugin_manager.cli import cli
from tfo_plugin_manager.exceptions import (
    CertificateMaterialError,
    ClusterConnectionError,
    GenerationError,
    PatchComputationError,
    PluginManagerError,
    PolicyError,
    PolicyParseError,
    PolicyReadError,
    RelayError,
    ResourceDecodeError,
    SecretStoreError,
    WebhookRegistrationError,
)
from tfo_plugin_manager.mutation.policy import MutationPolicyLoader
from tfo_plugin_manager.mutation.schema import SchemaRegistry
from tfo_plugin_manager.server.admission import MutationService
from tfo_plugin_manager.webhook.registrar import WebhookRegistrar

__all__ = [
    # Version
    "__version__",
    # Main CLI
    "cli",
    # Classes
    "CertificateAuthority",
    "CertificateLifecycleManager",
    "MutationPolicyLoader",
    "MutationService",
    "SchemaRegistry",
    "SecretStore",
    "WebhookRegistrar",
    # Exceptions
    "PluginManagerError",
    "CertificateMaterialError",
    "ClusterConnectionError",
    "GenerationError",
    "PatchComputationError",
    "PolicyError",
    "PolicyParseError",
    "PolicyReadError",
    "RelayError",
    "ResourceDecodeError",
    "SecretStoreError",
    "WebhookRegistrationError",
]
