"""Custom exceptions for tfo-plugin-manager.

This module defines the exception hierarchy used throughout the service.
Components raise these errors; the lifecycle loop, the admission flow and
the CLI entry point decide whether a given error is transient, per-request
or fatal.
"""


class PluginManagerError(Exception):
    """Base exception for all tfo-plugin-manager errors.

    All custom exceptions in this package inherit from this class,
    allowing callers to catch all service errors with a single
    except clause if desired.
    """

    pass


class ClusterConnectionError(PluginManagerError):
    """Raised when a Kubernetes API client cannot be configured.

    This can occur when:
    - The service runs outside a cluster without a kubeconfig
    - The kubeconfig is invalid or missing
    """

    pass


class GenerationError(PluginManagerError):
    """Raised when key generation or certificate signing fails."""

    pass


class CertificateMaterialError(PluginManagerError):
    """Raised when PEM material cannot be decoded as a key or certificate."""

    pass


class SecretStoreError(PluginManagerError):
    """Raised when the certificate secret cannot be read or written.

    This can occur when:
    - The API server rejects the request (RBAC, validation)
    - The secret disappeared between a read and an update
    """

    pass


class WebhookRegistrationError(PluginManagerError):
    """Raised when the mutating webhook configuration cannot be looked up or created."""

    pass


class PolicyError(PluginManagerError):
    """Base class for plugin mutation policy failures."""

    pass


class PolicyReadError(PolicyError):
    """Raised when the policy directory or a policy file cannot be read."""

    pass


class PolicyParseError(PolicyError):
    """Raised when a policy file is not a valid policy document.

    This can occur when:
    - The file is not valid JSON or YAML
    - The document is not a mapping
    - A known field carries the wrong type
    """

    pass


class ResourceDecodeError(PluginManagerError):
    """Raised when the object embedded in an admission request cannot be decoded."""

    pass


class PatchComputationError(PluginManagerError):
    """Raised when a JSON patch between two serialized resources cannot be computed."""

    pass


class RelayError(PluginManagerError):
    """Raised when the Terraform Operator API login cannot be relayed."""

    pass
