"""Data models for tfo-plugin-manager.

This module provides type-safe data structures shared by the certificate
lifecycle and the mutation engine.
"""

from dataclasses import dataclass, field, fields
from enum import Enum
from pathlib import Path
from typing import Any, NamedTuple

# Secret data keys, also the file names the secret volume mounts
CA_KEY = "ca.key"
CA_CERT = "ca.crt"
TLS_KEY = "tls.key"
TLS_CERT = "tls.crt"


class LifecycleState(str, Enum):
    """States of the certificate lifecycle loop.

    Inherits from str so the state can be logged directly.
    """

    WAITING_FOR_MATERIAL = "waiting-for-material"
    VALIDATING = "validating"
    HEALTHY = "healthy"
    ROTATING = "rotating"
    DRIFTED = "drifted"

    @property
    def recheck_after(self) -> float:
        """Seconds to sleep before the next cycle when this state was reached."""
        if self is LifecycleState.HEALTHY:
            return 24 * 60 * 60.0
        return 10.0


class GroupVersionResource(NamedTuple):
    """A Kubernetes API group, version and plural resource name."""

    group: str
    version: str
    resource: str

    @property
    def api_version(self) -> str:
        """The ``group/version`` string used in manifests."""
        return f"{self.group}/{self.version}" if self.group else self.version

    @classmethod
    def from_request(cls, resource: dict[str, Any]) -> "GroupVersionResource":
        """Build from the ``request.resource`` block of an admission review."""
        return cls(
            group=str(resource.get("group", "")),
            version=str(resource.get("version", "")),
            resource=str(resource.get("resource", "")),
        )


@dataclass(frozen=True, slots=True)
class CertificateBundle:
    """PEM-encoded CA and TLS key/certificate pairs.

    Attributes:
        ca_key: The CA private key.
        ca_cert: The self-signed CA certificate, also used as the CA bundle.
        tls_key: The serving private key.
        tls_cert: The serving certificate signed by the CA.

    """

    ca_key: bytes
    ca_cert: bytes
    tls_key: bytes
    tls_cert: bytes

    def to_secret_data(self) -> dict[str, bytes]:
        """Return the bundle keyed by secret data key."""
        return {
            CA_KEY: self.ca_key,
            CA_CERT: self.ca_cert,
            TLS_KEY: self.tls_key,
            TLS_CERT: self.tls_cert,
        }

    @classmethod
    def from_secret_data(cls, data: dict[str, bytes]) -> "CertificateBundle":
        """Build a bundle from decoded secret data; missing keys become empty."""
        return cls(
            ca_key=data.get(CA_KEY, b""),
            ca_cert=data.get(CA_CERT, b""),
            tls_key=data.get(TLS_KEY, b""),
            tls_cert=data.get(TLS_CERT, b""),
        )

    def differing_fields(self, other: "CertificateBundle") -> list[str]:
        """Return the names of the fields whose bytes differ from ``other``."""
        return [f.name for f in fields(self) if getattr(self, f.name) != getattr(other, f.name)]


class MountedCertificatePaths(NamedTuple):
    """Paths of the certificate files mounted from the secret."""

    ca_key: Path
    ca_cert: Path
    tls_key: Path
    tls_cert: Path


@dataclass(frozen=True, slots=True)
class MutationPolicy:
    """One plugin injection policy, loaded from a single policy file.

    Attributes:
        task_name: Derived from the file name; key of the injected plugin.
        skip_annotation: Resources carrying this annotation key are left alone.
        plugin_config: Plugin spec written under ``spec.plugins[task_name]``.
        task_config: Task option template merged into ``spec.taskOptions``.
        source: The file the policy was read from.

    """

    task_name: str
    skip_annotation: str = ""
    plugin_config: dict[str, Any] = field(default_factory=dict)
    task_config: dict[str, Any] = field(default_factory=dict)
    source: Path | None = None
