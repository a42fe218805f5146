"""Runtime settings for tfo-plugin-manager.

Settings are collected once from the command line (see ``cli.py``) and
passed to every component that needs them.
"""

from dataclasses import dataclass
from pathlib import Path

from tfo_plugin_manager.models import MountedCertificatePaths

DEFAULT_NAME = "terraform-operator-plugin-manager"


def service_dns_names(service: str, namespace: str) -> list[str]:
    """Return the DNS aliases a service is reachable at, shortest first.

    Args:
        service: The service name.
        namespace: The namespace the service lives in.

    Returns:
        The service name, ``service.namespace``, ``service.namespace.svc``
        and ``service.namespace.svc.cluster.local``.

    """
    return [
        service,
        f"{service}.{namespace}",
        f"{service}.{namespace}.svc",
        f"{service}.{namespace}.svc.cluster.local",
    ]


@dataclass(frozen=True, slots=True)
class Settings:
    """Process configuration.

    Attributes:
        ca_key_file: Mounted CA key path.
        ca_cert_file: Mounted CA certificate path.
        tls_key_file: Mounted TLS key path.
        tls_cert_file: Mounted TLS certificate path.
        secret_name: Secret holding the certificate bundle.
        namespace: Namespace of the service and the secret.
        webhook_configuration_name: Name of the MutatingWebhookConfiguration.
        service_name: Service fronting this process.
        plugin_mutations_dir: Directory of plugin mutation policy files.
        api_service_host: Terraform Operator API base URL for the credential relay.
        api_username: Username relayed to the API login.
        api_password: Password relayed to the API login.
        host: Listener bind address.
        port: Listener port.

    """

    ca_key_file: Path = Path("/etc/certs/ca.key")
    ca_cert_file: Path = Path("/etc/certs/ca.crt")
    tls_key_file: Path = Path("/etc/certs/tls.key")
    tls_cert_file: Path = Path("/etc/certs/tls.crt")
    secret_name: str = f"{DEFAULT_NAME}-certs"
    namespace: str = "tf-system"
    webhook_configuration_name: str = DEFAULT_NAME
    service_name: str = DEFAULT_NAME
    plugin_mutations_dir: Path = Path("/plugins")
    api_service_host: str = "http://terraform-operator-api.tf-system.svc"
    api_username: str = ""
    api_password: str = ""
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 8443

    @property
    def dns_names(self) -> list[str]:
        """DNS aliases the TLS certificate must carry."""
        return service_dns_names(self.service_name, self.namespace)

    @property
    def mounted_paths(self) -> MountedCertificatePaths:
        """The four mounted certificate file paths."""
        return MountedCertificatePaths(
            ca_key=self.ca_key_file,
            ca_cert=self.ca_cert_file,
            tls_key=self.tls_key_file,
            tls_cert=self.tls_cert_file,
        )

    def __repr__(self) -> str:
        """Return a representation that never shows the relay password."""
        return (
            f"Settings(namespace={self.namespace!r}, service_name={self.service_name!r}, "
            f"secret_name={self.secret_name!r}, plugin_mutations_dir={str(self.plugin_mutations_dir)!r}, "
            f"port={self.port!r})"
        )
