"""Kubernetes cluster access.

This module provides the Cluster class which loads API credentials and
hands out the typed API clients used by the secret store and the webhook
registrar.
"""

from kubernetes import client, config
from kubernetes.config.config_exception import ConfigException

from tfo_plugin_manager import console
from tfo_plugin_manager.exceptions import ClusterConnectionError


class Cluster:
    """Holds the configured Kubernetes API clients.

    Attributes:
        in_cluster: Whether the service account credentials were used.
        core_v1: CoreV1Api client for secrets.
        admission_registration_v1: AdmissionregistrationV1Api client for webhook configurations.

    """

    def __init__(self, *, kubeconfig: str | None = None) -> None:
        """Load credentials and build API clients.

        Args:
            kubeconfig: Path to a kubeconfig file. When empty, the in-cluster
                        service account is used. Must be passed as a keyword argument.

        """
        self.in_cluster: bool = self._load_config(kubeconfig=kubeconfig)
        self.core_v1: client.CoreV1Api = client.CoreV1Api()
        self.admission_registration_v1: client.AdmissionregistrationV1Api = client.AdmissionregistrationV1Api()

    @staticmethod
    def _load_config(*, kubeconfig: str | None) -> bool:
        """Load the Kubernetes client configuration.

        Args:
            kubeconfig: Optional kubeconfig path.

        Returns:
            True if the in-cluster configuration was loaded.

        Raises:
            ClusterConnectionError: If no usable configuration is found.

        """
        try:
            if kubeconfig:
                config.load_kube_config(config_file=kubeconfig)
                console.action(f"Using kubeconfig {console.highlight(kubeconfig)}")
                return False
            config.load_incluster_config()
        except ConfigException as e:
            raise ClusterConnectionError(f"Failed to get config for clientset: {e}") from e
        console.action("Using in-cluster service account")
        return True

    def __repr__(self) -> str:
        """Return a detailed string representation for debugging."""
        return f"Cluster(in_cluster={self.in_cluster!r})"
