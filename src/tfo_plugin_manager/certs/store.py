"""Secret-backed storage for the certificate bundle.

The secret is the single source of truth for the webhook's TLS material;
the pod mounts it as files and the lifecycle manager compares the mount
against it.
"""

import base64
import binascii
from collections.abc import Callable

from icecream import ic
from kubernetes import client
from kubernetes.client.exceptions import ApiException
from urllib3.exceptions import MaxRetryError

from tfo_plugin_manager import console
from tfo_plugin_manager.exceptions import SecretStoreError
from tfo_plugin_manager.models import CertificateBundle

_SECRET_TYPE_TLS = "kubernetes.io/tls"


def _encode_data(bundle: CertificateBundle) -> dict[str, str]:
    return {key: base64.b64encode(value).decode() for key, value in bundle.to_secret_data().items()}


def _decode_data(data: dict[str, str] | None) -> dict[str, bytes]:
    try:
        return {key: base64.b64decode(value) for key, value in (data or {}).items()}
    except (binascii.Error, ValueError) as e:
        raise SecretStoreError(f"Secret data is not valid base64: {e}") from e


class SecretStore:
    """Reads and writes the certificate bundle secret.

    Attributes:
        name: The secret name.
        namespace: The secret namespace.

    """

    def __init__(self, core_v1: client.CoreV1Api, *, name: str, namespace: str) -> None:
        self._api = core_v1
        self.name = name
        self.namespace = namespace

    def __repr__(self) -> str:
        """Return a detailed string representation for debugging."""
        return f"SecretStore(name={self.name!r}, namespace={self.namespace!r})"

    def _read(self) -> client.V1Secret | None:
        """Read the secret, returning None when it does not exist.

        Raises:
            SecretStoreError: On any API error other than 404.

        """
        try:
            return self._api.read_namespaced_secret(self.name, self.namespace)
        except ApiException as e:
            if e.status == 404:
                return None
            raise SecretStoreError(f"Failed to read secret/{self.name} in {self.namespace}: {e.reason}") from e
        except MaxRetryError as e:
            raise SecretStoreError(f"Failed to connect to the Kubernetes cluster: {e.reason}") from e

    def get(self) -> CertificateBundle | None:
        """Return the stored bundle, or None if the secret does not exist.

        Raises:
            SecretStoreError: If the secret cannot be read or decoded.

        """
        secret = self._read()
        if secret is None:
            return None
        return CertificateBundle.from_secret_data(_decode_data(secret.data))

    def get_or_create(self, factory: Callable[[], CertificateBundle]) -> CertificateBundle:
        """Return the stored bundle, creating the secret from ``factory`` if absent.

        Args:
            factory: Called only when the secret does not exist.

        Returns:
            The stored bundle.

        Raises:
            SecretStoreError: If the secret cannot be read or created.
            GenerationError: Propagated from ``factory``.

        """
        bundle = self.get()
        if bundle is not None:
            return bundle

        bundle = factory()
        body = client.V1Secret(
            metadata=client.V1ObjectMeta(name=self.name, namespace=self.namespace),
            type=_SECRET_TYPE_TLS,
            data=_encode_data(bundle),
        )
        try:
            self._api.create_namespaced_secret(self.namespace, body)
        except ApiException as e:
            if e.status == 409:
                console.warning(f"secret/{self.name} was created concurrently; using the existing one")
                existing = self.get()
                if existing is not None:
                    return existing
            raise SecretStoreError(f"Failed to create secret/{self.name} in {self.namespace}: {e.reason}") from e
        except MaxRetryError as e:
            raise SecretStoreError(f"Failed to connect to the Kubernetes cluster: {e.reason}") from e

        console.success(f"Created TLS certs in {console.highlight(f'secret/{self.name}')}")
        return bundle

    def update(self, bundle: CertificateBundle) -> CertificateBundle:
        """Replace the bundle stored in the existing secret.

        Args:
            bundle: The new bundle.

        Returns:
            The bundle as written.

        Raises:
            SecretStoreError: If the secret does not exist or cannot be replaced.

        """
        secret = self._read()
        if secret is None:
            raise SecretStoreError(f"Expected secret '{self.name}' to exist but was not found")

        secret.data = _encode_data(bundle)
        ic(self.name, sorted(secret.data))
        try:
            self._api.replace_namespaced_secret(self.name, self.namespace, secret)
        except ApiException as e:
            raise SecretStoreError(f"Failed to update secret/{self.name} in {self.namespace}: {e.reason}") from e
        except MaxRetryError as e:
            raise SecretStoreError(f"Failed to connect to the Kubernetes cluster: {e.reason}") from e

        console.success(f"Updated TLS certs in {console.highlight(f'secret/{self.name}')}")
        return bundle
