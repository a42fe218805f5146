"""Shared test fixtures for tfo-plugin-manager tests."""

import base64
import json
from unittest.mock import MagicMock, patch

import pytest
from kubernetes import client
from kubernetes.client.exceptions import ApiException
from urllib3.exceptions import MaxRetryError

from tfo_plugin_manager.certs.authority import CertificateAuthority
from tfo_plugin_manager.config import service_dns_names
from tfo_plugin_manager.models import MountedCertificatePaths

DNS_NAMES = service_dns_names("terraform-operator-plugin-manager", "tf-system")


def not_found() -> ApiException:
    """An ApiException the way the client raises it for a missing object."""
    return ApiException(status=404, reason="Not Found")


def unreachable() -> MaxRetryError:
    """A MaxRetryError the way urllib3 raises it when the API server cannot be reached."""
    return MaxRetryError(
        pool=None,
        url="/api/v1/namespaces/tf-system/secrets/terraform-operator-plugin-manager-certs",
        reason=ConnectionRefusedError("[Errno 111] Connection refused"),
    )


def secret_with(bundle) -> client.V1Secret:
    """A V1Secret holding a certificate bundle, base64 encoded like the API returns it."""
    return client.V1Secret(
        metadata=client.V1ObjectMeta(name="terraform-operator-plugin-manager-certs", namespace="tf-system"),
        type="kubernetes.io/tls",
        data={k: base64.b64encode(v).decode() for k, v in bundle.to_secret_data().items()},
    )


@pytest.fixture
def dns_names():
    """The four service DNS aliases."""
    return list(DNS_NAMES)


@pytest.fixture(scope="session")
def bundle():
    """A freshly generated certificate bundle, shared across the session."""
    return CertificateAuthority().generate(DNS_NAMES)


@pytest.fixture(scope="session")
def other_bundle():
    """A second, unrelated certificate bundle."""
    return CertificateAuthority().generate(DNS_NAMES)


@pytest.fixture
def mounted_paths(tmp_path):
    """Paths of the mounted certificate files inside a temporary directory."""
    certs = tmp_path / "certs"
    certs.mkdir()
    return MountedCertificatePaths(
        ca_key=certs / "ca.key",
        ca_cert=certs / "ca.crt",
        tls_key=certs / "tls.key",
        tls_cert=certs / "tls.crt",
    )


def mount(paths: MountedCertificatePaths, bundle) -> None:
    """Write a bundle to the mounted file paths."""
    paths.ca_key.write_bytes(bundle.ca_key)
    paths.ca_cert.write_bytes(bundle.ca_cert)
    paths.tls_key.write_bytes(bundle.tls_key)
    paths.tls_cert.write_bytes(bundle.tls_cert)


@pytest.fixture
def mock_core_v1_api():
    """Mock CoreV1Api for secret operations."""
    return MagicMock(spec=client.CoreV1Api)


@pytest.fixture
def mock_admission_api():
    """Mock AdmissionregistrationV1Api for webhook configuration operations."""
    return MagicMock(spec=client.AdmissionregistrationV1Api)


@pytest.fixture
def policy_dir(tmp_path):
    """An empty policy directory."""
    path = tmp_path / "plugins"
    path.mkdir()
    return path


def write_policy(directory, name: str, document: dict) -> None:
    """Write a JSON policy file."""
    (directory / name).write_text(json.dumps(document))


@pytest.fixture
def foo_policy(policy_dir):
    """Policy directory containing the single 'foo' policy."""
    write_policy(
        policy_dir,
        "foo.json",
        {
            "skipAnnotation": "plugins.tf.galleybytes.com/skip-foo",
            "pluginConfig": {"image": "ghcr.io/galleybytes/foo:1.0", "when": "After", "task": "setup"},
            "taskConfig": {"env": [{"name": "A", "value": "1"}]},
        },
    )
    return policy_dir


@pytest.fixture
def terraform():
    """A v1alpha2 Terraform resource without plugins."""
    return {
        "apiVersion": "tf.isaaguilar.com/v1alpha2",
        "kind": "Terraform",
        "metadata": {"name": "stack", "namespace": "default", "annotations": {"team": "infra"}},
        "spec": {"terraformVersion": "1.5.7", "terraformModule": {"source": "https://github.com/x/y.git"}},
        "status": {"phase": "running"},
    }


def admission_review(obj, *, uid="705ab4f5-6393-11e8-b7cc-42010a800002", group="tf.isaaguilar.com", version="v1alpha2"):
    """Build an AdmissionReview request for a Terraform object."""
    return {
        "apiVersion": "admission.k8s.io/v1",
        "kind": "AdmissionReview",
        "request": {
            "uid": uid,
            "kind": {"group": group, "version": version, "kind": "Terraform"},
            "resource": {"group": group, "version": version, "resource": "terraforms"},
            "operation": "CREATE",
            "object": obj,
        },
    }


@pytest.fixture
def mock_cluster():
    """Mock Cluster so no kubeconfig is loaded."""
    with patch("tfo_plugin_manager.cli.Cluster") as mock:
        yield mock
