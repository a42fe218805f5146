"""Mutating webhook registration.

Creates the MutatingWebhookConfiguration that routes Terraform resource
changes to this service. An existing configuration is never modified.
"""

import base64
from collections.abc import Sequence

from icecream import ic
from kubernetes import client
from kubernetes.client.exceptions import ApiException
from urllib3.exceptions import MaxRetryError

from tfo_plugin_manager import console
from tfo_plugin_manager.exceptions import WebhookRegistrationError
from tfo_plugin_manager.models import GroupVersionResource

WEBHOOK_DOMAIN = "galleybytes.com"
MUTATE_PATH = "/mutate"
SERVICE_PORT = 443
TIMEOUT_SECONDS = 30
FAILURE_POLICY = "Fail"
SIDE_EFFECTS = "None"
OPERATIONS = ("CREATE", "UPDATE")


class WebhookRegistrar:
    """Idempotently creates the mutating webhook configuration.

    Attributes:
        name: Name of the MutatingWebhookConfiguration.
        service_name: Service the webhook calls.
        namespace: Namespace of the service.
        resources: Resources whose CREATE/UPDATE requests are routed here.

    """

    def __init__(
        self,
        admission_registration_v1: client.AdmissionregistrationV1Api,
        *,
        name: str,
        service_name: str,
        namespace: str,
        resources: Sequence[GroupVersionResource],
    ) -> None:
        self._api = admission_registration_v1
        self.name = name
        self.service_name = service_name
        self.namespace = namespace
        self.resources = list(resources)

    def __repr__(self) -> str:
        """Return a detailed string representation for debugging."""
        return (
            f"WebhookRegistrar(name={self.name!r}, service={self.namespace}/{self.service_name}, "
            f"resources={[r.api_version for r in self.resources]!r})"
        )

    def build_configuration(self, ca_bundle: bytes) -> client.V1MutatingWebhookConfiguration:
        """Build the webhook configuration object.

        Args:
            ca_bundle: PEM CA certificate the API server uses to trust this service.

        Returns:
            A configuration with a single webhook entry.

        """
        rules = [
            client.V1RuleWithOperations(
                operations=list(OPERATIONS),
                api_groups=[resource.group],
                api_versions=[resource.version],
                resources=[resource.resource],
            )
            for resource in self.resources
        ]
        webhook = client.V1MutatingWebhook(
            name=f"{self.name}.{WEBHOOK_DOMAIN}",
            client_config=client.AdmissionregistrationV1WebhookClientConfig(
                ca_bundle=base64.b64encode(ca_bundle).decode(),
                service=client.AdmissionregistrationV1ServiceReference(
                    namespace=self.namespace,
                    name=self.service_name,
                    port=SERVICE_PORT,
                    path=MUTATE_PATH,
                ),
            ),
            admission_review_versions=["v1"],
            timeout_seconds=TIMEOUT_SECONDS,
            rules=rules,
            failure_policy=FAILURE_POLICY,
            side_effects=SIDE_EFFECTS,
        )
        return client.V1MutatingWebhookConfiguration(
            metadata=client.V1ObjectMeta(name=self.name),
            webhooks=[webhook],
        )

    def ensure_registered(self, ca_bundle: bytes) -> bool:
        """Create the webhook configuration unless it already exists.

        Args:
            ca_bundle: PEM CA certificate to embed on creation.

        Returns:
            True if the configuration was created by this call.

        Raises:
            WebhookRegistrationError: If the lookup fails for any reason other
                than not found, or the create call fails.

        """
        try:
            existing = self._api.read_mutating_webhook_configuration(self.name)
        except ApiException as e:
            if e.status != 404:
                raise WebhookRegistrationError(
                    f"Failed to look up mutatingwebhookconfiguration/{self.name}: {e.reason}"
                ) from e
        except MaxRetryError as e:
            raise WebhookRegistrationError(f"Failed to connect to the Kubernetes cluster: {e.reason}") from e
        else:
            self._warn_on_stale_bundle(existing, ca_bundle)
            return False

        body = self.build_configuration(ca_bundle)
        ic(body.webhooks[0].name, body.webhooks[0].rules)
        try:
            self._api.create_mutating_webhook_configuration(body)
        except ApiException as e:
            raise WebhookRegistrationError(
                f"Failed to create mutatingwebhookconfiguration/{self.name}: {e.reason}"
            ) from e
        except MaxRetryError as e:
            raise WebhookRegistrationError(f"Failed to connect to the Kubernetes cluster: {e.reason}") from e
        console.success(f"Created mutating webhook configuration {console.highlight(self.name)}")
        return True

    def _warn_on_stale_bundle(self, existing: client.V1MutatingWebhookConfiguration, ca_bundle: bytes) -> None:
        webhooks = existing.webhooks or []
        if not webhooks or webhooks[0].client_config is None or not webhooks[0].client_config.ca_bundle:
            return
        try:
            registered = base64.b64decode(webhooks[0].client_config.ca_bundle)
        except ValueError:
            registered = b""
        if registered != ca_bundle:
            console.warning(
                f"mutatingwebhookconfiguration/{self.name} trusts a different CA bundle; "
                "it is not updated automatically"
            )
