#!/usr/bin/env python
"""Command-line interface for tfo-plugin-manager.

This module provides the main entry point: it parses flags, starts the
certificate lifecycle loop, waits for a valid certificate and then serves
the admission webhook.
"""

import sys
from pathlib import Path

import click
from icecream import ic

from tfo_plugin_manager import __version__, console
from tfo_plugin_manager.certs.authority import CertificateAuthority
from tfo_plugin_manager.certs.lifecycle import CertificateLifecycleManager
from tfo_plugin_manager.certs.store import SecretStore
from tfo_plugin_manager.cluster import Cluster
from tfo_plugin_manager.config import DEFAULT_NAME, Settings
from tfo_plugin_manager.exceptions import ClusterConnectionError
from tfo_plugin_manager.mutation.policy import MutationPolicyLoader
from tfo_plugin_manager.mutation.schema import SchemaRegistry
from tfo_plugin_manager.relay import CredentialRelay
from tfo_plugin_manager.server import app as server
from tfo_plugin_manager.server.admission import MutationService
from tfo_plugin_manager.webhook.registrar import WebhookRegistrar

_PATH = click.Path(path_type=Path)


def build_lifecycle_manager(cluster: Cluster, settings: Settings, schemas: SchemaRegistry) -> CertificateLifecycleManager:
    """Wire the certificate lifecycle manager to the cluster.

    Args:
        cluster: Provides the API clients.
        settings: Process configuration.
        schemas: Resources the webhook registration routes here.

    Returns:
        A lifecycle manager that has not been started.

    """
    store = SecretStore(cluster.core_v1, name=settings.secret_name, namespace=settings.namespace)
    registrar = WebhookRegistrar(
        cluster.admission_registration_v1,
        name=settings.webhook_configuration_name,
        service_name=settings.service_name,
        namespace=settings.namespace,
        resources=schemas.resources,
    )
    return CertificateLifecycleManager(
        authority=CertificateAuthority(),
        store=store,
        registrar=registrar,
        mounted=settings.mounted_paths,
        dns_names=settings.dns_names,
    )


def serve(settings: Settings, *, kubeconfig: str | None) -> None:
    """Run the service until the process is stopped.

    Args:
        settings: Process configuration.
        kubeconfig: Optional kubeconfig path; in-cluster config otherwise.

    Raises:
        ClusterConnectionError: If no API client can be configured.

    """
    cluster = Cluster(kubeconfig=kubeconfig)
    schemas = SchemaRegistry.default()

    manager = build_lifecycle_manager(cluster, settings, schemas)
    manager.start()
    console.action(f"Waiting for valid certificates in {console.highlight(f'secret/{settings.secret_name}')}")
    manager.wait_until_ready()

    service = MutationService(MutationPolicyLoader(settings.plugin_mutations_dir), schemas)
    relay = CredentialRelay(settings.api_service_host, settings.api_username, settings.api_password)
    server.run(server.create_app(service, relay), settings)


@click.command(help="Inject Terraform Operator plugins through a self-managed mutating webhook")
@click.option("--version", "-v", required=False, is_flag=True, help="print version")
@click.option("--debug", required=False, is_flag=True, help="print debug information")
@click.option("--ca-key", type=_PATH, default="/etc/certs/ca.key", show_default=True, help="Path to the CA key")
@click.option(
    "--ca-cert", type=_PATH, default="/etc/certs/ca.crt", show_default=True, help="Path to the CA certificate"
)
@click.option("--tls-key", type=_PATH, default="/etc/certs/tls.key", show_default=True, help="Path to the TLS key")
@click.option(
    "--tls-cert", type=_PATH, default="/etc/certs/tls.crt", show_default=True, help="Path to the TLS certificate"
)
@click.option(
    "--secret-name",
    default=f"{DEFAULT_NAME}-certs",
    show_default=True,
    help="Name of the secret used to mount certs",
)
@click.option("--namespace", default="tf-system", show_default=True, help="Namespace the service is deployed into")
@click.option(
    "--mutating-webhook-configuration-name",
    default=DEFAULT_NAME,
    show_default=True,
    help="Name of webhook resource",
)
@click.option(
    "--service-name",
    default=DEFAULT_NAME,
    show_default=True,
    help="Name of the service to back up mutating webhook configuration",
)
@click.option(
    "--plugin-mutations",
    type=_PATH,
    default="/plugins",
    show_default=True,
    help="Directory of plugin mutation files",
)
@click.option(
    "--api",
    default="http://terraform-operator-api.tf-system.svc",
    show_default=True,
    help="TFO api host - proto://host:port",
)
@click.option("--api-username", envvar="API_USERNAME", default="", help="TFO api username [env: API_USERNAME]")
@click.option("--api-password", envvar="API_PASSWORD", default="", help="TFO api password [env: API_PASSWORD]")
@click.option("--host", default="0.0.0.0", show_default=True, help="Address to listen on")  # noqa: S104
@click.option("--port", type=int, default=8443, show_default=True, help="Port to listen on")
@click.option("--kubeconfig", envvar="KUBECONFIG", default=None, help="kubeconfig path; in-cluster config if unset")
def cli(
    version: bool,
    debug: bool,
    ca_key: Path,
    ca_cert: Path,
    tls_key: Path,
    tls_cert: Path,
    secret_name: str,
    namespace: str,
    mutating_webhook_configuration_name: str,
    service_name: str,
    plugin_mutations: Path,
    api: str,
    api_username: str,
    api_password: str,
    host: str,
    port: int,
    kubeconfig: str | None,
) -> None:
    """Process CLI arguments and run the service.

    Args:
        version: Print version and exit.
        debug: Enable debug output.
        ca_key: Mounted CA key path.
        ca_cert: Mounted CA certificate path.
        tls_key: Mounted TLS key path.
        tls_cert: Mounted TLS certificate path.
        secret_name: Secret holding the certificates.
        namespace: Namespace of the service.
        mutating_webhook_configuration_name: Webhook configuration name.
        service_name: Service fronting this process.
        plugin_mutations: Policy directory.
        api: Terraform Operator API base URL.
        api_username: Relay username.
        api_password: Relay password.
        host: Listener address.
        port: Listener port.
        kubeconfig: Optional kubeconfig path.

    """
    if not debug:
        ic.disable()

    if version:
        click.echo(__version__)
        return

    console.configure_logging(debug=debug)
    settings = Settings(
        ca_key_file=ca_key,
        ca_cert_file=ca_cert,
        tls_key_file=tls_key,
        tls_cert_file=tls_cert,
        secret_name=secret_name,
        namespace=namespace,
        webhook_configuration_name=mutating_webhook_configuration_name,
        service_name=service_name,
        plugin_mutations_dir=plugin_mutations,
        api_service_host=api,
        api_username=api_username,
        api_password=api_password,
        host=host,
        port=port,
    )
    ic(settings)

    try:
        serve(settings, kubeconfig=kubeconfig)
    except ClusterConnectionError as e:
        console.error(f"Cluster connection failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    cli()
