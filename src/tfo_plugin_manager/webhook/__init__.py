"""Webhook registration subpackage."""

from tfo_plugin_manager.webhook.registrar import WebhookRegistrar

__all__ = ["WebhookRegistrar"]
