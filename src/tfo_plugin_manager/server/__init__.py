"""Webhook server subpackage.

This package contains the admission review flow and the Flask
application that exposes it.
"""

from tfo_plugin_manager.server.admission import MutationService
from tfo_plugin_manager.server.app import create_app, run

__all__ = [
    "MutationService",
    "create_app",
    "run",
]
