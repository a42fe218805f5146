"""Certificate lifecycle subpackage.

This package contains the self-signed certificate authority, the
secret-backed bundle store and the polling lifecycle manager.
"""

from tfo_plugin_manager.certs.authority import CertificateAuthority, is_certificate_valid
from tfo_plugin_manager.certs.lifecycle import CertificateLifecycleManager
from tfo_plugin_manager.certs.store import SecretStore

__all__ = [
    "CertificateAuthority",
    "CertificateLifecycleManager",
    "SecretStore",
    "is_certificate_valid",
]
