"""Certificate lifecycle management.

The CertificateLifecycleManager polls the mounted certificate files and the
backing secret, rotates expiring certificates, registers the webhook once
the certificate is valid, and signals readiness so the TLS listener can
start.
"""

import datetime
import threading
from collections.abc import Callable, Sequence
from concurrent.futures import Future
from pathlib import Path

from icecream import ic

from tfo_plugin_manager import console
from tfo_plugin_manager.certs.authority import (
    CertificateAuthority,
    certificate_subject,
    is_ca_valid,
    is_certificate_valid,
    load_certificate,
    load_private_key,
    utcnow,
)
from tfo_plugin_manager.certs.store import SecretStore
from tfo_plugin_manager.exceptions import (
    CertificateMaterialError,
    GenerationError,
    SecretStoreError,
    WebhookRegistrationError,
)
from tfo_plugin_manager.models import CertificateBundle, LifecycleState, MountedCertificatePaths
from tfo_plugin_manager.webhook.registrar import WebhookRegistrar


def _file_exists_and_is_not_empty(path: Path) -> bool:
    try:
        return path.stat().st_size > 0
    except OSError:
        return False


class CertificateLifecycleManager:
    """Polling state machine that keeps the webhook TLS material valid.

    One cycle runs at a time; the interval before the next cycle depends on
    the state the cycle ended in (see ``LifecycleState.recheck_after``).

    Attributes:
        state: The state the last cycle ended in.
        ready: Resolved with True on the first healthy cycle.

    """

    def __init__(
        self,
        *,
        authority: CertificateAuthority,
        store: SecretStore,
        registrar: WebhookRegistrar,
        mounted: MountedCertificatePaths,
        dns_names: Sequence[str],
        clock: Callable[[], datetime.datetime] = utcnow,
    ) -> None:
        if not dns_names:
            raise ValueError("dns_names must not be empty")
        self._authority = authority
        self._store = store
        self._registrar = registrar
        self._mounted = mounted
        self._dns_names = list(dns_names)
        self._clock = clock
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self.state: LifecycleState = LifecycleState.WAITING_FOR_MATERIAL
        self.ready: Future[bool] = Future()

    def __repr__(self) -> str:
        """Return a detailed string representation for debugging."""
        return f"CertificateLifecycleManager(state={self.state.value!r}, store={self._store!r})"

    def _read_mounted(self) -> CertificateBundle | None:
        """Read the mounted bundle, or None if any file is missing or empty."""
        paths = self._mounted
        if not all(_file_exists_and_is_not_empty(p) for p in paths):
            return None
        try:
            return CertificateBundle(
                ca_key=paths.ca_key.read_bytes(),
                ca_cert=paths.ca_cert.read_bytes(),
                tls_key=paths.tls_key.read_bytes(),
                tls_cert=paths.tls_cert.read_bytes(),
            )
        except OSError as e:
            console.warning(f"Failed to read mounted certs: {e}")
            return None

    def _validate_format(self, bundle: CertificateBundle) -> bool:
        """Check each mounted blob decodes as the key or certificate it should be."""
        checks = (
            (self._mounted.ca_key, bundle.ca_key, load_private_key),
            (self._mounted.ca_cert, bundle.ca_cert, load_certificate),
            (self._mounted.tls_key, bundle.tls_key, load_private_key),
            (self._mounted.tls_cert, bundle.tls_cert, load_certificate),
        )
        for path, data, loader in checks:
            try:
                loader(data)
            except CertificateMaterialError as e:
                console.warning(f"Failed to parse '{path}': {e}")
                return False
        return True

    def _rotate(self, stored: CertificateBundle) -> None:
        """Write a renewed bundle to the secret, keeping the CA when it is still valid."""
        now = self._clock()
        if is_ca_valid(stored.ca_cert, now=now):
            renewed = self._authority.reissue(stored, self._dns_names)
        else:
            console.warning("CA certificate is expiring or unreadable; generating a new CA")
            renewed = self._authority.generate(self._dns_names)
        self._store.update(renewed)

    def _signal_ready(self) -> None:
        if self.ready.done():
            return
        self.ready.set_result(True)
        console.success("Certificates are valid; webhook server may start")

    def run_cycle(self) -> LifecycleState:
        """Run one polling cycle.

        Returns:
            The state the cycle ended in; also stored on ``self.state``.

        """
        self.state = self._cycle()
        return self.state

    def _cycle(self) -> LifecycleState:
        try:
            stored = self._store.get_or_create(lambda: self._authority.generate(self._dns_names))
        except (SecretStoreError, GenerationError) as e:
            console.error(f"Failed to get or create secret/{self._store.name}: {e}")
            return LifecycleState.WAITING_FOR_MATERIAL

        mounted = self._read_mounted()
        if mounted is None:
            console.info("Waiting for certs to be mounted")
            return LifecycleState.WAITING_FOR_MATERIAL

        if not self._validate_format(mounted):
            return LifecycleState.VALIDATING

        differing = mounted.differing_fields(stored)
        if differing:
            ic(differing)
            console.warning(
                f"Mounted certs do not match certs in 'secret/{self._store.name}' ({', '.join(differing)}). "
                "If this error continues, the pod may be misconfigured."
            )
            return LifecycleState.DRIFTED

        valid, reason = is_certificate_valid(mounted.ca_cert, mounted.tls_cert, self._dns_names, now=self._clock())
        if not valid:
            subject = certificate_subject(load_certificate(mounted.tls_cert))
            console.warning(f"Certificate {subject} is no longer valid: {reason}")
            console.action(f"Updating secret '{self._store.name}' with new certs")
            try:
                self._rotate(stored)
            except (SecretStoreError, GenerationError) as e:
                console.error(f"Failed to rotate certs in secret/{self._store.name}: {e}")
            return LifecycleState.ROTATING

        try:
            self._registrar.ensure_registered(mounted.ca_cert)
        except WebhookRegistrationError as e:
            console.error(str(e))
            return LifecycleState.VALIDATING

        self._signal_ready()
        return LifecycleState.HEALTHY

    def run(self) -> None:
        """Poll until ``stop`` is called. Blocks the calling thread."""
        while not self._stop.is_set():
            try:
                state = self.run_cycle()
            except Exception as e:  # noqa: BLE001
                console.error(f"Certificate cycle failed unexpectedly: {type(e).__name__}: {e}")
                self.state = state = LifecycleState.VALIDATING
            interval = state.recheck_after
            if state is LifecycleState.HEALTHY:
                console.info(f"Cert validation passed. Will re-check in {datetime.timedelta(seconds=interval)}")
            self._stop.wait(interval)

    def start(self) -> threading.Thread:
        """Run the polling loop on a daemon thread.

        Returns:
            The started thread.

        """
        if self._thread is not None and self._thread.is_alive():
            return self._thread
        self._stop.clear()
        self._thread = threading.Thread(target=self.run, name="cert-lifecycle", daemon=True)
        self._thread.start()
        return self._thread

    def stop(self) -> None:
        """Ask the polling loop to exit after the current cycle."""
        self._stop.set()

    def wait_until_ready(self, timeout: float | None = None) -> bool:
        """Block until the first healthy cycle.

        Args:
            timeout: Seconds to wait; None waits forever.

        Returns:
            True once ready.

        Raises:
            TimeoutError: If ``timeout`` elapses first.

        """
        return self.ready.result(timeout=timeout)
