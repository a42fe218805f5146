"""Self-signed certificate authority.

Issues the CA and serving certificates the admission webhook needs and
checks existing material against the CA, a verification time and the
expected DNS names.
"""

import datetime
from collections.abc import Callable, Sequence

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.asymmetric.types import CertificateIssuerPrivateKeyTypes
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID
from cryptography.x509.verification import PolicyBuilder, Store, VerificationError

from tfo_plugin_manager.exceptions import CertificateMaterialError, GenerationError
from tfo_plugin_manager.models import CertificateBundle

CA_COMMON_NAME = "terraform-operator-plugin-manager-ca"
CA_VALIDITY = datetime.timedelta(days=3650)
LEAF_VALIDITY = datetime.timedelta(days=365)
# Certificates are treated as expired this long before their real expiry
ROTATION_WINDOW = datetime.timedelta(days=30)
_KEY_SIZE = 2048


def utcnow() -> datetime.datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.datetime.now(datetime.timezone.utc)


def load_private_key(data: bytes) -> CertificateIssuerPrivateKeyTypes:
    """Decode a PEM private key.

    Args:
        data: PEM bytes.

    Returns:
        The private key object.

    Raises:
        CertificateMaterialError: If the bytes are not an unencrypted PEM private key.

    """
    try:
        return serialization.load_pem_private_key(data, password=None)  # type: ignore[return-value]
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise CertificateMaterialError(f"not a PEM private key: {e}") from e


def load_certificate(data: bytes) -> x509.Certificate:
    """Decode a PEM certificate.

    Args:
        data: PEM bytes.

    Returns:
        The certificate object.

    Raises:
        CertificateMaterialError: If the bytes are not a PEM certificate.

    """
    try:
        return x509.load_pem_x509_certificate(data)
    except ValueError as e:
        raise CertificateMaterialError(f"not a PEM certificate: {e}") from e


def certificate_dns_names(cert: x509.Certificate) -> list[str]:
    """Return the DNS subject alternative names of a certificate."""
    try:
        san = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
    except x509.ExtensionNotFound:
        return []
    return san.get_values_for_type(x509.DNSName)


def certificate_subject(cert: x509.Certificate) -> str:
    """Return the RFC 4514 subject of a certificate for log messages."""
    return cert.subject.rfc4514_string()


def _pem_key(key: rsa.RSAPrivateKey) -> bytes:
    """Serialize a private key as an unencrypted PKCS#1 PEM block."""
    return key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.TraditionalOpenSSL,
        serialization.NoEncryption(),
    )


def _pem_cert(cert: x509.Certificate) -> bytes:
    """Serialize a certificate as PEM."""
    return cert.public_bytes(serialization.Encoding.PEM)


class CertificateAuthority:
    """Issues self-signed CA and CA-signed serving certificates.

    Attributes:
        ca_validity: Lifetime of a newly generated CA certificate.
        leaf_validity: Lifetime of a newly issued serving certificate.

    """

    def __init__(
        self,
        *,
        ca_validity: datetime.timedelta = CA_VALIDITY,
        leaf_validity: datetime.timedelta = LEAF_VALIDITY,
        clock: Callable[[], datetime.datetime] = utcnow,
    ) -> None:
        self.ca_validity = ca_validity
        self.leaf_validity = leaf_validity
        self._clock = clock

    def __repr__(self) -> str:
        """Return a detailed string representation for debugging."""
        return f"CertificateAuthority(ca_validity={self.ca_validity!r}, leaf_validity={self.leaf_validity!r})"

    def generate(self, dns_names: Sequence[str]) -> CertificateBundle:
        """Generate a new CA and a serving certificate signed by it.

        Args:
            dns_names: DNS names for the serving certificate; the first one
                       is also its common name.

        Returns:
            A bundle with the CA key/certificate and the serving key/certificate.

        Raises:
            GenerationError: If ``dns_names`` is empty, or key generation or signing fails.

        """
        if not dns_names:
            raise GenerationError("At least one DNS name is required")
        try:
            ca_key = rsa.generate_private_key(public_exponent=65537, key_size=_KEY_SIZE)
            ca_cert = self._build_ca_certificate(ca_key)
        except (ValueError, TypeError, UnsupportedAlgorithm) as e:
            raise GenerationError(f"Failed to generate CA certificate: {e}") from e
        return self._issue(ca_key, ca_cert, dns_names)

    def reissue(self, bundle: CertificateBundle, dns_names: Sequence[str]) -> CertificateBundle:
        """Issue a new serving certificate with the CA of an existing bundle.

        Args:
            bundle: The bundle whose CA key and certificate sign the new leaf.
            dns_names: DNS names for the new serving certificate.

        Returns:
            A bundle with the unchanged CA and a fresh serving key/certificate.

        Raises:
            GenerationError: If the existing CA cannot be loaded or signing fails.

        """
        if not dns_names:
            raise GenerationError("At least one DNS name is required")
        try:
            ca_key = load_private_key(bundle.ca_key)
            ca_cert = load_certificate(bundle.ca_cert)
        except CertificateMaterialError as e:
            raise GenerationError(f"Existing CA cannot sign a new certificate: {e}") from e
        return self._issue(ca_key, ca_cert, dns_names, ca_pem=(bundle.ca_key, bundle.ca_cert))

    def _build_ca_certificate(self, ca_key: rsa.RSAPrivateKey) -> x509.Certificate:
        now = self._clock()
        name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, CA_COMMON_NAME)])
        return (
            x509.CertificateBuilder()
            .subject_name(name)
            .issuer_name(name)
            .public_key(ca_key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now - datetime.timedelta(minutes=5))
            .not_valid_after(now + self.ca_validity)
            .add_extension(x509.BasicConstraints(ca=True, path_length=0), critical=True)
            .add_extension(
                x509.KeyUsage(
                    digital_signature=True,
                    content_commitment=False,
                    key_encipherment=False,
                    data_encipherment=False,
                    key_agreement=False,
                    key_cert_sign=True,
                    crl_sign=True,
                    encipher_only=False,
                    decipher_only=False,
                ),
                critical=True,
            )
            .add_extension(x509.SubjectKeyIdentifier.from_public_key(ca_key.public_key()), critical=False)
            .sign(ca_key, hashes.SHA256())
        )

    def _issue(
        self,
        ca_key: CertificateIssuerPrivateKeyTypes,
        ca_cert: x509.Certificate,
        dns_names: Sequence[str],
        *,
        ca_pem: tuple[bytes, bytes] | None = None,
    ) -> CertificateBundle:
        now = self._clock()
        try:
            tls_key = rsa.generate_private_key(public_exponent=65537, key_size=_KEY_SIZE)
            tls_cert = (
                x509.CertificateBuilder()
                .subject_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, dns_names[0])]))
                .issuer_name(ca_cert.subject)
                .public_key(tls_key.public_key())
                .serial_number(x509.random_serial_number())
                .not_valid_before(now - datetime.timedelta(minutes=5))
                .not_valid_after(now + self.leaf_validity)
                .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
                .add_extension(
                    x509.KeyUsage(
                        digital_signature=True,
                        content_commitment=False,
                        key_encipherment=True,
                        data_encipherment=False,
                        key_agreement=False,
                        key_cert_sign=False,
                        crl_sign=False,
                        encipher_only=False,
                        decipher_only=False,
                    ),
                    critical=True,
                )
                .add_extension(x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH]), critical=False)
                .add_extension(x509.SubjectAlternativeName([x509.DNSName(n) for n in dns_names]), critical=False)
                .add_extension(
                    x509.AuthorityKeyIdentifier.from_issuer_public_key(ca_cert.public_key()),  # type: ignore[arg-type]
                    critical=False,
                )
                .sign(ca_key, hashes.SHA256())
            )
        except (ValueError, TypeError, UnsupportedAlgorithm) as e:
            raise GenerationError(f"Failed to sign TLS certificate for {dns_names[0]}: {e}") from e

        if ca_pem is None:
            ca_pem = (_pem_key(ca_key), _pem_cert(ca_cert))  # type: ignore[arg-type]
        return CertificateBundle(
            ca_key=ca_pem[0],
            ca_cert=ca_pem[1],
            tls_key=_pem_key(tls_key),
            tls_cert=_pem_cert(tls_cert),
        )


def verify_certificate(
    ca_cert: bytes,
    tls_cert: bytes,
    dns_name: str,
    *,
    at: datetime.datetime,
) -> None:
    """Verify that a serving certificate chains to the CA for a DNS name at a given time.

    Args:
        ca_cert: PEM CA certificate used as the only trust anchor.
        tls_cert: PEM serving certificate.
        dns_name: The name the certificate must be valid for.
        at: The verification time.

    Raises:
        CertificateMaterialError: If either certificate cannot be decoded.
        VerificationError: If the chain, the name or the validity window does not verify.

    """
    root = load_certificate(ca_cert)
    leaf = load_certificate(tls_cert)
    verifier = PolicyBuilder().store(Store([root])).time(at).build_server_verifier(x509.DNSName(dns_name))
    verifier.verify(leaf, [])


def is_certificate_valid(
    ca_cert: bytes,
    tls_cert: bytes,
    dns_names: Sequence[str],
    *,
    now: datetime.datetime | None = None,
) -> tuple[bool, str]:
    """Check whether a serving certificate is still good for at least the rotation window.

    The certificate must verify against the CA for the first DNS name
    ``ROTATION_WINDOW`` from ``now``, and carry exactly ``dns_names``.

    Args:
        ca_cert: PEM CA certificate.
        tls_cert: PEM serving certificate.
        dns_names: Expected DNS names, first one used for verification.
        now: Current time; defaults to the wall clock.

    Returns:
        A ``(valid, reason)`` pair; ``reason`` is empty when valid.

    """
    at = (now or utcnow()) + ROTATION_WINDOW
    try:
        verify_certificate(ca_cert, tls_cert, dns_names[0], at=at)
    except CertificateMaterialError as e:
        return False, str(e)
    except VerificationError as e:
        return False, f"failed to verify certificate: {e}"

    found = certificate_dns_names(load_certificate(tls_cert))
    if set(found) != set(dns_names):
        return False, f"certificate DNS names {sorted(found)} do not match {sorted(dns_names)}"
    return True, ""


def is_ca_valid(ca_cert: bytes, *, now: datetime.datetime | None = None) -> bool:
    """Return True if the CA certificate decodes and outlives the rotation window."""
    try:
        cert = load_certificate(ca_cert)
    except CertificateMaterialError:
        return False
    return cert.not_valid_after_utc > (now or utcnow()) + ROTATION_WINDOW
