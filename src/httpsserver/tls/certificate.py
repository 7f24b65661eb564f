"""
=============================================================================
EPHEMERAL SELF-SIGNED CERTIFICATES
=============================================================================

The server speaks HTTPS only, so it needs a key pair and a certificate
before the first byte is accepted. Rather than shipping key material on
disk, a fresh pair is generated every time the process starts.

=============================================================================
WHAT GOES INTO THE CERTIFICATE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     X.509 v3 (self-signed)                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Subject         CN=localhost                                      │
    │   Issuer          CN=localhost        (same as subject)             │
    │   Serial          16 random bytes     (secrets.token_bytes)         │
    │   Not Before      now                                               │
    │   Not After       now + 365 days                                    │
    │   Public Key      RSA 2048, e=65537                                 │
    │   Signature       sha256WithRSAEncryption                           │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Because issuer == subject and nothing else vouches for it, no client will
trust this certificate out of the box. Browsers show a warning; curl needs
-k. Every restart produces a new certificate, so the exception has to be
accepted again each run. That is fine for a development server and
deliberately not solved here.

=============================================================================
"""

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from ..errors import StartupFailure


logger = logging.getLogger(__name__)


KEY_SIZE = 2048
PUBLIC_EXPONENT = 65537
SERIAL_BYTES = 16
VALIDITY = timedelta(days=365)
COMMON_NAME = "localhost"


@dataclass(frozen=True)
class Certificate:
    """
    PEM-encoded key material for one process lifetime.

    Attributes:
        private_key_pem: Unencrypted PKCS#8 private key.
        certificate_pem: The self-signed certificate.
        not_before: Start of the validity window (UTC).
        not_after: End of the validity window (UTC).
        serial_number: Serial as 32 lowercase hex characters.
    """

    private_key_pem: str
    certificate_pem: str
    not_before: datetime
    not_after: datetime
    serial_number: str

    def __repr__(self) -> str:
        # Keep the private key out of logs and tracebacks.
        return (
            f"Certificate(serial_number={self.serial_number!r}, "
            f"not_before={self.not_before.isoformat()}, "
            f"not_after={self.not_after.isoformat()})"
        )


class CertificateProvider:
    """
    Generates the server's self-signed certificate.

    Usage:
        certificate = CertificateProvider().generate()
        context = create_server_context(certificate)

    generate() is called once at startup. Any failure is wrapped in
    StartupFailure: there is no fallback and no retry.
    """

    def __init__(self, common_name: str = COMMON_NAME, key_size: int = KEY_SIZE):
        self.common_name = common_name
        self.key_size = key_size

    def generate(self) -> Certificate:
        """
        Generate a key pair and a certificate signed by that same key.

        Returns:
            The PEM-encoded key and certificate with their metadata.

        Raises:
            StartupFailure: If any cryptographic step fails.
        """
        try:
            return self._generate()
        except Exception as e:
            logger.error(f"Certificate generation failed: {e}")
            raise StartupFailure(f"Certificate generation failed: {e}") from e

    def _generate(self) -> Certificate:
        # ─────────────────────────────────────────────────────────────────
        # KEY PAIR
        # ─────────────────────────────────────────────────────────────────
        key = rsa.generate_private_key(
            public_exponent=PUBLIC_EXPONENT,
            key_size=self.key_size,
        )

        # ─────────────────────────────────────────────────────────────────
        # IDENTITY AND VALIDITY
        # ─────────────────────────────────────────────────────────────────
        # X.509 times have one-second resolution; dropping microseconds
        # keeps not_after - not_before at exactly 365 days once encoded.
        name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, self.common_name)])
        not_before = datetime.now(timezone.utc).replace(microsecond=0)
        not_after = not_before + VALIDITY
        serial = self._random_serial()

        # ─────────────────────────────────────────────────────────────────
        # BUILD AND SELF-SIGN
        # ─────────────────────────────────────────────────────────────────
        certificate = (
            x509.CertificateBuilder()
            .subject_name(name)
            .issuer_name(name)
            .public_key(key.public_key())
            .serial_number(int.from_bytes(serial, "big"))
            .not_valid_before(not_before)
            .not_valid_after(not_after)
            .sign(key, hashes.SHA256())
        )

        private_key_pem = key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        ).decode("ascii")
        certificate_pem = certificate.public_bytes(serialization.Encoding.PEM).decode("ascii")

        logger.info(
            f"Generated self-signed certificate for CN={self.common_name} "
            f"(serial {serial.hex()}, valid until {not_after.isoformat()})"
        )

        return Certificate(
            private_key_pem=private_key_pem,
            certificate_pem=certificate_pem,
            not_before=not_before,
            not_after=not_after,
            serial_number=serial.hex(),
        )

    @staticmethod
    def _random_serial() -> bytes:
        # RFC 5280 serials must be positive; all-zero bytes would encode 0.
        while True:
            serial = secrets.token_bytes(SERIAL_BYTES)
            if any(serial):
                return serial
