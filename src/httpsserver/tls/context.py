"""
Server-side SSLContext built from in-memory PEM material.

The ssl module can only load a certificate chain from files, so the PEM
text is written to a private temporary directory, loaded, and the
directory is removed before this function returns. Nothing outlives the
call.
"""

import logging
import os
import ssl
import tempfile

from .certificate import Certificate
from ..errors import StartupFailure


logger = logging.getLogger(__name__)


_TLS_VERSIONS = {
    "TLSv1.2": ssl.TLSVersion.TLSv1_2,
    "TLSv1.3": ssl.TLSVersion.TLSv1_3,
}


def create_server_context(
    certificate: Certificate,
    minimum_version: str = "TLSv1.2",
) -> ssl.SSLContext:
    """
    Create an SSLContext presenting the given certificate.

    No client certificate is requested.

    Args:
        certificate: Key material from CertificateProvider.
        minimum_version: "TLSv1.2" or "TLSv1.3".

    Returns:
        A server-side SSLContext.

    Raises:
        StartupFailure: If the key material cannot be loaded.
    """
    try:
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        context.minimum_version = _TLS_VERSIONS[minimum_version]
        context.verify_mode = ssl.CERT_NONE

        with tempfile.TemporaryDirectory(prefix="httpsserver-") as tmp:
            cert_path = os.path.join(tmp, "cert.pem")
            key_path = os.path.join(tmp, "key.pem")

            with open(cert_path, "w", encoding="ascii") as f:
                f.write(certificate.certificate_pem)

            # Owner-only before the key is written.
            fd = os.open(key_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
            with os.fdopen(fd, "w", encoding="ascii") as f:
                f.write(certificate.private_key_pem)

            context.load_cert_chain(certfile=cert_path, keyfile=key_path)
    except (KeyError, ssl.SSLError, OSError) as e:
        logger.error(f"Failed to build TLS context: {e}")
        raise StartupFailure(f"Failed to build TLS context: {e}") from e

    logger.debug(f"TLS context ready (minimum version {minimum_version})")
    return context
