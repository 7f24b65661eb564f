"""
TLS support: ephemeral certificate generation and the server SSLContext.
"""

from .certificate import Certificate, CertificateProvider
from .context import create_server_context

__all__ = [
    "Certificate",
    "CertificateProvider",
    "create_server_context",
]
