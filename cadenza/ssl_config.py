"""HTTP session setup, including corporate environments with SSL inspection.

OpenSSL 3.x introduced strict certificate validation that rejects certificates
without proper key usage extensions. Corporate SSL inspection proxies like
Netskope often use certificates that fail this strict validation, which breaks
every request to the package registry.

This module provides a configured requests session that works with such proxies.
"""

import os
import ssl
import logging
from typing import Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.ssl_ import create_urllib3_context

from . import __version__
from .config import Constants

logger = logging.getLogger(__name__)

USER_AGENT = f"cadenza/{__version__}"

# Known corporate SSL inspection cert bundle locations
CORPORATE_CERT_PATHS = [
    "/Library/Application Support/Netskope/STAgent/data/netskope-cert-bundle.pem",  # Netskope macOS
    "/etc/netskope/cert-bundle.pem",  # Netskope Linux
]


def get_corporate_cert_path() -> Optional[str]:
    """Find the corporate SSL certificate bundle if present.

    An explicit CADENZA_CA_BUNDLE always wins over the well-known locations.
    """
    explicit = os.environ.get(Constants.ENV_CA_BUNDLE)
    if explicit:
        if os.path.exists(explicit):
            return explicit
        logger.warning(f"{Constants.ENV_CA_BUNDLE} points to a missing file: {explicit}")

    for path in CORPORATE_CERT_PATHS:
        if os.path.exists(path):
            return path
    return None


class CorporateSSLAdapter(HTTPAdapter):
    """HTTP adapter that works with corporate SSL inspection proxies.

    This adapter creates an SSL context with relaxed verification flags
    to work around OpenSSL 3.x strict key usage extension requirements.
    """

    def __init__(self, cert_path: Optional[str] = None, **kwargs):
        self.cert_path = cert_path or get_corporate_cert_path()
        super().__init__(**kwargs)

    def init_poolmanager(self, *args, **kwargs):
        """Initialize pool manager with custom SSL context."""
        ctx = create_urllib3_context()
        ctx.load_default_certs()

        if self.cert_path and os.path.exists(self.cert_path):
            ctx.load_verify_locations(self.cert_path)
            logger.debug(f"Loaded corporate cert bundle from {self.cert_path}")

        # Drop VERIFY_X509_STRICT (OpenSSL 3.x key usage checks)
        ctx.verify_flags = ssl.VERIFY_DEFAULT

        kwargs['ssl_context'] = ctx
        return super().init_poolmanager(*args, **kwargs)


def create_session(accept: str = "application/json") -> requests.Session:
    """Create a requests session for registry, archive and advisory traffic.

    Returns:
        A requests.Session with cadenza's headers that works with corporate
        SSL inspection proxies.
    """
    session = requests.Session()
    session.headers.update({
        "Accept": accept,
        "User-Agent": USER_AGENT,
    })

    cert_path = get_corporate_cert_path()
    if cert_path:
        logger.info(f"Detected corporate SSL environment, using {cert_path}")
        session.mount('https://', CorporateSSLAdapter(cert_path=cert_path))

    return session
