"""HTTP session setup shared by the deps.dev client and POM downloads.

Requests are retried on connection errors and on 429/5xx responses. A custom
CA bundle can be given with the DEPCHECK_CA_BUNDLE environment variable, which
is needed behind TLS-inspecting corporate proxies.
"""

import logging
import os
import ssl
from typing import Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry
from urllib3.util.ssl_ import create_urllib3_context

from . import __version__

logger = logging.getLogger(__name__)

CA_BUNDLE_ENV = "DEPCHECK_CA_BUNDLE"
DEFAULT_TIMEOUT = 30
DEFAULT_RETRIES = 3


class RepositoryAdapter(HTTPAdapter):
    """HTTP adapter with retries and an optional extra CA bundle."""

    def __init__(self, ca_bundle: Optional[str] = None, retries: int = DEFAULT_RETRIES, **kwargs):
        self.ca_bundle = ca_bundle
        retry = Retry(
            total=retries,
            backoff_factor=0.5,
            status_forcelist=(429, 500, 502, 503, 504),
            allowed_methods=frozenset(["GET", "HEAD"]),
            raise_on_status=False,
        )
        super().__init__(max_retries=retry, **kwargs)

    def init_poolmanager(self, *args, **kwargs):
        """Initialize pool manager with a context that also trusts the CA bundle."""
        if self.ca_bundle:
            ctx = create_urllib3_context()
            ctx.load_default_certs()
            ctx.load_verify_locations(self.ca_bundle)
            # Proxy certificates often lack the key usage extensions OpenSSL 3 insists on
            ctx.verify_flags = ssl.VERIFY_DEFAULT
            kwargs['ssl_context'] = ctx
            logger.debug(f"Loaded CA bundle from {self.ca_bundle}")
        return super().init_poolmanager(*args, **kwargs)


def get_ca_bundle() -> Optional[str]:
    """CA bundle from the environment, if it points at an existing file."""
    path = os.environ.get(CA_BUNDLE_ENV)
    if path and os.path.exists(path):
        return path
    if path:
        logger.warning(f"{CA_BUNDLE_ENV} is set to {path} but the file does not exist")
    return None


def create_session(retries: int = DEFAULT_RETRIES) -> requests.Session:
    """Create a requests session for talking to package registries."""
    session = requests.Session()
    session.headers.update({
        "Accept": "application/json",
        "User-Agent": f"depcheck/{__version__}"
    })

    adapter = RepositoryAdapter(ca_bundle=get_ca_bundle(), retries=retries)
    session.mount('https://', adapter)
    session.mount('http://', adapter)
    return session
