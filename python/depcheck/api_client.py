"""Client for interacting with the deps.dev API."""

import logging
from typing import Optional, Dict, Any
from urllib.parse import quote

import requests

from .models import ArtifactCoordinate
from .session import DEFAULT_TIMEOUT, create_session

logger = logging.getLogger(__name__)


class DepsDevClient:
    """Client for fetching resolved Maven dependency graphs from the deps.dev API."""

    BASE_URL = "https://api.deps.dev/v3/systems"
    SYSTEM = "maven"

    def __init__(self, timeout: int = DEFAULT_TIMEOUT):
        """Initialize the API client."""
        self.session = create_session()
        self.timeout = timeout

    def get_dependency_graph(self, artifact: ArtifactCoordinate) -> Optional[Dict[str, Any]]:
        """
        Get the resolved dependency graph of an artifact.

        Args:
            artifact: The artifact to fetch dependencies for

        Returns:
            JSON response containing nodes and edges, or None if request fails
        """
        # URL-encode the package name to handle special characters like ':'
        encoded_name = quote(artifact.ga, safe='')
        encoded_version = quote(artifact.version, safe='')
        url = (
            f"{self.BASE_URL}/{self.SYSTEM}/packages/{encoded_name}"
            f"/versions/{encoded_version}:dependencies"
        )

        logger.debug(f"Fetching dependency graph for {artifact.ga}:{artifact.version}")
        logger.debug(f"  URL: {url}")

        try:
            response = self.session.get(url, timeout=self.timeout)
            if response.status_code == 200:
                return response.json()
            else:
                logger.info(
                    f"Failed to get dependency graph for {artifact.ga}:{artifact.version}: "
                    f"HTTP {response.status_code}"
                )
                return None
        except requests.RequestException as e:
            logger.error(f"Error fetching dependencies for {artifact.ga}:{artifact.version}: {e}")
            return None

    def close(self):
        """Close the session and clean up resources."""
        self.session.close()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
