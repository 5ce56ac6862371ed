"""Secret resolution: maps a secret name to an opaque reference, never to its value."""

import logging
import os
from typing import Optional, Protocol
import requests
from requests.exceptions import RequestException


class SecretResolver(Protocol):

    def resolve(self, name: str) -> Optional[str]:
        """Returns a reference the runtime can look up, or None when unknown"""
        ...


class EnvSecretResolver:
    """Secrets provided as environment variables of the simulation host"""

    def __init__(self, environ=None):
        self.environ = os.environ if environ is None else environ

    def resolve(self, name: str) -> Optional[str]:
        return name if name in self.environ else None


class HttpSecretResolver:
    """Asks the credential service whether a secret exists and which reference to use"""

    def __init__(self, base_url: Optional[str] = None, timeout: int = 5):
        self.base_url = (base_url or os.getenv("SECRETS_SERVICE_URL", "http://localhost:8100")).rstrip("/")
        self.timeout = timeout

    def resolve(self, name: str) -> Optional[str]:
        try:
            response = requests.get(f"{self.base_url}/secrets/{name}", timeout=self.timeout)
            if response.status_code == 404:
                return None
            response.raise_for_status()
        except RequestException as e:
            logging.error(f"Secret service unavailable, treating {name} as unresolved: {e}",
                          extra={"secret_name": name})
            return None

        return response.json().get("ref") or name
