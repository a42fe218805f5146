"""Terraform Operator API credential relay.

Logs in to the Terraform Operator API with the configured credentials and
hands the resulting token to callers inside the cluster.
"""

import warnings
from typing import Any

import requests
from icecream import ic
from urllib3.exceptions import InsecureRequestWarning

from tfo_plugin_manager.exceptions import RelayError

_LOGIN_TIMEOUT = 30


class CredentialRelay:
    """Exchanges the configured username and password for an API token.

    Attributes:
        api_service_host: API base URL (``proto://host:port``).

    """

    def __init__(
        self,
        api_service_host: str,
        username: str,
        password: str,
        *,
        session: requests.Session | None = None,
    ) -> None:
        self.api_service_host = api_service_host.rstrip("/")
        self._username = username
        self._password = password
        self._session = session or requests.Session()

    def __repr__(self) -> str:
        """Return a detailed string representation for debugging."""
        return f"CredentialRelay(api_service_host={self.api_service_host!r})"

    def fetch_token(self) -> str:
        """Log in and return the first token of the response.

        Returns:
            The API token.

        Raises:
            RelayError: If the request fails, does not answer 200, or
                carries no token.

        """
        url = f"{self.api_service_host}/login"
        ic(url)
        try:
            with warnings.catch_warnings():
                warnings.simplefilter("ignore", InsecureRequestWarning)
                response = self._session.post(
                    url,
                    json={"user": self._username, "password": self._password},
                    headers={"Content-Type": "application/json; charset=UTF-8"},
                    verify=False,  # noqa: S501
                    timeout=_LOGIN_TIMEOUT,
                )
        except requests.RequestException as e:
            raise RelayError(f"Request to {url} failed: {e}") from e

        if response.status_code != 200:
            raise RelayError(f"Request to {url} returned a {response.status_code} but expected 200")

        try:
            data = response.json()["data"]
            token = data[0]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise RelayError(f"Response from {url} carries no token") from e
        return str(token)

    def token_payload(self) -> dict[str, Any]:
        """Return the relay response body.

        Raises:
            RelayError: Propagated from ``fetch_token``.

        """
        return {"host": self.api_service_host, "token": self.fetch_token()}
