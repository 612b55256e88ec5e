import logging
from typing import Any

import httpx

from .errors import ContentStoreConnectionError, PinError

logger = logging.getLogger(__name__)


class PinRequester:
    """Pins content on an IPFS Kubo node through its HTTP RPC API.

    A pin either succeeds or raises PinError; retrying is left to the caller.
    """

    API_PREFIX: str = "/api/v0"

    def __init__(self, api_url: str, pin_timeout: float = 300.0) -> None:
        """Initialize the pin requester.

        Args:
            api_url: Base URL of the Kubo RPC API (e.g. http://127.0.0.1:5001)
            pin_timeout: Timeout for a single pin request in seconds
        """
        self.api_url: str = api_url.rstrip('/')
        self.pin_timeout: float = pin_timeout

    async def _rpc_post(self, command: str, params: dict[str, str], timeout: float) -> Any:
        """Post a command to the Kubo RPC API.

        Kubo only accepts POST for RPC commands; arguments go in the query
        string.

        Args:
            command: RPC command path (e.g. "pin/add")
            params: Query parameters
            timeout: Request timeout in seconds

        Returns:
            JSON response from the node

        Raises:
            httpx.HTTPError: If the request fails
        """
        full_url: str = f"{self.api_url}{self.API_PREFIX}/{command}"
        logger.debug(f"Posting to {full_url}: {params}")

        # No keep-alive, each call gets a fresh connection
        async with httpx.AsyncClient(timeout=timeout) as client:
            response: httpx.Response = await client.post(full_url, params=params)
            response.raise_for_status()
            return response.json()

    @staticmethod
    def _error_message(error: Exception) -> str:
        if isinstance(error, httpx.HTTPStatusError):
            try:
                body = error.response.json()
            except ValueError:
                body = None
            if isinstance(body, dict) and body.get("Message"):
                return f"HTTP {error.response.status_code}: {body['Message']}"
            return f"HTTP {error.response.status_code}"
        if isinstance(error, httpx.TimeoutException):
            return f"timed out: {error!r}"
        return str(error) or repr(error)

    async def check_connection(self) -> str:
        """Verify the node is reachable.

        Returns:
            Kubo version string

        Raises:
            ContentStoreConnectionError: If the node is unreachable
        """
        try:
            response: dict[str, Any] = await self._rpc_post("version", {}, timeout=30.0)
        except (httpx.HTTPError, ValueError) as e:
            raise ContentStoreConnectionError(
                f"Unable to connect to IPFS endpoint {self.api_url}: {self._error_message(e)}"
            ) from e

        version: str = str(response.get("Version", "unknown"))
        logger.info(f"Connected to IPFS node at {self.api_url} (version {version})")
        return version

    async def pin(self, path: str) -> None:
        """Add a path to the node's pin set.

        Args:
            path: IPFS path to pin (e.g. /ipfs/bafy...)

        Raises:
            PinError: If the node fails or rejects the request
        """
        try:
            response: dict[str, Any] = await self._rpc_post(
                "pin/add", {"arg": path}, timeout=self.pin_timeout
            )
        except (httpx.HTTPError, ValueError) as e:
            raise PinError(f"Unable to pin {path}: {self._error_message(e)}") from e

        logger.debug(f"Pin response for {path}: {response}")
