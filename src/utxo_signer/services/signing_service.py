"""External signing service client — delegated transaction class.

The delegated transaction class is built and signed by an external service.
The signer hands it an opaque serialised request and receives an opaque
serialised response:
- POST {path} — request body in, signed transaction message out
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol, Self

import httpx

from utxo_signer.errors.signing_errors import DelegatedServiceError

if TYPE_CHECKING:
    from types import TracebackType

    from utxo_signer.config.settings import SigningServiceConfig

logger = logging.getLogger(__name__)


class SigningService(Protocol):
    """Anything able to build and sign a delegated transaction request."""

    def build_and_sign(self, request: bytes) -> bytes: ...


class HttpSigningService:
    """Synchronous HTTP client for an external signing service.

    Usage::

        with HttpSigningService(config) as service:
            response = service.build_and_sign(request_bytes)
    """

    def __init__(
        self,
        config: SigningServiceConfig,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the signing service client.

        Args:
            config: Service configuration (url, path, token, timeout).
            transport: Optional httpx transport (tests inject a mock here).
        """
        self._config = config
        self._transport = transport
        self._client: httpx.Client | None = None

    def connect(self) -> None:
        """Create the underlying HTTP client."""
        headers: dict[str, str] = {
            "Content-Type": "application/json",
        }
        if self._config.token:
            headers["Authorization"] = f"Bearer {self._config.token}"

        self._client = httpx.Client(
            base_url=self._config.url.rstrip("/"),
            headers=headers,
            timeout=self._config.timeout,
            transport=self._transport,
        )

    def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            self._client.close()
            self._client = None

    @property
    def is_connected(self) -> bool:
        """Check if the HTTP client is active."""
        return self._client is not None

    def __enter__(self) -> Self:
        self.connect()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def build_and_sign(self, request: bytes) -> bytes:
        """Send a serialised signing request and return the raw response body.

        Raises:
            DelegatedServiceError: On transport errors or non-2xx responses.
        """
        client = self._ensure_connected()

        try:
            response = client.post(self._config.path, content=request)
        except httpx.HTTPError as exc:
            msg = f"signing service request failed: {exc}"
            raise DelegatedServiceError(msg) from exc

        if not response.is_success:
            logger.warning(
                "Signing service rejected request: status=%d", response.status_code
            )
            msg = f"signing service returned {response.status_code}: {response.text}"
            raise DelegatedServiceError(msg)

        return response.content

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _ensure_connected(self) -> httpx.Client:
        """Return the HTTP client, raising if not connected."""
        if self._client is None:
            msg = "signing service not connected. Call connect() first."
            raise DelegatedServiceError(msg)
        return self._client
