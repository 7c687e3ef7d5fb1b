"""
Spreadsheet sink API client implementation.
"""

import logging
from typing import Any

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

logger = logging.getLogger(__name__)


class SinkError(Exception):
    """Base exception for sink client errors."""

    pass


class SinkAPIError(SinkError):
    """Sink answered, but not with a success response."""

    def __init__(self, status_code: int, message: str, response_body: str | None = None):
        self.status_code = status_code
        self.message = message
        self.response_body = response_body
        super().__init__(f"Sink API error {status_code}: {message}")


class SinkConnectionError(SinkError):
    """Failed to reach the sink (transport error or timeout)."""

    pass


class SinkNotConfiguredError(SinkError):
    """No endpoint configured; raised before any network round trip."""

    pass


def is_success(body: dict[str, Any]) -> bool:
    """Check a sink response body for an explicit success flag."""
    if body.get("success") is True:
        return True
    return str(body.get("status", "")).lower() in ("success", "ok")


class SheetsSinkClient:
    """
    Client for the spreadsheet web-app endpoint.

    Features:
    - Append a row (action=addRow)
    - Upload a receipt image (action=uploadImage)
    - Connect-phase retries only: addRow is not idempotent, so a request
      that may have reached the server is never replayed here
    """

    DEFAULT_TIMEOUT = 30

    def __init__(
        self,
        url: str | None,
        asset_url: str | None = None,
        timeout: int = DEFAULT_TIMEOUT,
        max_retries: int = 2,
        backoff_factor: float = 0.5,
    ):
        """
        Initialize sink client.

        Args:
            url: Row sink URL (e.g. "https://script.google.com/macros/s/<id>/exec")
            asset_url: Image sink URL; None disables image upload
            timeout: Request timeout in seconds
            max_retries: Maximum connect retry attempts
            backoff_factor: Backoff factor for retries
        """
        self.url = url.strip() if url else None
        self.asset_url = asset_url.strip() if asset_url else None
        self.timeout = timeout

        self.session = requests.Session()
        self.session.headers.update({"Accept": "application/json"})

        retry_strategy = Retry(
            total=max_retries,
            connect=max_retries,
            read=0,
            status=0,
            other=0,
            backoff_factor=backoff_factor,
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

    @property
    def is_configured(self) -> bool:
        return bool(self.url)

    @property
    def has_asset_sink(self) -> bool:
        return bool(self.asset_url)

    def _post(self, url: str | None, action: str, payload: dict[str, Any]) -> dict[str, Any]:
        """POST an action with a JSON body and return the decoded JSON response."""
        if not url:
            raise SinkNotConfiguredError(f"No sink URL configured for action '{action}'")

        logger.debug(f"Sink request: POST {url} action={action}")

        try:
            response = self.session.post(
                url,
                params={"action": action},
                json=payload,
                timeout=self.timeout,
            )
        except requests.exceptions.ConnectionError as e:
            logger.error(f"Connection error to sink ({action}): {e}")
            raise SinkConnectionError(f"Failed to connect to sink: {e}") from e
        except requests.exceptions.Timeout as e:
            logger.error(f"Timeout for sink ({action}): {e}")
            raise SinkConnectionError(f"Request to sink timed out: {e}") from e
        except requests.exceptions.RequestException as e:
            logger.error(f"Request error for sink ({action}): {e}")
            raise SinkError(f"Request failed: {e}") from e

        logger.debug(f"Response status: {response.status_code}")

        if not response.ok:
            logger.error(f"Sink error {response.status_code} for {action}: {response.reason}")
            raise SinkAPIError(
                status_code=response.status_code,
                message=response.reason or "HTTP error",
                response_body=response.text,
            )

        try:
            body = response.json()
        except ValueError as e:
            raise SinkAPIError(
                status_code=response.status_code,
                message="Response is not JSON",
                response_body=response.text,
            ) from e

        if not isinstance(body, dict):
            raise SinkAPIError(
                status_code=response.status_code,
                message=f"Unexpected response shape: {type(body).__name__}",
                response_body=response.text,
            )

        return body

    def upload_image(self, image_data: str, filename: str) -> str:
        """
        Upload a receipt image to the asset sink.

        Args:
            image_data: Image payload (data URI)
            filename: File name hint for the stored image

        Returns:
            Reference URL of the stored image

        Raises:
            SinkNotConfiguredError: If no asset sink is configured
            SinkError: On transport failure or a response without a URL
        """
        body = self._post(
            self.asset_url, "uploadImage", {"imageData": image_data, "filename": filename}
        )

        url = body.get("url")
        if body.get("success") is False or not url:
            raise SinkAPIError(
                status_code=200,
                message=str(body.get("error") or "Upload response has no url"),
                response_body=str(body),
            )

        logger.debug(f"Uploaded {filename} -> {url}")
        return str(url)

    def add_row(self, row: dict[str, Any]) -> dict[str, Any]:
        """
        Append a row to the spreadsheet.

        Returns:
            Decoded success response

        Raises:
            SinkNotConfiguredError: If no row sink is configured
            SinkError: On transport failure or a response without a success flag
        """
        body = self._post(self.url, "addRow", row)

        if not is_success(body):
            raise SinkAPIError(
                status_code=200,
                message=str(body.get("error") or "Row sink did not confirm success"),
                response_body=str(body),
            )

        return body

    def close(self) -> None:
        self.session.close()
