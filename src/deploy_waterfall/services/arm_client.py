"""ARM Deployment Source - fetches deployment and operation records from Azure.

Responsible for:
- Acquiring a bearer token from the logged-in Azure CLI
- Fetching a deployment record at subscription or resource group scope
- Listing a deployment's operations, following nextLink paging
- Bounded retry with exponential backoff around each idempotent GET
"""

import json
import logging
import subprocess
import time
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Callable, Optional, Protocol

import httpx

from deploy_waterfall.config import Settings, get_settings
from deploy_waterfall.models import DeploymentHandle, DeploymentRecord, OperationRecord

logger = logging.getLogger(__name__)

# Refresh tokens this many seconds before they expire
TOKEN_EXPIRY_MARGIN_SECONDS = 300

_HTTP_CLIENT_ERROR_MIN = 400
_HTTP_CLIENT_ERROR_MAX = 500
_HTTP_TOO_MANY_REQUESTS = 429


class SourceFetchError(Exception):
    """Raised when a deployment or its operations cannot be fetched."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class CredentialError(Exception):
    """Raised when no access token can be obtained."""
    pass


class DeploymentSource(Protocol):
    """Supplies raw deployment and operation records."""

    def get_deployment(self, handle: DeploymentHandle) -> DeploymentRecord:
        """Fetch a deployment record by scope and name."""
        ...

    def get_operations(self, handle: DeploymentHandle) -> list[OperationRecord]:
        """Fetch the flat, unordered list of operations of a deployment."""
        ...


class AzureCliTokenProvider:
    """Obtains ARM access tokens through `az account get-access-token`."""

    def __init__(
        self,
        tenant_id: Optional[str] = None,
        resource: str = "https://management.azure.com/",
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
    ):
        """Initialize the provider.

        Args:
            tenant_id: Optional tenant to request the token for
            resource: Token audience
            runner: subprocess.run compatible callable
        """
        self.tenant_id = tenant_id
        self.resource = resource
        self._runner = runner
        self._token: Optional[str] = None
        self._expires_on: float = 0.0

    def get_token(self) -> str:
        """Return a cached token, refreshing it shortly before expiry."""
        if self._token and time.time() < self._expires_on - TOKEN_EXPIRY_MARGIN_SECONDS:
            return self._token

        cmd = [
            "az", "account", "get-access-token",
            "--resource", self.resource,
            "--output", "json",
        ]
        if self.tenant_id:
            cmd.extend(["--tenant", self.tenant_id])

        try:
            result = self._runner(cmd, capture_output=True, text=True, timeout=60)
        except (FileNotFoundError, subprocess.TimeoutExpired) as e:
            raise CredentialError(f"Azure CLI token request failed: {e}") from e

        if result.returncode != 0:
            raise CredentialError(
                f"Azure CLI token request failed: {result.stderr.strip() or result.returncode}"
            )

        try:
            data = json.loads(result.stdout)
            self._token = data["accessToken"]
        except (json.JSONDecodeError, KeyError) as e:
            raise CredentialError(f"Unexpected Azure CLI token response: {e}") from e

        expires_on = data.get("expires_on")
        self._expires_on = float(expires_on) if expires_on else time.time() + 3600
        logger.debug("Acquired ARM token (tenant=%s)", self.tenant_id or "default")
        return self._token


class ArmDeploymentSource:
    """Reads deployments and deployment operations from the ARM REST API."""

    def __init__(
        self,
        token_provider: AzureCliTokenProvider,
        settings: Optional[Settings] = None,
        client: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize the source.

        Args:
            token_provider: Supplies bearer tokens
            settings: Optional settings override (uses global settings if not provided)
            client: Optional preconfigured httpx client
            sleep: Delay function used between retries
        """
        self.settings = settings or get_settings()
        self.token_provider = token_provider
        self._client = client or httpx.Client(timeout=self.settings.request_timeout_seconds)
        self._sleep = sleep

    def get_deployment(self, handle: DeploymentHandle) -> DeploymentRecord:
        """Fetch a deployment record.

        Args:
            handle: Subscription or resource group scoped deployment

        Returns:
            The parsed DeploymentRecord

        Raises:
            SourceFetchError: If the request fails after retries
        """
        logger.debug("Fetching deployment %s", handle)
        data = self._get_json(self._url(handle.path))
        return DeploymentRecord.from_dict(data)

    def get_operations(self, handle: DeploymentHandle) -> list[OperationRecord]:
        """Fetch every operation of a deployment, following nextLink pages."""
        logger.debug("Fetching operations of %s", handle)
        operations: list[OperationRecord] = []
        url: Optional[str] = self._url(f"{handle.path}/operations")

        while url:
            page = self._get_json(url)
            operations.extend(OperationRecord.from_dict(item) for item in page.get("value", []))
            url = page.get("nextLink")

        logger.debug("Deployment %s has %d operations", handle, len(operations))
        return operations

    def _url(self, path: str) -> str:
        base = self.settings.arm_endpoint.rstrip("/")
        return f"{base}{path}?api-version={self.settings.api_version}"

    def _get_json(self, url: str) -> dict[str, Any]:
        """GET a URL with exponential backoff on transient failures.

        Retries on 429, 5xx, timeouts and connection errors. Does NOT retry
        on other client errors (4xx).
        """
        max_retries = self.settings.max_retries
        last_error: Optional[SourceFetchError] = None

        for attempt in range(max_retries + 1):
            delay = self.settings.retry_base_delay * (2 ** attempt)
            try:
                response = self._client.get(
                    url,
                    headers={"Authorization": f"Bearer {self.token_provider.get_token()}"},
                )
            except httpx.TransportError as e:
                last_error = SourceFetchError(f"Request to {url} failed: {e}")
            else:
                status = response.status_code
                if status < _HTTP_CLIENT_ERROR_MIN:
                    return response.json()

                last_error = SourceFetchError(
                    f"ARM API error: {status} - {self._error_text(response)}",
                    status_code=status,
                )
                if status == _HTTP_TOO_MANY_REQUESTS:
                    delay = self._retry_after(response, delay)
                elif status < _HTTP_CLIENT_ERROR_MAX:
                    raise last_error

            if attempt < max_retries:
                logger.warning(
                    "Request failed (attempt %d/%d): %s. Retrying in %.1fs...",
                    attempt + 1, max_retries + 1, last_error, delay,
                )
                self._sleep(delay)

        logger.error("Request failed after %d attempts: %s", max_retries + 1, last_error)
        raise last_error

    @staticmethod
    def _retry_after(response: httpx.Response, default: float) -> float:
        """Seconds to wait from a Retry-After header given as seconds or an HTTP date."""
        value = response.headers.get("Retry-After")
        if not value:
            return default
        try:
            return max(float(value), 0.0)
        except ValueError:
            pass
        try:
            retry_at = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            logger.debug("Ignoring unparseable Retry-After header %r", value)
            return default
        if retry_at.tzinfo is None:
            retry_at = retry_at.replace(tzinfo=timezone.utc)
        return max((retry_at - datetime.now(timezone.utc)).total_seconds(), 0.0)

    @staticmethod
    def _error_text(response: httpx.Response) -> str:
        try:
            error = response.json().get("error", {})
            return f"{error.get('code', '')}: {error.get('message', '')}".strip(": ")
        except (json.JSONDecodeError, AttributeError):
            return response.text

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
