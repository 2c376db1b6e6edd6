"""
Funcbase API Client.

This module provides an async Python client for the Funcbase HTTP API: managing
function definitions, invoking functions and browsing tables.
"""

from typing import Any

import httpx

from funcbase.models.function import FunctionDefinition, FunctionStep, FunctionSummary
from funcbase.utils.logger import logger


class FuncbaseAPIError(Exception):
    """Base exception for Funcbase API errors.

    ``code`` is the machine-readable error code from the response body; ``step``
    and ``idx`` identify the failing step of a function invocation.
    """

    def __init__(self, message: str, status_code: int | None = None, detail: Any = None) -> None:
        self.message = message
        self.status_code = status_code
        self.detail = detail
        body = detail if isinstance(detail, dict) else {}
        self.code: str | None = body.get("code")
        self.step: str | None = body.get("step")
        self.idx: int | None = body.get("idx")
        super().__init__(message)


class FuncbaseAuthError(FuncbaseAPIError):
    """Authentication-related errors."""

    pass


class FuncbaseClient:
    """Client for interacting with the Funcbase API.

    Example:
        ```python
        async with FuncbaseClient("http://localhost:8000", api_key="secret") as client:
            await client.create_function(
                "create_order",
                [
                    {"idx": 0, "name": "order", "table": "orders", "action": "insert",
                     "values": {"total": "$input"}},
                    {"idx": 1, "table": "items", "action": "insert", "multiple": True,
                     "values": {"order_id": "$order", "sku": "$input"}},
                ],
            )
            result = await client.invoke("create_order", {"order": {"total": 10}})
        ```
    """

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        api_key: str | None = None,
        log_requests: bool = False,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize Funcbase client.

        Args:
            base_url: Base URL of the Funcbase server (e.g., "http://localhost:8000")
            token: Bearer token identifying the caller of functions
            api_key: Key sent as ``X-API-Key`` to definition management endpoints
            log_requests: Enable request/response logging (default: False)
            transport: Custom httpx transport, e.g. ``ASGITransport`` in tests
        """
        self.base_url = base_url.rstrip("/")
        self.log_requests = log_requests

        headers: dict[str, str] = {}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        if api_key:
            headers["X-API-Key"] = api_key

        self.client = httpx.AsyncClient(
            base_url=self.base_url, headers=headers, transport=transport, follow_redirects=True
        )

    async def __aenter__(self) -> "FuncbaseClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def _request(self, method: str, endpoint: str, **kwargs: Any) -> httpx.Response:
        """Make HTTP request to API.

        Args:
            method: HTTP method (GET, POST, etc.)
            endpoint: API endpoint (e.g., "/api/function")
            **kwargs: Additional arguments passed to httpx request

        Returns:
            HTTP response

        Raises:
            FuncbaseAPIError: On API errors
            FuncbaseAuthError: On authentication errors
        """
        if self.log_requests:
            logger.debug(f"API Request: {method} {endpoint}")

        try:
            response = await self.client.request(method, endpoint, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"HTTP error during request: {e}")
            raise FuncbaseAPIError(f"HTTP error: {e!s}") from e

        if self.log_requests:
            logger.debug(f"API Response: {response.status_code}")

        if response.status_code >= 400:
            try:
                detail: Any = response.json()
            except ValueError:
                detail = response.text
            message = detail.get("error") if isinstance(detail, dict) else None
            error_class = FuncbaseAPIError
            if response.status_code in (401, 403):
                error_class = FuncbaseAuthError
            raise error_class(
                message or f"API error: {response.status_code}",
                status_code=response.status_code,
                detail=detail,
            )
        return response

    # ==================== Function Management ====================

    async def create_function(
        self, name: str, steps: list[FunctionStep] | list[dict[str, Any]]
    ) -> FunctionDefinition:
        """Create a function.

        Args:
            name: Function name
            steps: Steps as models or plain dicts (shorthand bindings allowed)

        Returns:
            The stored definition
        """
        definition = FunctionDefinition.model_validate({"name": name, "functions": steps})
        response = await self._request(
            "POST", "/api/function/create", json=definition.model_dump(mode="json")
        )
        return FunctionDefinition.model_validate(response.json())

    async def update_function(
        self, name: str, steps: list[FunctionStep] | list[dict[str, Any]]
    ) -> FunctionDefinition:
        """Replace every step of a function."""
        definition = FunctionDefinition.model_validate({"name": name, "functions": steps})
        response = await self._request(
            "PUT",
            f"/api/function/{name}",
            json={"functions": definition.model_dump(mode="json")["functions"]},
        )
        return FunctionDefinition.model_validate(response.json())

    async def get_function(self, name: str) -> FunctionDefinition:
        """Get a function definition by name."""
        response = await self._request("GET", f"/api/function/{name}")
        return FunctionDefinition.model_validate(response.json())

    async def list_functions(self, search: str | None = None) -> list[FunctionSummary]:
        """List functions, optionally filtered by a name substring."""
        params = {"search": search} if search else None
        response = await self._request("GET", "/api/function", params=params)
        return [FunctionSummary.model_validate(item) for item in response.json()]

    async def delete_function(self, name: str) -> None:
        """Delete a function."""
        await self._request("DELETE", f"/api/function/{name}")

    # ==================== Invocation ====================

    async def invoke(
        self, name: str, data: dict[str, Any] | None = None, timeout: float | None = None
    ) -> dict[str, Any]:
        """Invoke a function.

        Args:
            name: Function name
            data: Caller payload
            timeout: Seconds the server may spend starting steps (``X-Request-Timeout``)

        Returns:
            Response body: ``message`` plus fetched rows keyed by step name

        Raises:
            FuncbaseAPIError: If the function failed; ``step`` and ``idx`` name the step
        """
        headers = {"X-Request-Timeout": str(timeout)} if timeout is not None else None
        response = await self._request(
            "POST", f"/api/{name}", json={"data": data or {}}, headers=headers
        )
        result: dict[str, Any] = response.json()
        return result

    # ==================== Tables ====================

    async def browse_table(
        self,
        table: str,
        filter: str | None = None,
        sort: str | None = None,
        page: int = 1,
        page_size: int | None = None,
    ) -> list[dict[str, Any]]:
        """Fetch one page of rows from a table.

        Args:
            table: Table name
            filter: Filter expression, e.g. ``age > 3 AND name = "a"``
            sort: Sort clause, e.g. ``"age desc"``
            page: 1-based page number
            page_size: Rows per page

        Returns:
            The rows of the page
        """
        params: dict[str, Any] = {"page": page}
        if filter:
            params["filter"] = filter
        if sort:
            params["sort"] = sort
        if page_size:
            params["page_size"] = page_size
        response = await self._request("GET", f"/api/table/{table}", params=params)
        rows: list[dict[str, Any]] = response.json()["data"]
        return rows
