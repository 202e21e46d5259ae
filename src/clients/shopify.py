"""Shopify tag client implementation.

Implements the TagClient interface against the Shopify Admin GraphQL API.
Reads tags with a product query and writes them with productUpdate.
"""

import logging
from collections.abc import Sequence
from typing import Any

import httpx

from src.clients.base import TagClient
from src.clients.models import ProductTagSnapshot, UserError
from src.services.errors import TagValidationError, transport_error

logger = logging.getLogger(__name__)

PRODUCT_GID_PREFIX = "gid://shopify/Product/"

FETCH_TAGS_QUERY = """
query productTags($id: ID!) {
  product(id: $id) {
    id
    tags
  }
}
"""

UPDATE_TAGS_MUTATION = """
mutation productUpdate($input: ProductInput!) {
  productUpdate(input: $input) {
    product {
      id
      tags
    }
    userErrors {
      field
      message
    }
  }
}
"""


def to_product_gid(product_id: str) -> str:
    """Convert a numeric product id to a Shopify global id.

    Ids already in gid form are returned unchanged.
    """
    product_id = str(product_id).strip()
    if product_id.startswith("gid://"):
        return product_id
    return f"{PRODUCT_GID_PREFIX}{product_id}"


def normalize_store_url(store_url: str) -> str:
    """Strip scheme and trailing slashes from a store URL."""
    store_url = store_url.replace("https://", "").replace("http://", "")
    return store_url.rstrip("/")


class ShopifyTagClient(TagClient):
    """Shopify Admin API client for product tags.

    Example:
        async with ShopifyTagClient("mystore.myshopify.com", "shpat_xxxx") as client:
            snapshot = await client.fetch_tags("123")
            await client.write_tags("123", [*snapshot.tags, "sale"])
    """

    API_VERSION = "2024-01"

    def __init__(
        self,
        store_url: str,
        access_token: str,
        api_version: str | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            store_url: Shopify store URL (e.g., 'mystore.myshopify.com')
            access_token: Admin API access token
            api_version: Admin API version, defaults to API_VERSION
            timeout: HTTP timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        if not store_url or not access_token:
            raise ValueError("store_url and access_token are required")
        self._store_url = normalize_store_url(store_url)
        self._access_token = access_token
        self._api_version = api_version or self.API_VERSION
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def platform_name(self) -> str:
        """Return the platform identifier."""
        return "shopify"

    @property
    def graphql_url(self) -> str:
        """Full URL of the Admin GraphQL endpoint."""
        return f"https://{self._store_url}/admin/api/{self._api_version}/graphql.json"

    def _get_headers(self) -> dict[str, str]:
        return {
            "X-Shopify-Access-Token": self._access_token,
            "Content-Type": "application/json",
        }

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers=self._get_headers(),
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _graphql(self, query: str, variables: dict[str, Any]) -> dict[str, Any]:
        """POST a GraphQL document and return its ``data`` payload.

        Raises:
            TagTransportError: On network failure, timeout, HTTP error,
                throttling, or top-level GraphQL errors
        """
        try:
            response = await self._get_client().post(
                self.graphql_url,
                json={"query": query, "variables": variables},
            )
        except httpx.TimeoutException as e:
            raise transport_error("E-3002", timeout=self._timeout) from e
        except httpx.RequestError as e:
            raise transport_error("E-3001", message=str(e) or type(e).__name__) from e

        status = response.status_code
        if status in (401, 403):
            raise transport_error(
                "E-5001",
                retryable=False,
                details={"status_code": status},
                status_code=status,
            )
        if status == 429:
            raise transport_error(
                "E-3003", details={"status_code": status}, message=f"HTTP {status}"
            )
        if status >= 400:
            raise transport_error(
                "E-3001",
                retryable=status >= 500,
                details={"status_code": status, "body": response.text[:500]},
                message=f"HTTP {status}",
            )

        try:
            body = response.json()
        except ValueError as e:
            raise transport_error("E-3001", message="invalid JSON response") from e

        errors = body.get("errors")
        if errors:
            if not isinstance(errors, list):
                errors = [errors]
            codes = {
                (err.get("extensions") or {}).get("code")
                for err in errors
                if isinstance(err, dict)
            }
            message = "; ".join(
                str(err.get("message", err)) if isinstance(err, dict) else str(err)
                for err in errors
            )
            if "THROTTLED" in codes:
                raise transport_error("E-3003", details={"errors": errors}, message=message)
            raise transport_error(
                "E-3001", retryable=False, details={"errors": errors}, message=message
            )

        return body.get("data") or {}

    async def fetch_tags(self, product_id: str) -> ProductTagSnapshot:
        """Read the current tags of one product."""
        data = await self._graphql(FETCH_TAGS_QUERY, {"id": to_product_gid(product_id)})
        product = data.get("product")
        if not product:
            logger.debug("Product %s not found on %s", product_id, self._store_url)
            return ProductTagSnapshot.missing(product_id)
        return ProductTagSnapshot(id=product_id, tags=product.get("tags"))

    async def write_tags(
        self, product_id: str, tags: Sequence[str]
    ) -> ProductTagSnapshot:
        """Replace the full tag set of one product via productUpdate."""
        variables = {"input": {"id": to_product_gid(product_id), "tags": list(tags)}}
        data = await self._graphql(UPDATE_TAGS_MUTATION, variables)
        payload = data.get("productUpdate") or {}

        user_errors = [UserError(**e) for e in payload.get("userErrors") or []]
        if user_errors:
            raise TagValidationError.from_user_errors(user_errors)

        product = payload.get("product")
        if not product:
            return ProductTagSnapshot(id=product_id, tags=list(tags))
        return ProductTagSnapshot(id=product_id, tags=product.get("tags"))
