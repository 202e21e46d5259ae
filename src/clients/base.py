"""Abstract base class for tag platform clients.

The mutation engine only depends on this two-method contract; it never
builds or parses the platform protocol itself.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence

from src.clients.models import ProductTagSnapshot


class TagClient(ABC):
    """Abstract base class for clients that read and write product tags.

    Concrete implementations must:
    - Report a missing product as ``found=False``, never by raising
    - Raise TagValidationError when the platform rejects a tag set
    - Raise TagTransportError for network, HTTP and auth failures

    Example implementation:
        class ShopifyTagClient(TagClient):
            @property
            def platform_name(self) -> str:
                return "shopify"

            async def fetch_tags(self, product_id: str) -> ProductTagSnapshot:
                # Query product(id) { tags }
                ...
    """

    @property
    @abstractmethod
    def platform_name(self) -> str:
        """Return the platform identifier (e.g. 'shopify')."""
        ...

    @abstractmethod
    async def fetch_tags(self, product_id: str) -> ProductTagSnapshot:
        """Read the current tags of one product.

        Args:
            product_id: Platform product identifier

        Returns:
            Snapshot of the product's tags, with found=False if it is missing

        Raises:
            TagTransportError: If the platform could not be reached
        """
        ...

    @abstractmethod
    async def write_tags(
        self, product_id: str, tags: Sequence[str]
    ) -> ProductTagSnapshot:
        """Replace the full tag set of one product.

        Args:
            product_id: Platform product identifier
            tags: Complete new tag set, in order

        Returns:
            Snapshot of the product as updated by the platform

        Raises:
            TagValidationError: If the platform rejects the tag set
            TagTransportError: If the platform could not be reached
        """
        ...

    async def aclose(self) -> None:
        """Release any connections held by the client."""
        return None

    async def __aenter__(self) -> "TagClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
