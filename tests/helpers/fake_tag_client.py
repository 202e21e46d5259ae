"""In-memory TagClient for engine and CLI tests.

Holds a dict of product tags, lets tests script validation and transport
failures per product, and records every call for verification.
"""

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass, field

from src.clients.base import TagClient
from src.clients.models import ProductTagSnapshot, UserError
from src.services.errors import TagTransportError, TagValidationError


@dataclass
class TagCall:
    """Record of a call made to the fake client."""

    method: str
    product_id: str
    tags: list[str] | None = None


@dataclass
class FakeTagClient(TagClient):
    """Fake store keyed by product id. Missing ids are reported as not found."""

    products: dict[str, list[str]] = field(default_factory=dict)
    calls: list[TagCall] = field(default_factory=list)
    closed: bool = False
    _rejections: dict[str, str] = field(default_factory=dict)
    _write_failures: dict[str, list[TagTransportError]] = field(default_factory=dict)
    _fetch_failures: dict[str, list[TagTransportError]] = field(default_factory=dict)
    _fetch_delay: float = 0.0

    @property
    def platform_name(self) -> str:
        return "fake"

    def reject_write(self, product_id: str, message: str) -> None:
        """Make every write to ``product_id`` fail validation with ``message``."""
        self._rejections[product_id] = message

    def fail_writes(
        self, product_id: str, times: int, retryable: bool = True, code: str = "E-3001"
    ) -> None:
        """Make the next ``times`` writes to ``product_id`` raise a transport error."""
        self._write_failures[product_id] = [
            TagTransportError(code=code, message="connection reset", retryable=retryable)
            for _ in range(times)
        ]

    def fail_fetches(self, product_id: str, times: int) -> None:
        """Make the next ``times`` fetches of ``product_id`` raise a transport error."""
        self._fetch_failures[product_id] = [
            TagTransportError(code="E-3001", message="connection reset")
            for _ in range(times)
        ]

    def delay_fetches(self, seconds: float) -> None:
        self._fetch_delay = seconds

    def writes(self) -> list[TagCall]:
        return [c for c in self.calls if c.method == "write_tags"]

    def fetches(self) -> list[TagCall]:
        return [c for c in self.calls if c.method == "fetch_tags"]

    async def fetch_tags(self, product_id: str) -> ProductTagSnapshot:
        self.calls.append(TagCall("fetch_tags", product_id))
        if self._fetch_delay:
            await asyncio.sleep(self._fetch_delay)
        pending = self._fetch_failures.get(product_id)
        if pending:
            raise pending.pop(0)
        if product_id not in self.products:
            return ProductTagSnapshot.missing(product_id)
        return ProductTagSnapshot(id=product_id, tags=list(self.products[product_id]))

    async def write_tags(
        self, product_id: str, tags: Sequence[str]
    ) -> ProductTagSnapshot:
        self.calls.append(TagCall("write_tags", product_id, list(tags)))
        pending = self._write_failures.get(product_id)
        if pending:
            raise pending.pop(0)
        if product_id in self._rejections:
            raise TagValidationError.from_user_errors(
                [UserError(field=["tags"], message=self._rejections[product_id])]
            )
        self.products[product_id] = list(tags)
        return ProductTagSnapshot(id=product_id, tags=list(tags))

    async def aclose(self) -> None:
        self.closed = True
