"""Wire models exchanged with tag platforms."""

from pydantic import BaseModel, Field, field_validator


class UserError(BaseModel):
    """A single rejection returned by the platform for a proposed update."""

    field: list[str] | None = Field(None, description="Path of the rejected input field")
    message: str = Field(..., description="Human-readable rejection reason")


class ProductTagSnapshot(BaseModel):
    """Current tags of one product, read immediately before a write.

    Never persisted. ``found`` is False when the product does not exist.
    """

    id: str = Field(..., description="Product identifier as supplied by the caller")
    tags: list[str] = Field(default_factory=list, description="Tags in platform order")
    found: bool = Field(default=True, description="Whether the product exists")

    @field_validator("tags", mode="before")
    @classmethod
    def split_tag_string(cls, value: object) -> object:
        """Accept Shopify's comma-separated tag string as well as a list.

        Duplicates are dropped, keeping the first occurrence.
        """
        if value is None:
            return []
        if isinstance(value, str):
            value = [t.strip() for t in value.split(",") if t.strip()]
        if isinstance(value, (list, tuple)) and all(isinstance(t, str) for t in value):
            return list(dict.fromkeys(value))
        return value

    @classmethod
    def missing(cls, product_id: str) -> "ProductTagSnapshot":
        """Snapshot for a product the platform does not know about."""
        return cls(id=product_id, tags=[], found=False)
