"""Test helper utilities."""

from tests.helpers.fake_tag_client import FakeTagClient, TagCall

__all__ = [
    "FakeTagClient",
    "TagCall",
]
