"""Tests for tag operation variants."""

import pytest

from src.db.models import OperationType
from src.errors import ValidationError
from src.services.tag_operations import (
    AddTag,
    RemoveTag,
    ReplaceTag,
    apply_operation,
    build_operation,
    operation_type,
    tag_values,
    usage_tag,
)


class TestBuildOperation:
    """Tests for argument validation."""

    def test_builds_each_variant(self):
        assert build_operation("add_tag", "sale") == AddTag("sale")
        assert build_operation("remove_tag", "sale") == RemoveTag("sale")
        assert build_operation("replace_tag", "new", "old") == ReplaceTag("old", "new")

    def test_accepts_enum(self):
        assert build_operation(OperationType.add_tag, "sale") == AddTag("sale")

    def test_strips_whitespace(self):
        assert build_operation("replace_tag", " new ", " old ") == ReplaceTag("old", "new")

    def test_unknown_operation(self):
        with pytest.raises(ValidationError, match="Unknown operation"):
            build_operation("tag_everything", "sale")

    def test_replace_requires_old_tag(self):
        with pytest.raises(ValidationError, match="old_tag_value"):
            build_operation("replace_tag", "new")

    def test_old_tag_only_for_replace(self):
        with pytest.raises(ValidationError):
            build_operation("add_tag", "sale", "old")


class TestApplyOperation:
    """Tests for tag set transformation."""

    def test_add_appends(self):
        assert apply_operation(AddTag("c"), ["a", "b"]) == ["a", "b", "c"]

    def test_add_present_is_noop(self):
        assert apply_operation(AddTag("a"), ["a", "b"]) is None

    def test_remove(self):
        assert apply_operation(RemoveTag("a"), ["a", "b"]) == ["b"]

    def test_remove_absent_is_noop(self):
        assert apply_operation(RemoveTag("z"), ["a", "b"]) is None

    def test_remove_last_tag(self):
        assert apply_operation(RemoveTag("a"), ["a"]) == []

    def test_replace_keeps_position(self):
        assert apply_operation(ReplaceTag("b", "x"), ["a", "b", "c"]) == ["a", "x", "c"]

    def test_replace_collapses_duplicates(self):
        """If the new tag is already present the result holds it once."""
        assert apply_operation(ReplaceTag("b", "a"), ["a", "b", "c"]) == ["a", "c"]

    def test_replace_absent_is_noop(self):
        assert apply_operation(ReplaceTag("z", "x"), ["a"]) is None

    def test_does_not_mutate_input(self):
        current = ["a"]
        apply_operation(AddTag("b"), current)
        assert current == ["a"]


class TestOperationMetadata:
    """Tests for persisted values and usage tags."""

    def test_operation_type(self):
        assert operation_type(AddTag("a")) == OperationType.add_tag
        assert operation_type(RemoveTag("a")) == OperationType.remove_tag
        assert operation_type(ReplaceTag("a", "b")) == OperationType.replace_tag

    def test_usage_tag(self):
        """Add and replace count the target tag; remove counts nothing."""
        assert usage_tag(AddTag("a")) == "a"
        assert usage_tag(RemoveTag("a")) is None
        assert usage_tag(ReplaceTag("old", "new")) == "new"

    def test_tag_values(self):
        assert tag_values(AddTag("a")) == ("a", None)
        assert tag_values(ReplaceTag("old", "new")) == ("new", "old")
