"""Tag operations as a closed set of variants.

Each operation is a frozen dataclass. ``apply_operation`` computes the new
tag set for a record, or ``None`` when the record already satisfies the
operation and no write is needed.
"""

from dataclasses import dataclass
from typing import assert_never

from src.db.models import OperationType
from src.errors import ValidationError


@dataclass(frozen=True)
class AddTag:
    tag: str


@dataclass(frozen=True)
class RemoveTag:
    tag: str


@dataclass(frozen=True)
class ReplaceTag:
    old_tag: str
    new_tag: str


TagOperation = AddTag | RemoveTag | ReplaceTag


def build_operation(
    operation: OperationType | str,
    tag_value: str | None,
    old_tag_value: str | None = None,
) -> TagOperation:
    """Validate invocation arguments and build the operation variant.

    Args:
        operation: add_tag, remove_tag or replace_tag.
        tag_value: Target tag (the new tag for replace).
        old_tag_value: Tag being replaced; required for replace only.

    Returns:
        The operation variant with trimmed tag values.

    Raises:
        ValidationError: If the arguments violate the operation's preconditions.
    """
    try:
        op_type = OperationType(operation)
    except ValueError as e:
        raise ValidationError(f"Unknown operation: {operation!r}") from e

    tag = (tag_value or "").strip()
    if not tag:
        raise ValidationError("tag_value must be a non-empty string")

    old = old_tag_value.strip() if old_tag_value is not None else None

    if op_type == OperationType.replace_tag:
        if not old:
            raise ValidationError("old_tag_value is required for replace_tag")
        return ReplaceTag(old_tag=old, new_tag=tag)

    if old_tag_value is not None:
        raise ValidationError(
            f"old_tag_value is only valid for replace_tag, not {op_type.value}"
        )
    if op_type == OperationType.add_tag:
        return AddTag(tag=tag)
    return RemoveTag(tag=tag)


def apply_operation(op: TagOperation, current: list[str]) -> list[str] | None:
    """Compute the new tag set, or None when no write is needed."""
    match op:
        case AddTag(tag=tag):
            if tag in current:
                return None
            return [*current, tag]
        case RemoveTag(tag=tag):
            if tag not in current:
                return None
            return [t for t in current if t != tag]
        case ReplaceTag(old_tag=old, new_tag=new):
            if old not in current:
                return None
            replaced: list[str] = []
            for t in current:
                value = new if t == old else t
                if value not in replaced:
                    replaced.append(value)
            return replaced
        case _:
            assert_never(op)


def operation_type(op: TagOperation) -> OperationType:
    match op:
        case AddTag():
            return OperationType.add_tag
        case RemoveTag():
            return OperationType.remove_tag
        case ReplaceTag():
            return OperationType.replace_tag
        case _:
            assert_never(op)


def usage_tag(op: TagOperation) -> str | None:
    """Tag whose usage counter a successful job increments, if any."""
    match op:
        case AddTag(tag=tag):
            return tag
        case RemoveTag():
            return None
        case ReplaceTag(new_tag=new):
            return new
        case _:
            assert_never(op)


def tag_values(op: TagOperation) -> tuple[str, str | None]:
    """Return the persisted (tag_value, old_tag_value) pair."""
    match op:
        case AddTag(tag=tag) | RemoveTag(tag=tag):
            return tag, None
        case ReplaceTag(old_tag=old, new_tag=new):
            return new, old
        case _:
            assert_never(op)
