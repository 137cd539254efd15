"""
Write guards for conditional task updates.

Built from ``boto3.dynamodb.conditions.Attr`` so they can be passed
straight to ``update_item`` as a ConditionExpression. An attribute stored
as DynamoDB NULL is treated like a missing one, the same way
``Task.from_item`` reads it.
"""
from functools import reduce
from typing import Any

from boto3.dynamodb.conditions import Attr, ConditionBase


def unset(name: str) -> ConditionBase:
    """Attribute missing or NULL."""
    return Attr(name).not_exists() | Attr(name).attribute_type('NULL')


def unset_or_equals(name: str, value: Any) -> ConditionBase:
    return unset(name) | Attr(name).eq(value)


def not_equals(name: str, value: Any) -> ConditionBase:
    return Attr(name).not_exists() | Attr(name).ne(value)


def is_number(name: str) -> ConditionBase:
    return Attr(name).attribute_type('N')


def has_size(name: str, size: int) -> ConditionBase:
    """List attribute with exactly ``size`` elements; an unset list has none."""
    condition = Attr(name).size().eq(size)
    if size == 0:
        return unset(name) | condition
    return condition


def all_of(*conditions: ConditionBase) -> ConditionBase:
    return reduce(lambda left, right: left & right, conditions)
