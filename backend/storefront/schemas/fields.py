"""Shared field types: lenient inputs that read wrong-typed values as absent, and money."""

from decimal import Decimal
from typing import Annotated, Any

from pydantic import BeforeValidator, PlainSerializer


def _text_or_none(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def _list_or_empty(value: Any) -> list:
    return value if isinstance(value, list) else []


LooseText = Annotated[str | None, BeforeValidator(_text_or_none)]
LooseList = Annotated[list[Any], BeforeValidator(_list_or_empty)]

# Exact in Python, a plain number in JSON responses
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]
