"""
Base schemas with standardized field types for consistent API responses.
"""

from decimal import Decimal, InvalidOperation
import math
from typing import Any, Generic, List, TypeVar

from pydantic import BaseModel
from pydantic_core import core_schema

from ..core.money import to_money

T = TypeVar("T")


class Money(Decimal):
    """Rupee amount: parsed into a paise-quantized Decimal, serialized as a "0.00" string."""

    @classmethod
    def __get_pydantic_core_schema__(cls, source_type: Any, handler: Any) -> core_schema.CoreSchema:
        def validate_money(value: Any) -> Decimal:
            if isinstance(value, float) and not math.isfinite(value):
                raise ValueError("Amount must be a finite number")
            try:
                return to_money(value)
            except InvalidOperation:
                raise ValueError("Amount must be a decimal number")

        return core_schema.no_info_after_validator_function(
            validate_money,
            core_schema.union_schema(
                [
                    core_schema.int_schema(),
                    core_schema.float_schema(),
                    core_schema.str_schema(),
                    core_schema.is_instance_schema(Decimal),
                ]
            ),
            serialization=core_schema.plain_serializer_function_ser_schema(
                lambda value: f"{to_money(value):.2f}",
                info_arg=False,
                return_schema=core_schema.str_schema(),
            ),
        )


class PaginatedResponse(BaseModel, Generic[T]):
    items: List[T]
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool
