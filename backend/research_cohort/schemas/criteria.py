from enum import Enum
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class FilterOperator(str, Enum):
    """Operators accepted on a filter criterion."""
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    IN = "in"
    NOT_IN = "not_in"
    IS_NULL = "is_null"
    IS_NOT_NULL = "is_not_null"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    GREATER_THAN_OR_EQUAL = "greater_than_or_equal"
    LESS_THAN_OR_EQUAL = "less_than_or_equal"
    BETWEEN = "between"


class FilterCriterion(BaseModel):
    """
    One predicate of a cohort query.

    Criteria are always AND-chained. ``logical_operator`` is kept so it
    round-trips through stored projects, but evaluation never reads it.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, use_enum_values=True)

    field: str
    operator: FilterOperator
    value: Any = None
    data_type: Optional[str] = None
    logical_operator: Optional[Literal["AND", "OR"]] = None

    def describe(self) -> str:
        return f"{self.field} {self.operator} {self.value!r}"


class MatchRequest(BaseModel):
    """Body of a patient match request."""
    criteria: List[FilterCriterion] = Field(default_factory=list)
