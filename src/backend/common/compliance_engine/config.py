from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, Field, field_validator, model_validator


class RuleKind(str, Enum):
    QUERY = "query"
    THRESHOLD = "threshold"
    PATTERN = "pattern"
    WORKFLOW = "workflow"
    CUSTOM = "custom"


class ExpectedResult(str, Enum):
    ZERO = "zero"
    NON_ZERO = "non_zero"
    BOOLEAN_TRUE = "boolean_true"
    BOOLEAN_FALSE = "boolean_false"


class ThresholdOperator(str, Enum):
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    EQ = "eq"
    BETWEEN = "between"


class QueryRuleConfig(BaseModel):
    type: Literal["query"] = "query"
    # Must name an entry of the query catalog; free-form SQL is never accepted.
    query_id: str
    expected_result: ExpectedResult


class ThresholdRuleConfig(BaseModel):
    type: Literal["threshold"] = "threshold"
    metric: str
    operator: ThresholdOperator
    value: Union[float, Tuple[float, float]]

    @model_validator(mode="after")
    def _check_value_shape(self) -> "ThresholdRuleConfig":
        if self.operator == ThresholdOperator.BETWEEN:
            if not isinstance(self.value, tuple):
                raise ValueError("'between' requires a [min, max] pair")
            low, high = self.value
            if low > high:
                raise ValueError(f"'between' bounds are reversed: [{low}, {high}]")
        elif isinstance(self.value, tuple):
            raise ValueError(f"operator '{self.operator.value}' requires a single number")
        return self

    def describe(self) -> str:
        if isinstance(self.value, tuple):
            return f"{self.operator.value} [{self.value[0]:g}, {self.value[1]:g}]"
        return f"{self.operator.value} {self.value:g}"


class PatternRuleConfig(BaseModel):
    type: Literal["pattern"] = "pattern"
    pattern: str
    scope: str
    should_exist: bool


class WorkflowRuleConfig(BaseModel):
    type: Literal["workflow"] = "workflow"
    required_steps: List[str] = Field(default_factory=list)
    required_approvers: Optional[List[str]] = None
    max_duration_hours: Optional[float] = None


class CustomRuleConfig(BaseModel):
    type: Literal["custom"] = "custom"
    evaluator_name: str
    # Opaque to the engine; handed to the registered evaluator as-is.
    parameters: Dict[str, Any] = Field(default_factory=dict)


RuleConfig = Annotated[
    Union[
        QueryRuleConfig,
        ThresholdRuleConfig,
        PatternRuleConfig,
        WorkflowRuleConfig,
        CustomRuleConfig,
    ],
    Field(discriminator="type"),
]


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # Timestamps without an offset are stored and written in UTC.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ExceptionType(str, Enum):
    CONDITION = "condition"
    ENTITY = "entity"
    TIME_PERIOD = "time_period"


class TimePeriod(BaseModel):
    start: datetime
    end: datetime

    @field_validator("start", "end", mode="after")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        return as_utc(value)


class RuleException(BaseModel):
    type: ExceptionType
    reason: str
    expires_at: Optional[datetime] = None
    time_period: Optional[TimePeriod] = None

    @field_validator("expires_at", mode="after")
    @classmethod
    def _assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)

    def is_active(self, at: datetime) -> bool:
        if self.expires_at is not None and self.expires_at < at:
            return False
        if self.type == ExceptionType.TIME_PERIOD:
            if self.time_period is None:
                return False
            return self.time_period.start <= at <= self.time_period.end
        # Condition/entity scoping is resolved by the caller, not here.
        return True


class RuleLogic(BaseModel):
    config: RuleConfig
    exceptions: List[RuleException] = Field(default_factory=list)
