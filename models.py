"""
Pydantic models

Settings and request/response bodies for the lazy sequence pipeline service.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


Number = Union[int, float]


class SourceKind(str, Enum):
    """Sources a pipeline can start from"""
    RANGE = "range"
    ITEMS = "items"
    TEXT = "text"
    REPEAT = "repeat"
    FIBONACCI = "fibonacci"


class OperationType(str, Enum):
    """Lazy operators a pipeline can apply"""
    MAP = "map"
    FILTER = "filter"
    FLAT_MAP = "flat_map"
    TAKE_WHILE = "take_while"
    SKIP_WHILE = "skip_while"
    TAKE = "take"
    SKIP = "skip"


class TerminalOperation(str, Enum):
    """Eager operations that produce the pipeline result"""
    TO_LIST = "to_list"
    COUNT = "count"
    SUM = "sum"
    PRODUCT = "product"
    MIN = "min"
    MAX = "max"
    FIRST = "first"


MAP_FUNCTIONS = ["double", "square", "negate", "increment", "add", "multiply", "to_string"]
FLAT_MAP_FUNCTIONS = ["range_to", "repeat_twice"]
PREDICATES = ["is_even", "is_odd", "is_positive", "less_than", "greater_than", "divisible_by"]

# Functions that need OperationSpec.argument
ARGUMENT_FUNCTIONS = {"add", "multiply", "less_than", "greater_than", "divisible_by"}

FUNCTIONS_BY_OPERATION = {
    OperationType.MAP: MAP_FUNCTIONS,
    OperationType.FLAT_MAP: FLAT_MAP_FUNCTIONS,
    OperationType.FILTER: PREDICATES,
    OperationType.TAKE_WHILE: PREDICATES,
    OperationType.SKIP_WHILE: PREDICATES,
}


class ServiceSettings(BaseSettings):
    """Service configuration, read from SEQ_* environment variables"""

    model_config = SettingsConfigDict(
        env_prefix="SEQ_",
        env_ignore_empty=True,
        case_sensitive=False,
    )

    log_level: str = Field(
        "INFO",
        description="Logging level name"
    )
    log_file: Optional[str] = Field(
        None,
        description="Optional log file path (stdout is always used)"
    )
    max_result_items: int = Field(
        1000,
        description="Maximum number of items a pipeline may produce",
        ge=1,
        le=100000
    )
    max_source_items: int = Field(
        100000,
        description="Maximum number of items pulled from a pipeline source",
        ge=1,
        le=10000000
    )

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        """Validate the level is a known logging level name"""
        level = v.strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {v}")
        return level


class SourceSpec(BaseModel):
    """Where a pipeline gets its items from"""
    kind: SourceKind = Field(..., description="Source kind")
    start: Number = Field(0, description="First value of a range source")
    end: Optional[Number] = Field(
        None,
        description="Exclusive end of a range source (unbounded if omitted)"
    )
    step: Number = Field(1, description="Step of a range source")
    items: Optional[List[Any]] = Field(None, description="Items of an items source")
    text: Optional[str] = Field(None, description="Text of a text source (one item per character)")
    value: Optional[Any] = Field(None, description="Value of a repeat source")
    times: Optional[int] = Field(
        None,
        description="Repetitions of a repeat source (unbounded if omitted)",
        ge=0
    )

    @model_validator(mode='after')
    def validate_source(self):
        """Check the parameters the chosen kind needs are present"""
        if self.kind == SourceKind.ITEMS and self.items is None:
            raise ValueError("An items source requires 'items'")
        if self.kind == SourceKind.TEXT and self.text is None:
            raise ValueError("A text source requires 'text'")
        if self.kind == SourceKind.RANGE and self.step == 0:
            raise ValueError("A range source requires a non-zero 'step'")
        return self


class OperationSpec(BaseModel):
    """One lazy operator of a pipeline"""
    type: OperationType = Field(..., description="Operator type")
    function: Optional[str] = Field(
        None,
        description="Registered function name (map, flat_map and predicate operators)",
        examples=["square", "is_even"]
    )
    argument: Optional[Number] = Field(
        None,
        description="Argument for parameterized functions such as 'add' or 'less_than'"
    )
    count: Optional[int] = Field(
        None,
        description="Item count for take and skip",
        ge=0
    )

    @model_validator(mode='after')
    def validate_operation(self):
        """Validate the function name and its argument against the operator type"""
        if self.type in (OperationType.TAKE, OperationType.SKIP):
            if self.count is None:
                raise ValueError(f"'{self.type.value}' requires 'count'")
            return self

        valid_functions = FUNCTIONS_BY_OPERATION[self.type]
        if self.function not in valid_functions:
            raise ValueError(
                f"Invalid function for '{self.type.value}': {self.function}. "
                f"Valid functions: {valid_functions}"
            )
        if self.function in ARGUMENT_FUNCTIONS and self.argument is None:
            raise ValueError(f"Function '{self.function}' requires 'argument'")
        if self.function == "divisible_by" and self.argument == 0:
            raise ValueError("Function 'divisible_by' requires a non-zero 'argument'")
        return self

    def describe(self) -> str:
        """Short label used in operations_applied"""
        if self.type in (OperationType.TAKE, OperationType.SKIP):
            return f"{self.type.value}({self.count})"
        if self.argument is not None:
            return f"{self.type.value}({self.function}, {self.argument})"
        return f"{self.type.value}({self.function})"


class PipelineRequest(BaseModel):
    """Pipeline to evaluate: source, lazy operators, terminal operation"""
    source: SourceSpec = Field(..., description="Pipeline source")
    operations: List[OperationSpec] = Field(
        default_factory=list,
        description="Operators applied in order",
        max_length=50
    )
    terminal: TerminalOperation = Field(
        TerminalOperation.TO_LIST,
        description="Terminal operation producing the result"
    )


class PerformanceInfo(BaseModel):
    """Timing and memory of one evaluation"""
    operation: str = Field(..., description="Evaluated operation label")
    processing_time_ms: float = Field(..., description="Processing time in milliseconds", ge=0)
    memory_usage_mb: Optional[float] = Field(
        None,
        description="Peak traced memory in megabytes",
        ge=0
    )
    output_size: Optional[int] = Field(None, description="Number of items produced", ge=0)


class PipelineResponse(BaseModel):
    """Result of a pipeline evaluation"""
    ok: bool = Field(True, description="Request success status")
    result: Any = Field(None, description="Terminal operation result")
    truncated: bool = Field(
        False,
        description="Whether the pipeline produced more items than the configured limit"
    )
    item_limit: int = Field(..., description="Configured maximum number of items", ge=1)
    operations_applied: List[str] = Field(
        default_factory=list,
        description="Operators applied, in order"
    )
    terminal: TerminalOperation = Field(..., description="Terminal operation used")
    performance: PerformanceInfo = Field(..., description="Evaluation performance")


class PageResponse(BaseModel):
    """One page of a pipeline's items"""
    ok: bool = Field(True, description="Request success status")
    page_data: List[Any] = Field(..., description="Items on this page")
    current_page: int = Field(..., description="Page number (1-indexed)", ge=1)
    page_size: int = Field(..., description="Page size", ge=1)
    has_next_page: bool = Field(..., description="Whether another page follows")
    has_previous_page: bool = Field(..., description="Whether a page precedes this one")
    operations_applied: List[str] = Field(
        default_factory=list,
        description="Operators applied, in order"
    )
    performance: PerformanceInfo = Field(..., description="Evaluation performance")


class PerformanceSummary(BaseModel):
    """Aggregate performance over all recorded evaluations"""
    total_operations: int = Field(0, ge=0)
    total_time_ms: float = Field(0.0, ge=0)
    total_memory_mb: float = Field(0.0, ge=0)
    avg_time_ms: float = Field(0.0, ge=0)
    avg_memory_mb: float = Field(0.0, ge=0)


class StatusResponse(BaseModel):
    """Service banner"""
    ok: bool = Field(True, description="Service status")
    message: str = Field(..., description="Status message")
    available_functions: Dict[str, List[str]] = Field(
        ...,
        description="Registered function names by operator family"
    )
    timestamp: datetime = Field(..., description="Response timestamp")


class HealthResponse(BaseModel):
    """Service health"""
    healthy: bool = Field(..., description="Overall health")
    uptime_seconds: float = Field(..., description="Seconds since service start", ge=0)
    performance: PerformanceSummary = Field(..., description="Performance summary")
    settings: ServiceSettings = Field(..., description="Active settings")
    timestamp: datetime = Field(..., description="Response timestamp")


class ErrorResponse(BaseModel):
    """Error response model"""
    ok: bool = Field(False, description="Request success status")
    error: str = Field(..., description="Error message")
    error_code: Optional[str] = Field(None, description="Error code")
    error_type: Optional[str] = Field(None, description="Exception type")
    details: Optional[Dict[str, Any]] = Field(None, description="Error details")
    timestamp: datetime = Field(..., description="Error timestamp")
