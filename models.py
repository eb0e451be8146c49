"""Models for declaratively described producer pipelines."""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, field_validator, model_validator, ConfigDict
from enum import Enum


class SourceKind(str, Enum):
    """Source constructors available over the API."""
    FROM = "from"
    REPEAT = "repeat"
    ONCE = "once"
    COUNTER = "counter"


class OperationType(str, Enum):
    """Combinators and the terminal reducer."""
    SKIP = "skip"
    TAKE = "take"
    MAP = "map"
    FILTER = "filter"
    ZIP = "zip"
    FOLD = "fold"


class SourceSpec(BaseModel):
    """Where a pipeline pulls its elements from."""
    kind: SourceKind = Field(..., description="Source constructor to use")
    items: Optional[List[Any]] = Field(
        None,
        description="Sequence for 'from' sources"
    )
    text: Optional[str] = Field(
        None,
        description="String for 'from' sources; yields its UTF-8 bytes"
    )
    value: Optional[Any] = Field(
        None,
        description="Value for 'repeat' and 'once' sources"
    )
    start: int = Field(
        default=0,
        description="Initial state for 'counter'; the first element is start + step"
    )
    step: int = Field(default=1, description="Increment for 'counter'")
    stop: Optional[int] = Field(
        None,
        description="Last value a 'counter' yields; omitted means unbounded"
    )

    @model_validator(mode="after")
    def check_source_fields(self):
        """Ensure each source kind carries the fields it needs."""
        if self.kind == SourceKind.FROM:
            if (self.items is None) == (self.text is None):
                raise ValueError("'from' source needs exactly one of items or text")
        elif self.kind in (SourceKind.REPEAT, SourceKind.ONCE):
            if self.value is None:
                raise ValueError(f"'{self.kind.value}' source needs a value")
        elif self.kind == SourceKind.COUNTER:
            if self.step == 0:
                raise ValueError("'counter' step cannot be 0")
        return self

    @property
    def is_bounded(self) -> bool:
        if self.kind == SourceKind.REPEAT:
            return False
        if self.kind == SourceKind.COUNTER:
            return self.stop is not None
        return True


class OperationSpec(BaseModel):
    """One pipeline stage."""
    type: OperationType = Field(..., description="Operation to apply")
    count: Optional[int] = Field(
        None,
        description="Element count for skip/take (negative values act as 0)"
    )
    function: Optional[str] = Field(
        None,
        description="Registered function name for map/filter/fold"
    )
    other: Optional[SourceSpec] = Field(
        None,
        description="Second source for zip"
    )
    initial: Optional[Any] = Field(
        None,
        description="Initial accumulator for fold"
    )

    @model_validator(mode="after")
    def check_operation_fields(self):
        """Ensure each operation carries the fields it needs."""
        if self.type in (OperationType.SKIP, OperationType.TAKE) and self.count is None:
            raise ValueError(f"'{self.type.value}' needs a count")
        if self.type in (OperationType.MAP, OperationType.FILTER, OperationType.FOLD):
            if not self.function:
                raise ValueError(f"'{self.type.value}' needs a function name")
        if self.type == OperationType.ZIP and self.other is None:
            raise ValueError("'zip' needs an other source")
        return self


class PipelineLimits(BaseModel):
    """Guards applied when a pipeline is evaluated on request."""
    max_output_items: int = Field(
        default=10_000,
        ge=1,
        le=1_000_000,
        description="Maximum number of elements a pipeline may yield"
    )
    max_source_pulls: int = Field(
        default=100_000,
        ge=1,
        le=1_000_000,
        description="Maximum number of elements pulled from each source"
    )


class PipelineRequest(BaseModel):
    """Evaluate a pipeline: a source, then operations in order."""
    source: SourceSpec = Field(..., description="Pipeline source")
    operations: List[OperationSpec] = Field(
        default_factory=list,
        description="Operations applied left to right"
    )
    limits: PipelineLimits = Field(default_factory=PipelineLimits)

    @field_validator("operations")
    @classmethod
    def fold_must_be_last(cls, v):
        """fold is terminal; nothing may follow it."""
        for i, op in enumerate(v):
            if op.type == OperationType.FOLD and i != len(v) - 1:
                raise ValueError("fold must be the last operation")
        return v

    @property
    def is_bounded(self) -> bool:
        """Whether the described pipeline ends without relying on the pull budget"""
        bounded = self.source.is_bounded
        for op in self.operations:
            if op.type == OperationType.TAKE:
                bounded = True
            elif op.type == OperationType.ZIP:
                bounded = bounded or op.other.is_bounded
        return bounded

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "source": {"kind": "from", "items": [1, 2, 3, 4, 5]},
                "operations": [
                    {"type": "skip", "count": 1},
                    {"type": "map", "function": "double"},
                    {"type": "take", "count": 2}
                ]
            }
        }
    )


class PerformanceInfo(BaseModel):
    """Timing and memory for one evaluation."""
    processing_time_ms: float = Field(..., ge=0, description="Wall time in milliseconds")
    memory_usage_mb: float = Field(..., ge=0, description="Peak traced memory in MB")
    output_size: int = Field(..., ge=0, description="Number of elements produced")


class PipelineResponse(BaseModel):
    """Result of evaluating a pipeline."""
    ok: bool = Field(True, description="Whether evaluation succeeded")
    items: Optional[List[Any]] = Field(
        None,
        description="Elements produced, when the pipeline does not end in fold"
    )
    result: Optional[Any] = Field(
        None,
        description="Accumulator, when the pipeline ends in fold"
    )
    operations_applied: List[str] = Field(default_factory=list)
    performance: PerformanceInfo


class OperationsResponse(BaseModel):
    """What a client can put in a pipeline."""
    sources: List[str] = Field(..., description="Source kinds")
    operations: List[str] = Field(..., description="Operation types")
    functions: Dict[str, List[str]] = Field(
        ...,
        description="Registered function names per operation"
    )


class ErrorResponse(BaseModel):
    """Error envelope."""
    error: str = Field(..., description="Error message")
    error_code: str = Field(..., description="Machine readable error code")
    timestamp: str = Field(..., description="Error timestamp")


class HealthCheckResponse(BaseModel):
    """Health check payload."""
    status: str = Field(..., description="healthy or unhealthy")
    timestamp: str = Field(..., description="Check timestamp")
    checks: Dict[str, bool] = Field(default_factory=dict)
