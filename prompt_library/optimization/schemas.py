"""Pydantic schemas for prompt optimization."""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from prompt_library.usage.schemas import Provider


class OptimizationRequest(BaseModel):
    """Request payload to optimize a stored prompt."""

    prompt_id: int = Field(..., description="Prompt being optimized")
    prompt_text: str = Field(..., description="Text sent to the vendors")

    @field_validator("prompt_text")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Prompt text is required")
        return v


class SingleOptimizationRequest(OptimizationRequest):
    provider: Provider = Provider.ANTHROPIC


class AttemptResponse(BaseModel):
    """Outcome of one vendor call."""

    provider: Provider
    model: str
    succeeded: bool
    output_text: Optional[str] = None
    tokens_input: int
    tokens_output: int
    cost_usd: Decimal
    latency_ms: int
    error_message: Optional[str] = None
    history_persisted: bool

    class Config:
        from_attributes = True


class ComparisonResponse(BaseModel):
    version: int
    result_a: AttemptResponse
    result_b: AttemptResponse
    errors: dict[str, Optional[str]]
    total_time_ms: int


class SingleOptimizationResponse(BaseModel):
    version: int
    result: AttemptResponse
    total_time_ms: int


class OptimizationVersionResponse(BaseModel):
    """Stored optimization history row."""

    id: int
    prompt_id: int
    version: int
    provider: str
    model: str
    input_text: str
    output_text: str
    tokens_input: Optional[int]
    tokens_output: Optional[int]
    cost_usd: Optional[Decimal]
    latency_ms: Optional[int]
    created_at: datetime

    class Config:
        from_attributes = True
