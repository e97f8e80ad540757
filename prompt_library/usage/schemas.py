"""Pydantic schemas for LLM usage logging."""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator


class Provider(str, Enum):
    """LLM vendors used for optimization."""
    ANTHROPIC = "anthropic"
    OPENAI = "openai"


class OperationType(str, Enum):
    """Kind of LLM operation being logged."""
    OPTIMIZE = "optimize"
    GENERATE = "generate"
    ANALYZE = "analyze"
    CHAT = "chat"


class UsageLogData(BaseModel):
    """Usage row to insert; enforces the token and failure invariants."""

    user_id: int
    prompt_id: Optional[int] = None
    provider: Provider
    model: str
    operation_type: OperationType = OperationType.OPTIMIZE
    input_tokens: int = Field(0, ge=0)
    output_tokens: int = Field(0, ge=0)
    total_tokens: int = Field(0, ge=0)
    cost_usd: Decimal = Field(Decimal("0"), ge=0)
    latency_ms: int = Field(0, ge=0)
    success: bool = True
    error_message: Optional[str] = None
    api_message_id: Optional[str] = None
    stop_reason: Optional[str] = None

    @model_validator(mode="after")
    def check_invariants(self) -> "UsageLogData":
        if self.total_tokens != self.input_tokens + self.output_tokens:
            raise ValueError("total_tokens must equal input_tokens + output_tokens")
        if self.success and self.error_message:
            raise ValueError("error_message is only allowed on failed calls")
        if not self.success and (self.total_tokens or self.cost_usd):
            raise ValueError("failed calls must have zero tokens and zero cost")
        return self


class UsageLogResponse(BaseModel):
    """Usage row as returned by the logs endpoints."""

    id: int
    user_id: int
    prompt_id: Optional[int]
    provider: str
    model: str
    operation_type: str
    input_tokens: int
    output_tokens: int
    total_tokens: int
    cost_usd: Decimal
    latency_ms: int
    success: bool
    error_message: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True
