"""Pydantic schemas for prompt management."""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from prompt_library.optimization.schemas import OptimizationVersionResponse


class PromptCreate(BaseModel):
    """Prompt creation schema."""
    title: str = Field(..., min_length=1, max_length=255)
    content: str = Field(..., min_length=1)
    tags: list[str] = Field(default_factory=list)
    favorite: bool = False

    @field_validator("title", "content")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Title and content are required")
        return v


class PromptUpdate(BaseModel):
    """Partial prompt update; unset fields are left unchanged."""
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    content: Optional[str] = Field(None, min_length=1)
    tags: Optional[list[str]] = None
    favorite: Optional[bool] = None


class PromptResponse(BaseModel):
    id: int
    user_id: int
    title: str
    content: str
    tags: list[str]
    favorite: bool
    original_prompt: Optional[str]
    optimized_with: Optional[str]
    optimization_count: int
    last_optimized_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class PromptCountResponse(BaseModel):
    count: int
    limit: Optional[int]
    can_create: bool
    is_admin: bool


class OptimizationHistoryResponse(BaseModel):
    optimizations: list[OptimizationVersionResponse]
    total: int


class RestoreResponse(BaseModel):
    success: bool = True
    message: str
    content: str
    prompt: PromptResponse
