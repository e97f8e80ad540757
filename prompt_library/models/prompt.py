"""Prompt and optimization history models."""
from __future__ import annotations

import json
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from prompt_library.core.database import Base


class Prompt(Base):
    """A user's stored prompt."""

    __tablename__ = "prompts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    tags_json: Mapped[str] = mapped_column(Text, default="[]", nullable=False)
    favorite: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Optimization tracking
    original_prompt: Mapped[Optional[str]] = mapped_column(Text)
    optimized_with: Mapped[Optional[str]] = mapped_column(String(50))
    optimization_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_optimized_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    user: Mapped["User"] = relationship("User", back_populates="prompts")
    optimizations: Mapped[list["PromptOptimization"]] = relationship(
        "PromptOptimization", back_populates="prompt", cascade="all, delete-orphan"
    )

    @property
    def tags(self) -> list[str]:
        try:
            value = json.loads(self.tags_json or "[]")
        except json.JSONDecodeError:
            return []
        return [str(tag) for tag in value] if isinstance(value, list) else []

    @tags.setter
    def tags(self, value: list[str]) -> None:
        self.tags_json = json.dumps(list(value))

    def __repr__(self) -> str:
        return f"<Prompt(id={self.id}, user_id={self.user_id}, title={self.title})>"


class PromptOptimization(Base):
    """One provider's optimized output for a prompt, grouped by version."""

    __tablename__ = "prompt_optimizations"
    __table_args__ = (
        UniqueConstraint("prompt_id", "version", "provider", name="uq_prompt_optimizations_version_provider"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    prompt_id: Mapped[int] = mapped_column(ForeignKey("prompts.id", ondelete="CASCADE"), index=True, nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    provider: Mapped[str] = mapped_column(String(50), nullable=False)
    model: Mapped[str] = mapped_column(String(100), nullable=False)
    input_text: Mapped[str] = mapped_column(Text, nullable=False)
    output_text: Mapped[str] = mapped_column(Text, nullable=False)
    tokens_input: Mapped[Optional[int]] = mapped_column(Integer)
    tokens_output: Mapped[Optional[int]] = mapped_column(Integer)
    cost_usd: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 8))
    latency_ms: Mapped[Optional[int]] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    prompt: Mapped[Prompt] = relationship("Prompt", back_populates="optimizations")

    def __repr__(self) -> str:
        return (
            f"<PromptOptimization(id={self.id}, prompt_id={self.prompt_id}, "
            f"version={self.version}, provider={self.provider})>"
        )
