"""LLM usage log model."""
from datetime import datetime
from typing import Optional
from decimal import Decimal
from sqlalchemy import String, DateTime, Integer, ForeignKey, Numeric, Text, Boolean
from sqlalchemy.orm import Mapped, mapped_column, relationship
from prompt_library.core.database import Base


class UsageLog(Base):
    """One row per LLM API call. Append-only."""

    __tablename__ = "ai_usage_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    prompt_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("prompts.id", ondelete="SET NULL"), index=True
    )

    # Call info
    provider: Mapped[str] = mapped_column(String(50), nullable=False)  # anthropic, openai
    model: Mapped[str] = mapped_column(String(100), nullable=False)
    operation_type: Mapped[str] = mapped_column(String(20), default="optimize", nullable=False)

    # Tokens
    input_tokens: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    output_tokens: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_tokens: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Cost
    cost_usd: Mapped[Decimal] = mapped_column(Numeric(12, 8), default=Decimal("0"), nullable=False)

    # Performance
    latency_ms: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Outcome
    success: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    error_message: Mapped[Optional[str]] = mapped_column(Text)

    # Vendor echo
    api_message_id: Mapped[Optional[str]] = mapped_column(String(255))
    stop_reason: Mapped[Optional[str]] = mapped_column(String(50))

    # Timestamp
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    # Relationships
    user: Mapped["User"] = relationship("User", back_populates="usage_logs")

    def __repr__(self) -> str:
        return f"<UsageLog(id={self.id}, user_id={self.user_id}, provider={self.provider}, success={self.success})>"
