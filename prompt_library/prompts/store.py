"""Prompt persistence: ownership checks, optimization counter and history rows."""
from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from prompt_library.models.prompt import Prompt, PromptOptimization


logger = logging.getLogger(__name__)


class PromptStore:
    """Prompt and optimization-history operations bound to one session."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_prompt(self, prompt_id: int) -> Optional[Prompt]:
        return await self.db.get(Prompt, prompt_id)

    async def get_owned_prompt(self, prompt_id: int, user_id: int) -> Prompt:
        """
        Load a prompt and verify the caller owns it.

        Raises:
            HTTPException: 404 if missing, 403 if owned by another user
        """
        prompt = await self.get_prompt(prompt_id)
        if prompt is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Prompt not found")
        if prompt.user_id != user_id:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Unauthorized")
        return prompt

    async def increment_optimization_counter(self, prompt_id: int, version: int) -> None:
        """Record that ``version`` was produced; saves the original text on first use."""
        prompt = await self.get_prompt(prompt_id)
        if prompt is None:
            raise LookupError(f"Prompt {prompt_id} disappeared")

        if not prompt.original_prompt:
            prompt.original_prompt = prompt.content
        prompt.optimization_count = max(prompt.optimization_count or 0, version)
        prompt.last_optimized_at = datetime.utcnow()
        try:
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

    async def insert_optimization_version(
        self,
        prompt_id: int,
        user_id: int,
        version: int,
        provider: str,
        model: str,
        input_text: str,
        output_text: str,
        tokens_input: int,
        tokens_output: int,
        cost_usd: Decimal,
        latency_ms: int,
    ) -> PromptOptimization:
        row = PromptOptimization(
            prompt_id=prompt_id,
            user_id=user_id,
            version=version,
            provider=provider,
            model=model,
            input_text=input_text,
            output_text=output_text,
            tokens_input=tokens_input,
            tokens_output=tokens_output,
            cost_usd=cost_usd,
            latency_ms=latency_ms,
        )
        self.db.add(row)
        try:
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        await self.db.refresh(row)
        logger.info(f"Saved {provider} optimization for prompt {prompt_id} as version {version}")
        return row

    async def list_optimizations(self, prompt_id: int, limit: int = 50) -> list[PromptOptimization]:
        """History rows, latest version first."""
        result = await self.db.execute(
            select(PromptOptimization)
            .where(PromptOptimization.prompt_id == prompt_id)
            .order_by(PromptOptimization.version.desc(), PromptOptimization.provider)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def get_optimization(self, prompt_id: int, optimization_id: int) -> PromptOptimization:
        result = await self.db.execute(
            select(PromptOptimization).where(
                PromptOptimization.id == optimization_id,
                PromptOptimization.prompt_id == prompt_id,
            )
        )
        optimization = result.scalar_one_or_none()
        if optimization is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Optimization version not found",
            )
        return optimization

    async def restore_optimization(self, prompt: Prompt, optimization: PromptOptimization) -> Prompt:
        """Replace the prompt's live content with a stored optimization output."""
        if not prompt.original_prompt:
            prompt.original_prompt = prompt.content
        prompt.content = optimization.output_text
        prompt.optimized_with = optimization.provider
        prompt.updated_at = datetime.utcnow()
        await self.db.commit()
        await self.db.refresh(prompt)
        return prompt
