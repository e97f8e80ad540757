"""Dual-provider prompt optimization.

``compare_both`` sends the same prompt to both vendors at once and waits for
both calls to settle; a failure on one side never cancels the other. Each
call writes its own usage log as soon as it finishes. Successful outputs are
then saved as history rows sharing one version number.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from prompt_library.core.config import settings
from prompt_library.optimization.providers import LLMProvider
from prompt_library.prompts.store import PromptStore
from prompt_library.prompts.templates import OPTIMIZATION_TEMPLATE
from prompt_library.usage.pricing import PriceTable, calculate_cost
from prompt_library.usage.schemas import OperationType, Provider
from prompt_library.usage.store import UsageLogStore, failed_usage, usage_from_completion


logger = logging.getLogger(__name__)


@dataclass
class OptimizationAttemptResult:
    provider: Provider
    model: str
    succeeded: bool
    output_text: Optional[str] = None
    tokens_input: int = 0
    tokens_output: int = 0
    cost_usd: Decimal = Decimal("0")
    latency_ms: int = 0
    error_message: Optional[str] = None
    history_persisted: bool = False


@dataclass
class ComparisonResult:
    version: int
    result_a: OptimizationAttemptResult
    result_b: OptimizationAttemptResult
    total_time_ms: int

    @property
    def any_succeeded(self) -> bool:
        return self.result_a.succeeded or self.result_b.succeeded

    @property
    def errors(self) -> dict[str, Optional[str]]:
        return {
            "a": self.result_a.error_message,
            "b": self.result_b.error_message,
        }


@dataclass
class SingleOptimizationResult:
    version: int
    result: OptimizationAttemptResult
    total_time_ms: int


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


class OptimizationOrchestrator:
    """Runs optimization legs against the configured vendors."""

    def __init__(
        self,
        prompt_store: PromptStore,
        usage_store: UsageLogStore,
        providers: dict[Provider, LLMProvider],
        price_table: Optional[PriceTable] = None,
        max_output_tokens: Optional[int] = None,
    ):
        self.prompt_store = prompt_store
        self.usage_store = usage_store
        self.providers = providers
        self.price_table = price_table
        self.max_output_tokens = max_output_tokens or settings.optimization_max_tokens

    async def _next_version(self, prompt_id: int) -> int:
        prompt = await self.prompt_store.get_prompt(prompt_id)
        if prompt is None:
            raise LookupError(f"Prompt {prompt_id} not found")
        return (prompt.optimization_count or 0) + 1

    async def _log_usage(self, data_factory) -> None:
        try:
            await self.usage_store.insert(data_factory())
        except Exception as exc:
            logger.error(f"Could not build usage log: {exc}")

    async def _run_leg(
        self,
        provider: Provider,
        prompt_id: int,
        prompt_text: str,
        caller_id: int,
    ) -> OptimizationAttemptResult:
        """One vendor call. Vendor failures come back as a failed result."""
        client = self.providers[provider]
        model = client.default_model
        start = time.perf_counter()

        try:
            instruction = OPTIMIZATION_TEMPLATE.render({"prompt": prompt_text})
            completion = await client.complete(
                instruction, model=model, max_output_tokens=self.max_output_tokens
            )
        except Exception as exc:
            latency = _elapsed_ms(start)
            message = str(exc) or exc.__class__.__name__
            logger.error(f"[Optimize] {provider.value} optimization failed for prompt {prompt_id}: {message}")
            await self._log_usage(
                lambda: failed_usage(
                    user_id=caller_id,
                    provider=provider,
                    model=model,
                    error=message,
                    latency_ms=latency,
                    prompt_id=prompt_id,
                    operation_type=OperationType.OPTIMIZE,
                )
            )
            return OptimizationAttemptResult(
                provider=provider,
                model=model,
                succeeded=False,
                latency_ms=latency,
                error_message=f"Failed to optimize with {provider.value}: {message}",
            )

        latency = _elapsed_ms(start)
        cost = calculate_cost(
            completion.model, completion.input_tokens, completion.output_tokens, table=self.price_table
        )
        await self._log_usage(
            lambda: usage_from_completion(
                user_id=caller_id,
                provider=provider,
                completion=completion,
                latency_ms=latency,
                prompt_id=prompt_id,
                cost_usd=cost,
            )
        )
        return OptimizationAttemptResult(
            provider=provider,
            model=completion.model,
            succeeded=True,
            output_text=completion.text,
            tokens_input=completion.input_tokens,
            tokens_output=completion.output_tokens,
            cost_usd=cost,
            latency_ms=latency,
        )

    async def _leg_raised(
        self,
        provider: Provider,
        exc: BaseException,
        prompt_id: int,
        caller_id: int,
    ) -> OptimizationAttemptResult:
        """Failed result for a leg that raised after the vendor call; still logs its usage."""
        message = str(exc) or exc.__class__.__name__
        model = self.providers[provider].default_model
        logger.error(f"[Optimize] {provider.value} leg raised for prompt {prompt_id}: {message}")
        await self._log_usage(
            lambda: failed_usage(
                user_id=caller_id,
                provider=provider,
                model=model,
                error=message,
                latency_ms=0,
                prompt_id=prompt_id,
                operation_type=OperationType.OPTIMIZE,
            )
        )
        return OptimizationAttemptResult(
            provider=provider,
            model=model,
            succeeded=False,
            error_message=f"Failed to optimize with {provider.value}: {message}",
        )

    async def _persist_history(
        self,
        prompt_id: int,
        caller_id: int,
        version: int,
        prompt_text: str,
        results: list[OptimizationAttemptResult],
    ) -> None:
        """Save successful legs as history rows. Best-effort; flags each result."""
        succeeded = [result for result in results if result.succeeded]
        for result in succeeded:
            try:
                await self.prompt_store.insert_optimization_version(
                    prompt_id=prompt_id,
                    user_id=caller_id,
                    version=version,
                    provider=result.provider.value,
                    model=result.model,
                    input_text=prompt_text,
                    output_text=result.output_text or "",
                    tokens_input=result.tokens_input,
                    tokens_output=result.tokens_output,
                    cost_usd=result.cost_usd,
                    latency_ms=result.latency_ms,
                )
                result.history_persisted = True
            except Exception as exc:
                logger.error(
                    f"[Optimize] Failed to save {result.provider.value} history for prompt {prompt_id}: {exc}"
                )

        if succeeded:
            try:
                await self.prompt_store.increment_optimization_counter(prompt_id, version)
            except Exception as exc:
                logger.error(f"[Optimize] Failed to update optimization counter for prompt {prompt_id}: {exc}")

    async def compare_both(
        self,
        prompt_id: int,
        prompt_text: str,
        caller_id: int,
    ) -> ComparisonResult:
        """
        Optimize with vendor A and vendor B concurrently.

        The caller must already have verified ownership of ``prompt_id``.

        Returns:
            ComparisonResult; either or both legs may have failed

        Raises:
            ValueError: If prompt_text is blank
        """
        if not prompt_text or not prompt_text.strip():
            raise ValueError("Prompt text is required")

        total_start = time.perf_counter()
        version = await self._next_version(prompt_id)
        logger.info(f"[Compare Both] Running parallel optimizations for prompt {prompt_id} (version {version})")

        legs = (Provider.ANTHROPIC, Provider.OPENAI)
        settled = await asyncio.gather(
            *(self._run_leg(provider, prompt_id, prompt_text, caller_id) for provider in legs),
            return_exceptions=True,
        )

        results: list[OptimizationAttemptResult] = []
        for provider, outcome in zip(legs, settled):
            if isinstance(outcome, BaseException):
                outcome = await self._leg_raised(provider, outcome, prompt_id, caller_id)
            results.append(outcome)

        result_a, result_b = results
        comparison = ComparisonResult(
            version=version,
            result_a=result_a,
            result_b=result_b,
            total_time_ms=0,
        )

        if not comparison.any_succeeded:
            logger.warning(f"[Compare Both] Both optimizations failed for prompt {prompt_id}")
            comparison.total_time_ms = _elapsed_ms(total_start)
            return comparison

        await self._persist_history(prompt_id, caller_id, version, prompt_text, results)
        comparison.total_time_ms = _elapsed_ms(total_start)
        logger.info(
            f"[Compare Both] Finished prompt {prompt_id} version {version} in {comparison.total_time_ms}ms"
        )
        return comparison

    async def optimize_single(
        self,
        prompt_id: int,
        prompt_text: str,
        caller_id: int,
        provider: Provider,
    ) -> SingleOptimizationResult:
        """
        Optimize with one vendor only.

        Raises:
            ValueError: If prompt_text is blank
        """
        if not prompt_text or not prompt_text.strip():
            raise ValueError("Prompt text is required")

        total_start = time.perf_counter()
        version = await self._next_version(prompt_id)
        try:
            result = await self._run_leg(provider, prompt_id, prompt_text, caller_id)
        except Exception as exc:
            result = await self._leg_raised(provider, exc, prompt_id, caller_id)
        if result.succeeded:
            await self._persist_history(prompt_id, caller_id, version, prompt_text, [result])
        return SingleOptimizationResult(
            version=version,
            result=result,
            total_time_ms=_elapsed_ms(total_start),
        )
