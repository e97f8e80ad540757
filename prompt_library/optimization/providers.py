"""LLM vendor clients normalized to a single completion shape."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from anthropic import AsyncAnthropic
from openai import AsyncOpenAI

from prompt_library.core.config import settings
from prompt_library.prompts.templates import RenderedInstruction
from prompt_library.usage.schemas import Provider


logger = logging.getLogger(__name__)


class ProviderError(Exception):
	"""Vendor call failed or returned something unusable."""


@dataclass(frozen=True)
class Completion:
	"""Vendor response converted at the boundary."""

	text: str
	input_tokens: int
	output_tokens: int
	model: str
	model_echo: Optional[str] = None
	message_id: Optional[str] = None
	stop_reason: Optional[str] = None


class LLMProvider:
	"""Base class: one "complete text" operation per vendor."""

	provider: Provider

	def __init__(self, api_key: Optional[str], default_model: str):
		self.api_key = api_key
		self.default_model = default_model
		self._client: Any = None

	def _build_client(self) -> Any:
		raise NotImplementedError

	def _get_client(self) -> Any:
		if self._client is None:
			if not self.api_key:
				raise ProviderError(f"{self.provider.value} API key is not configured")
			self._client = self._build_client()
		return self._client

	async def complete(
		self,
		instruction: RenderedInstruction,
		model: Optional[str] = None,
		max_output_tokens: int = 4096,
	) -> Completion:
		raise NotImplementedError


class AnthropicProvider(LLMProvider):
	"""Vendor A: Anthropic Messages API."""

	provider = Provider.ANTHROPIC

	def _build_client(self) -> AsyncAnthropic:
		return AsyncAnthropic(api_key=self.api_key)

	async def complete(
		self,
		instruction: RenderedInstruction,
		model: Optional[str] = None,
		max_output_tokens: int = 4096,
	) -> Completion:
		model = model or self.default_model
		client = self._get_client()
		logger.debug(f"Sending message request to {model}")

		kwargs: dict[str, Any] = {
			"model": model,
			"max_tokens": max_output_tokens,
			"messages": [{"role": "user", "content": instruction.user}],
		}
		if instruction.system:
			kwargs["system"] = instruction.system

		response = await client.messages.create(**kwargs)

		blocks = getattr(response, "content", None) or []
		text = next(
			(block.text for block in blocks if getattr(block, "type", None) == "text"),
			None,
		)
		if not text:
			raise ProviderError("Anthropic response contained no text content")

		usage = getattr(response, "usage", None)
		return Completion(
			text=text,
			input_tokens=int(getattr(usage, "input_tokens", 0) or 0),
			output_tokens=int(getattr(usage, "output_tokens", 0) or 0),
			model=model,
			model_echo=getattr(response, "model", None),
			message_id=getattr(response, "id", None),
			stop_reason=getattr(response, "stop_reason", None),
		)


class OpenAIProvider(LLMProvider):
	"""Vendor B: OpenAI Chat Completions API."""

	provider = Provider.OPENAI

	def _build_client(self) -> AsyncOpenAI:
		return AsyncOpenAI(api_key=self.api_key)

	async def complete(
		self,
		instruction: RenderedInstruction,
		model: Optional[str] = None,
		max_output_tokens: int = 4096,
	) -> Completion:
		model = model or self.default_model
		client = self._get_client()
		logger.debug(f"Sending completion request to {model}")

		response = await client.chat.completions.create(
			model=model,
			max_tokens=max_output_tokens,
			messages=instruction.to_messages(),
		)

		choices = getattr(response, "choices", None) or []
		if not choices:
			raise ProviderError("OpenAI response contained no choices")
		message = getattr(choices[0], "message", None)
		text = getattr(message, "content", None)
		if not text:
			raise ProviderError("OpenAI response contained no message content")

		usage = getattr(response, "usage", None)
		return Completion(
			text=text,
			input_tokens=int(getattr(usage, "prompt_tokens", 0) or 0),
			output_tokens=int(getattr(usage, "completion_tokens", 0) or 0),
			model=model,
			model_echo=getattr(response, "model", None),
			message_id=getattr(response, "id", None),
			stop_reason=getattr(choices[0], "finish_reason", None),
		)


def build_providers() -> dict[Provider, LLMProvider]:
	"""Providers configured from settings, keyed by vendor."""
	return {
		Provider.ANTHROPIC: AnthropicProvider(settings.anthropic_api_key, settings.anthropic_model),
		Provider.OPENAI: OpenAIProvider(settings.openai_api_key, settings.openai_model),
	}
