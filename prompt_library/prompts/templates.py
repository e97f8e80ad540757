"""Prompt templates used to instruct the LLM vendors."""
from __future__ import annotations

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, field_validator


class TemplateVariable(BaseModel):
	"""Single variable required to render a template."""

	name: str = Field(..., description="Variable name (used in template)")
	description: Optional[str] = None
	required: bool = True


class InstructionTemplate(BaseModel):
	"""Instruction template with an optional system part."""

	name: str
	version: str = "1.0.0"
	system: Optional[str] = Field(None, description="System prompt, if the vendor call uses one")
	user: str = Field(..., description="User message template")
	variables: List[TemplateVariable] = Field(default_factory=list)

	@field_validator("variables")
	@classmethod
	def ensure_unique_vars(cls, v: List[TemplateVariable]) -> List[TemplateVariable]:
		"""Ensure variable names are unique."""
		names = [var.name for var in v]
		duplicates = {name for name in names if names.count(name) > 1}
		if duplicates:
			raise ValueError(f"Duplicate variable name: {', '.join(sorted(duplicates))}")
		return v

	def render(self, data: Dict[str, Any]) -> "RenderedInstruction":
		"""Render the template using provided data.

		Raises:
			ValueError: If a required variable is missing
		"""
		missing = [var.name for var in self.variables if var.required and var.name not in data]
		if missing:
			raise ValueError(f"Missing variables: {', '.join(missing)}")

		try:
			rendered_user = self.user.format(**data)
		except KeyError as exc:
			raise ValueError(f"Missing variable in data: {exc}") from exc

		return RenderedInstruction(
			system=self.system,
			user=rendered_user,
			template_name=self.name,
			template_version=self.version,
		)


class RenderedInstruction(BaseModel):
	"""Rendered instruction ready for an LLM call."""

	system: Optional[str]
	user: str
	template_name: str
	template_version: str

	def to_messages(self) -> List[Dict[str, str]]:
		"""Chat-completion messages; the system part is omitted when empty."""
		messages = []
		if self.system:
			messages.append({"role": "system", "content": self.system})
		messages.append({"role": "user", "content": self.user})
		return messages


OPTIMIZATION_TEMPLATE = InstructionTemplate(
	name="optimize-prompt",
	version="1.0.0",
	user=(
		"You are an expert at optimising AI prompts. Your task is to improve the following prompt "
		"to make it clearer, more effective, and more likely to produce high-quality results.\n\n"
		"Analyse the prompt and provide an improved version that:\n"
		"1. Is more specific and detailed\n"
		"2. Uses clear and unambiguous language\n"
		"3. Includes relevant context and constraints\n"
		"4. Follows best practices for prompt engineering\n"
		"5. Maintains the original intent\n\n"
		"Original prompt:\n"
		"{prompt}\n\n"
		"Please provide ONLY the optimised prompt without any explanation or meta-commentary. "
		"Just return the improved prompt text."
	),
	variables=[TemplateVariable(name="prompt", required=True, description="Prompt text to optimize")],
)
