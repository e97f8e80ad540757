"""Database models."""
from prompt_library.core.database import Base
from prompt_library.models.user import User
from prompt_library.models.prompt import Prompt, PromptOptimization
from prompt_library.models.usage import UsageLog

__all__ = [
    "Base",
    "User",
    "Prompt",
    "PromptOptimization",
    "UsageLog",
]
