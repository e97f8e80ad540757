import os
import tempfile
from datetime import datetime
from decimal import Decimal

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

# Ensure required env vars exist before app imports settings
_TEST_DB_DIR = tempfile.mkdtemp(prefix="prompt_library_tests_")
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_TEST_DB_DIR}/test.db")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("ANTHROPIC_API_KEY", "test-anthropic-key")
os.environ.setdefault("OPENAI_API_KEY", "test-openai-key")

TEST_DATABASE_URL = os.environ["DATABASE_URL"]

# File-backed SQLite without pooling: every session opens its own connection,
# so concurrent usage-log writes never share one
engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    future=True,
    poolclass=NullPool,
)

# Session factory bound to the test engine - MUST be created BEFORE importing app
TestingSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

# Override AsyncSessionLocal BEFORE importing app, so the usage store writes to the test DB
import prompt_library.core.database as db_module  # noqa: E402
db_module.AsyncSessionLocal = TestingSessionLocal

from prompt_library.core.database import Base, get_db  # noqa: E402
from prompt_library.main import app as fastapi_app  # noqa: E402
from prompt_library.core.security import get_password_hash, create_access_token  # noqa: E402
from prompt_library.models.user import User  # noqa: E402
from prompt_library.models.prompt import Prompt  # noqa: E402
from prompt_library.models.usage import UsageLog  # noqa: E402
from prompt_library.optimization.providers import Completion  # noqa: E402
from prompt_library.optimization.router import get_providers  # noqa: E402
from prompt_library.usage.schemas import Provider  # noqa: E402


class FakeProvider:
    """Stand-in for a vendor client; records calls and returns canned output."""

    def __init__(
        self,
        provider: Provider,
        default_model: str,
        text: str = "Optimized prompt",
        error: Exception | None = None,
        input_tokens: int = 1000,
        output_tokens: int = 500,
    ):
        self.provider = provider
        self.default_model = default_model
        self.text = text
        self.error = error
        self.input_tokens = input_tokens
        self.output_tokens = output_tokens
        self.calls = []

    async def complete(self, instruction, model=None, max_output_tokens=4096):
        self.calls.append(instruction)
        if self.error is not None:
            raise self.error
        return Completion(
            text=self.text,
            input_tokens=self.input_tokens,
            output_tokens=self.output_tokens,
            model=model or self.default_model,
            model_echo=model or self.default_model,
            message_id=f"msg_{self.provider.value}",
            stop_reason="end_turn",
        )


def make_providers(anthropic_error=None, openai_error=None):
    return {
        Provider.ANTHROPIC: FakeProvider(
            Provider.ANTHROPIC,
            "claude-sonnet-4-5-20250929",
            text="Optimized by Claude",
            error=anthropic_error,
        ),
        Provider.OPENAI: FakeProvider(
            Provider.OPENAI,
            "gpt-4o",
            text="Optimized by GPT",
            error=openai_error,
        ),
    }


@pytest.fixture(autouse=True)
async def setup_database():
    """Fresh schema for every test."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    await engine.dispose()


@pytest.fixture()
async def db_session(setup_database):
    """Yield a database session and roll back after test."""
    async with TestingSessionLocal() as session:
        try:
            yield session
        finally:
            await session.rollback()


@pytest.fixture()
async def client(monkeypatch, setup_database):
    """FastAPI test client with DB dependency overridden."""

    async def override_get_db():
        async with TestingSessionLocal() as session:
            try:
                yield session
            finally:
                await session.rollback()

    fastapi_app.dependency_overrides[get_db] = override_get_db
    # Ensure other modules using AsyncSessionLocal pick up the test session maker
    monkeypatch.setattr("prompt_library.core.database.AsyncSessionLocal", TestingSessionLocal)

    async with AsyncClient(transport=ASGITransport(app=fastapi_app), base_url="http://test") as ac:
        yield ac

    fastapi_app.dependency_overrides.clear()


@pytest.fixture()
def use_providers():
    """Install fake vendor clients for the optimization endpoints."""

    def _install(anthropic_error=None, openai_error=None):
        providers = make_providers(anthropic_error=anthropic_error, openai_error=openai_error)
        fastapi_app.dependency_overrides[get_providers] = lambda: providers
        return providers

    return _install


@pytest.fixture()
async def user_factory(db_session):
    """Factory to create users in the test DB."""

    async def _create_user(
        email: str = "user@example.com",
        username: str = "user",
        password: str = "Secret123",
        **kwargs,
    ) -> User:
        user = User(
            email=email,
            username=username,
            hashed_password=get_password_hash(password),
            **kwargs,
        )
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        return user

    return _create_user


@pytest.fixture()
async def user(user_factory) -> User:
    return await user_factory()


@pytest.fixture()
async def other_user(user_factory) -> User:
    return await user_factory(email="other@example.com", username="other")


@pytest.fixture()
async def admin_user(user_factory) -> User:
    return await user_factory(email="admin@example.com", username="admin", is_superuser=True)


def bearer(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(data={'sub': user.id})}"}


@pytest.fixture()
def auth_header(user) -> dict:
    return bearer(user)


@pytest.fixture()
def admin_header(admin_user) -> dict:
    return bearer(admin_user)


@pytest.fixture()
async def prompt_factory(db_session):
    """Factory to create prompts in the test DB."""

    async def _create_prompt(
        owner: User,
        title: str = "Email writer",
        content: str = "Write a polite follow-up email.",
        **kwargs,
    ) -> Prompt:
        tags = kwargs.pop("tags", [])
        prompt = Prompt(user_id=owner.id, title=title, content=content, **kwargs)
        prompt.tags = tags
        db_session.add(prompt)
        await db_session.commit()
        await db_session.refresh(prompt)
        return prompt

    return _create_prompt


@pytest.fixture()
async def usage_log_factory(db_session):
    """Factory to insert usage log rows directly."""

    async def _create_log(
        owner: User,
        created_at: datetime,
        provider: str = "anthropic",
        model: str = "claude-sonnet-4-5-20250929",
        cost_usd: str = "0.01",
        latency_ms: int = 100,
        input_tokens: int = 100,
        output_tokens: int = 50,
        success: bool = True,
        **kwargs,
    ) -> UsageLog:
        if not success:
            input_tokens = output_tokens = 0
            cost_usd = "0"
        log = UsageLog(
            user_id=owner.id,
            provider=provider,
            model=model,
            operation_type="optimize",
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            total_tokens=input_tokens + output_tokens,
            cost_usd=Decimal(cost_usd),
            latency_ms=latency_ms,
            success=success,
            error_message=None if success else "boom",
            created_at=created_at,
            **kwargs,
        )
        db_session.add(log)
        await db_session.commit()
        await db_session.refresh(log)
        return log

    return _create_log
