"""Prompt management API endpoints."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from prompt_library.auth.dependencies import get_current_active_user
from prompt_library.core.config import settings
from prompt_library.core.database import get_db
from prompt_library.models.prompt import Prompt
from prompt_library.models.user import User
from prompt_library.optimization.schemas import OptimizationVersionResponse
from prompt_library.prompts.schemas import (
    OptimizationHistoryResponse,
    PromptCountResponse,
    PromptCreate,
    PromptResponse,
    PromptUpdate,
    RestoreResponse,
)
from prompt_library.prompts.store import PromptStore


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/prompts", tags=["Prompts"])


async def _count_prompts(db: AsyncSession, user_id: int) -> int:
    result = await db.execute(select(func.count(Prompt.id)).where(Prompt.user_id == user_id))
    return result.scalar() or 0


@router.get("", response_model=list[PromptResponse])
async def list_prompts(
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
    search: Optional[str] = Query(None, description="Match against title or content"),
    tag: Optional[str] = Query(None),
    favorites: bool = Query(False),
):
    """List the caller's prompts, newest first."""
    query = select(Prompt).where(Prompt.user_id == current_user.id)
    if search:
        pattern = f"%{search}%"
        query = query.where(or_(Prompt.title.ilike(pattern), Prompt.content.ilike(pattern)))
    if favorites:
        query = query.where(Prompt.favorite.is_(True))
    query = query.order_by(Prompt.created_at.desc(), Prompt.id.desc())

    result = await db.execute(query)
    prompts = list(result.scalars().all())
    # Tags are stored as a JSON list
    if tag:
        prompts = [prompt for prompt in prompts if tag in prompt.tags]
    return prompts


@router.post("", response_model=PromptResponse, status_code=status.HTTP_201_CREATED)
async def create_prompt(
    payload: PromptCreate,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
) -> Prompt:
    """
    Create a prompt.

    Raises:
        HTTPException: 429 when a regular user already holds the maximum number of prompts
    """
    if not current_user.is_superuser:
        current = await _count_prompts(db, current_user.id)
        if current >= settings.prompt_limit:
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail={
                    "message": f"You have reached the maximum of {settings.prompt_limit} prompts",
                    "limit": settings.prompt_limit,
                    "current": current,
                },
            )

    prompt = Prompt(
        user_id=current_user.id,
        title=payload.title,
        content=payload.content,
        favorite=payload.favorite,
    )
    prompt.tags = payload.tags
    db.add(prompt)
    await db.commit()
    await db.refresh(prompt)
    logger.info(f"User {current_user.id} created prompt {prompt.id}")
    return prompt


@router.get("/count", response_model=PromptCountResponse)
async def count_prompts(
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    """Prompt count and remaining allowance."""
    current = await _count_prompts(db, current_user.id)
    is_admin = current_user.is_superuser
    return PromptCountResponse(
        count=current,
        limit=None if is_admin else settings.prompt_limit,
        can_create=is_admin or current < settings.prompt_limit,
        is_admin=is_admin,
    )


@router.get("/{prompt_id}", response_model=PromptResponse)
async def get_prompt(
    prompt_id: int,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
) -> Prompt:
    return await PromptStore(db).get_owned_prompt(prompt_id, current_user.id)


@router.put("/{prompt_id}", response_model=PromptResponse)
async def update_prompt(
    prompt_id: int,
    payload: PromptUpdate,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
) -> Prompt:
    """Update title, content, tags or favorite flag."""
    prompt = await PromptStore(db).get_owned_prompt(prompt_id, current_user.id)

    changes = payload.model_dump(exclude_unset=True)
    if "tags" in changes:
        prompt.tags = changes.pop("tags") or []
    for field, value in changes.items():
        if value is not None:
            setattr(prompt, field, value)

    await db.commit()
    await db.refresh(prompt)
    return prompt


@router.delete("/{prompt_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_prompt(
    prompt_id: int,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    """Delete a prompt and its optimization history."""
    prompt = await PromptStore(db).get_owned_prompt(prompt_id, current_user.id)
    await db.delete(prompt)
    await db.commit()
    logger.info(f"User {current_user.id} deleted prompt {prompt_id}")


@router.get("/{prompt_id}/optimizations", response_model=OptimizationHistoryResponse)
async def list_optimizations(
    prompt_id: int,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    """Optimization history for a prompt, latest version first."""
    store = PromptStore(db)
    await store.get_owned_prompt(prompt_id, current_user.id)
    optimizations = await store.list_optimizations(prompt_id, limit=settings.optimization_history_limit)
    return OptimizationHistoryResponse(
        optimizations=[OptimizationVersionResponse.model_validate(row) for row in optimizations],
        total=len(optimizations),
    )


@router.post(
    "/{prompt_id}/optimizations/restore/{optimization_id}",
    response_model=RestoreResponse,
)
async def restore_optimization(
    prompt_id: int,
    optimization_id: int,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    """Make a stored optimization output the prompt's current content."""
    store = PromptStore(db)
    prompt = await store.get_owned_prompt(prompt_id, current_user.id)
    optimization = await store.get_optimization(prompt_id, optimization_id)
    prompt = await store.restore_optimization(prompt, optimization)
    logger.info(
        f"Restored version {optimization.version} ({optimization.provider}) for prompt {prompt_id}"
    )
    return RestoreResponse(
        message=f"Restored version {optimization.version} ({optimization.provider})",
        content=prompt.content,
        prompt=PromptResponse.model_validate(prompt),
    )
