"""Shared FastAPI dependencies injected into route handlers."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Annotated

from fastapi import Depends, HTTPException, Request

from src.breeding.base import BreedingRepository
from src.breeding.config_loader import BreedingConfig, get_breeding_config, load_breeding_config
from src.breeding.repository import PostgresBreedingRepository
from src.config import Settings, get_settings


@dataclass(frozen=True)
class AuthContext:
    """Authenticated user context extracted from the Supabase access token."""

    user_id: uuid.UUID  # auth.users.id (the JWT ``sub``)
    email: str | None = None
    role: str = "authenticated"
    session_id: str | None = None


async def get_current_user(request: Request) -> AuthContext:
    """Extract the authenticated user from the request state.

    The Supabase auth middleware sets ``request.state.auth`` before routes run.
    """
    auth: AuthContext | None = getattr(request.state, "auth", None)
    if auth is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return auth


def get_config(settings: Annotated[Settings, Depends(get_settings)]) -> BreedingConfig:
    """The breeding config; an override path in settings wins over the bundled YAML."""
    if settings.breeding_config_path:
        return _load_override(settings.breeding_config_path)
    return get_breeding_config()


@lru_cache
def _load_override(path: str) -> BreedingConfig:
    return load_breeding_config(Path(path))


async def get_repository(
    user: Annotated[AuthContext, Depends(get_current_user)],
) -> BreedingRepository:
    """A repository scoped (via RLS) to the calling user."""
    return PostgresBreedingRepository(user.user_id)


# Annotated shortcuts for route signatures
CurrentUser = Annotated[AuthContext, Depends(get_current_user)]
AppSettings = Annotated[Settings, Depends(get_settings)]
Repo = Annotated[BreedingRepository, Depends(get_repository)]
Config = Annotated[BreedingConfig, Depends(get_config)]
