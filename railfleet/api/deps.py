from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from railfleet.core.config import get_settings
from railfleet.core.db import get_db
from railfleet.services.coordinator import TransitionCoordinator


async def get_coordinator(db: AsyncSession = Depends(get_db)) -> TransitionCoordinator:
    return TransitionCoordinator(db, settings=get_settings())


async def get_actor_id(x_actor_id: Optional[str] = Header(default=None)) -> Optional[str]:
    """Actor recorded on audit entries. Authentication happens upstream."""
    return x_actor_id
