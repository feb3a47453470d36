#!/usr/bin/env python3
"""
Initialize default database values.
This script is run on startup to populate the role catalogue.
"""

import asyncio
import logging
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from fitleague.database.db import AsyncSessionLocal
from fitleague.database.models import Role, RoleName

logger = logging.getLogger(__name__)


async def seed_roles(session: AsyncSession) -> int:
    """
    Insert any missing default roles.

    Returns:
        Number of roles created
    """
    result = await session.execute(select(Role.role_name))
    existing = set(result.scalars().all())
    created = 0
    for role in RoleName:
        if role.value not in existing:
            session.add(Role(role_name=role.value))
            created += 1
    await session.flush()
    return created


async def init_defaults():
    """Initialize default database values."""
    logger.info("Initializing default database values...")

    async with AsyncSessionLocal() as session:
        created = await seed_roles(session)
        await session.commit()

    if created:
        logger.info(f"✓ Created {created} default roles")
    else:
        logger.info("✓ Default roles already exist")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(init_defaults())
