"""Database initialization utilities."""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.base import Base
from app.db.session import engine
from app.models.department import Department
from app.rules.models import DepartmentSpec

logger = logging.getLogger(__name__)


async def create_tables() -> None:
    """Create all database tables."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created")


async def seed_departments(
    session: AsyncSession,
    specs: list[DepartmentSpec],
) -> list[Department]:
    """Create departments named by the routing ruleset that do not exist yet.

    Existing departments are left untouched, including their load.

    Args:
        session: Database session
        specs: Departments declared by the routing ruleset

    Returns:
        Newly created departments
    """
    result = await session.execute(select(Department.code))
    existing = set(result.scalars().all())

    created: list[Department] = []
    for definition in specs:
        if definition.code in existing:
            continue
        department = Department(
            code=definition.code,
            name=definition.name,
            average_treatment_minutes=definition.average_treatment_minutes,
            max_capacity=definition.max_capacity,
            current_load=0,
            is_active=True,
        )
        session.add(department)
        created.append(department)

    if created:
        await session.commit()
        logger.info(f"Seeded departments: {', '.join(d.code for d in created)}")
    else:
        logger.info("All routing departments already exist, skipping seed")

    return created


async def init_db(session: AsyncSession, specs: list[DepartmentSpec]) -> None:
    """Initialize database with required data.

    Args:
        session: Database session
        specs: Departments declared by the routing ruleset
    """
    await seed_departments(session, specs)
    logger.info("Database initialization complete")
