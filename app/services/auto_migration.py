"""
Database Auto-Migration: Creates tables automatically on app startup.
Tables come from the SQLAlchemy models; existing tables are left untouched.
"""
from app.models.db_models import Base
from app.services.db_service import engine
import logging

logger = logging.getLogger(__name__)


async def run_auto_migration(bind=None):
    """Create any missing tables for the declared models."""
    bind = bind or engine
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(f"Database schema verified ({len(Base.metadata.tables)} tables)")
