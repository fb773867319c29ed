import asyncio
import logging
import sys
import os

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.database import engine, init_models, wait_for_database
from core.logging import setup_logging

setup_logging()
logger = logging.getLogger(__name__)


async def init_database():
    logger.info("Connecting to database...")
    await wait_for_database()

    logger.info("Creating tables (price_data, sync_log, user_settings)...")
    await init_models()
    logger.info("Tables created successfully.")

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(init_database())
