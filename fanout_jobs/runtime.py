"""Process setup shared by the command-line entrypoints."""

import importlib
import logging
import os
from typing import Optional

import asyncpg

from fanout_jobs.config import PipelineConfig


def setup_logging():
    """Setup logging configuration."""
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


async def create_db_pool(config: PipelineConfig):
    """Create database connection pool."""
    return await asyncpg.create_pool(config.db_dsn, min_size=2, max_size=10)


def load_handlers(handlers_module: Optional[str], logger: Optional[logging.Logger] = None):
    """
    Import the module that registers domain operations.

    A module that fails to import is a setup error and propagates.
    """
    logger = logger or logging.getLogger(__name__)
    if not handlers_module:
        logger.warning(
            "FANOUT_JOBS_HANDLERS_MODULE not set, only built-in operations are available"
        )
        return

    importlib.import_module(handlers_module)
    logger.info(f"Loaded operations from {handlers_module}")
