"""CLI entrypoint for the HTTP server."""

import argparse
import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI

from fanout_jobs.config import PipelineConfig
from fanout_jobs.errors import ConfigurationError
from fanout_jobs.fastapi_router import create_pipeline_router
from fanout_jobs.runtime import create_db_pool, load_handlers, setup_logging
from fanout_jobs.service import PipelineService


def create_app(config: PipelineConfig, logger: Optional[logging.Logger] = None) -> FastAPI:
    """
    Create a FastAPI app serving the pipeline router.

    The database pool and service are created on startup and closed on
    shutdown, after in-process workers have finished.
    """
    logger = logger or logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        db_pool = await create_db_pool(config)
        app.state.service = PipelineService.from_config(config, db_pool, logger=logger)
        try:
            yield
        finally:
            await app.state.service.drain()
            await db_pool.close()

    app = FastAPI(title="fanout-jobs", lifespan=lifespan)
    app.include_router(
        create_pipeline_router(lambda: app.state.service, auth_token=config.auth_token)
    )
    return app


def main(argv=None):
    """Main entrypoint for the server."""
    setup_logging()
    logger = logging.getLogger(__name__)

    parser = argparse.ArgumentParser(description="Fan-out jobs HTTP server")
    parser.add_argument("--host", default="0.0.0.0", help="Bind address (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=8000, help="Port (default: 8000)")
    args = parser.parse_args(argv)

    try:
        config = PipelineConfig.from_env()
        load_handlers(config.handlers_module, logger)
    except (ConfigurationError, ImportError) as e:
        logger.error(f"Failed to load config: {e}")
        sys.exit(1)

    uvicorn.run(create_app(config, logger), host=args.host, port=args.port)


if __name__ == "__main__":
    main()
