"""CLI entrypoint for the dispatcher."""

import argparse
import asyncio
import json
import logging
import signal
import sys

from fanout_jobs.config import PipelineConfig
from fanout_jobs.dispatcher import run_dispatcher_loop
from fanout_jobs.errors import ConfigurationError
from fanout_jobs.runtime import create_db_pool, load_handlers, setup_logging
from fanout_jobs.service import PipelineService


def main(argv=None):
    """Main entrypoint for the dispatcher."""
    setup_logging()
    logger = logging.getLogger(__name__)

    parser = argparse.ArgumentParser(description="Fan-out jobs dispatcher")
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single dispatch pass and exit (for an external clock)",
    )
    parser.add_argument(
        "--interval-seconds",
        type=float,
        default=None,
        help="Seconds between passes (default: FANOUT_JOBS_DISPATCH_INTERVAL_SECONDS)",
    )
    args = parser.parse_args(argv)

    try:
        config = PipelineConfig.from_env()
        load_handlers(config.handlers_module, logger)
    except (ConfigurationError, ImportError) as e:
        logger.error(f"Failed to load config: {e}")
        sys.exit(1)

    # Setup shutdown event
    shutdown_event = asyncio.Event()

    def signal_handler(signum, frame):
        logger.info(f"Received signal {signum}, shutting down...")
        shutdown_event.set()

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    async def run():
        """Async main function."""
        db_pool = None
        try:
            logger.info("Creating database connection pool...")
            db_pool = await create_db_pool(config)
            service = PipelineService.from_config(config, db_pool, logger=logger)

            if args.once:
                summary = await service.run_dispatch_pass()
                # In-process workers must finish before the pool closes.
                await service.drain()
                print(json.dumps(summary.model_dump(), indent=2))
                return

            logger.info("Starting dispatcher loop...")
            await run_dispatcher_loop(
                dispatcher=service.dispatcher,
                logger=logger,
                loop_interval_seconds=args.interval_seconds or config.dispatch_interval_seconds,
                shutdown_event=shutdown_event,
            )
        except Exception as e:
            logger.error(f"Fatal error in dispatcher: {e}", exc_info=True)
            sys.exit(1)
        finally:
            if db_pool:
                logger.info("Closing database connection pool...")
                await db_pool.close()

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
