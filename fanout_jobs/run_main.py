"""CLI entrypoint for manual and clock-triggered runs."""

import argparse
import asyncio
import json
import logging
import sys

from fanout_jobs.config import PipelineConfig
from fanout_jobs.errors import ConfigurationError, OperationNotFoundError
from fanout_jobs.runtime import create_db_pool, load_handlers, setup_logging
from fanout_jobs.service import PipelineService


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Run an enqueue pass, or process one tenant immediately"
    )
    parser.add_argument(
        "--tenant-id",
        help="Process only this tenant, bypassing the queue",
    )
    parser.add_argument(
        "--job-key",
        help="Job key to run for (default: the most recently elapsed period)",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="With --tenant-id, run even if a completion record exists",
    )
    return parser.parse_args(argv)


async def run(config: PipelineConfig, args, logger: logging.Logger) -> dict:
    """Build the pipeline, run once and return the summary as a dict."""
    db_pool = None
    try:
        logger.info("Creating database connection pool...")
        db_pool = await create_db_pool(config)
        service = PipelineService.from_config(config, db_pool, logger=logger)

        if args.tenant_id:
            result = await service.run_tenant(
                args.tenant_id, job_key=args.job_key, force=args.force
            )
            return {"mode": "tenant", "result": result.model_dump()}

        summary = await service.run_enqueue_pass(args.job_key)
        return {"mode": "enqueue", "result": summary.model_dump()}
    finally:
        if db_pool:
            logger.info("Closing database connection pool...")
            await db_pool.close()


def main(argv=None):
    """Main entrypoint for runs."""
    setup_logging()
    logger = logging.getLogger(__name__)
    args = parse_args(argv)

    try:
        config = PipelineConfig.from_env()
        load_handlers(config.handlers_module, logger)
    except (ConfigurationError, ImportError) as e:
        logger.error(f"Failed to load config: {e}")
        sys.exit(1)

    try:
        output = asyncio.run(run(config, args, logger))
    except OperationNotFoundError as e:
        logger.error(f"Failed to build pipeline: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)

    print(json.dumps(output, indent=2, default=str))


if __name__ == "__main__":
    main()
