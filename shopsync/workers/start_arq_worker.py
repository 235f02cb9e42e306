#!/usr/bin/env python3
"""Start ARQ worker for Shopify sync jobs.

USAGE:
    python -m shopsync.workers.start_arq_worker

    Or directly:
    arq shopsync.workers.arq_worker.WorkerSettings
"""

import logging
import sys

from arq import run_worker

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

logger = logging.getLogger(__name__)


def main():
    """Start the ARQ worker."""
    from shopsync.utils.env import load_env_file, require_env
    load_env_file()

    # Fail before Redis is touched; every job needs both
    require_env("DATABASE_URL")
    require_env("TOKEN_ENCRYPTION_KEY")

    from shopsync.workers.arq_worker import WorkerSettings

    logger.info("Starting ARQ worker...")
    run_worker(WorkerSettings)


if __name__ == "__main__":
    main()
