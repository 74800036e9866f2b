#!/usr/bin/env python3
"""Run script for cadence: periodic escalation ticks and catch-up generation."""

import logging
import time

from cadence.config import EngineSettings
from cadence.database.database import init_db
from cadence.engine.orchestrator import SchedulerOrchestrator

logger = logging.getLogger("cadence.run")


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    settings = EngineSettings.from_env()
    init_db()
    orchestrator = SchedulerOrchestrator.from_settings(settings)
    logger.info(f"Starting cadence runner (tick every {settings.tick_interval_sec}s)")

    while True:
        started = time.monotonic()
        try:
            orchestrator.tick()
            orchestrator.generate_missing()
        except Exception as e:
            logger.error(f"Runner iteration failed: {type(e).__name__}: {str(e)}")
        elapsed = time.monotonic() - started
        time.sleep(max(0.0, settings.tick_interval_sec - elapsed))


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        logger.info("Runner stopped")
