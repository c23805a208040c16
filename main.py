"""
Statsgate main entry
Wires the PUBG source, health monitor and HTTP surface
"""

import asyncio

import uvicorn
from loguru import logger

from statsgate.api import create_app
from statsgate.datasource.pubg import create_pubg_source
from statsgate.ratelimit import AdmissionController
from statsgate.services import EventSink, HealthMonitor
from statsgate.settings import global_settings
from statsgate.store import create_store
from statsgate.utils import configure_logging


async def main() -> None:
    """Main function"""
    configure_logging(global_settings.log_level)
    logger.info("Starting Statsgate...")

    events = EventSink()
    store = create_store(global_settings)
    source = create_pubg_source(global_settings, store, events=events)
    monitor = HealthMonitor(
        source.health, interval_seconds=global_settings.health_check_interval_seconds
    )
    admission = AdmissionController.from_settings(global_settings, store, events=events)

    try:
        logger.info("Performing initial health check...")
        report = await monitor.poll()
        logger.info(f"Initial health: {report.status.value}")

        logger.info("Starting health monitor...")
        monitor.start()

        app = create_app(source, admission, monitor)
        config = uvicorn.Config(
            app,
            host=global_settings.http_host,
            port=global_settings.http_port,
            log_level=global_settings.log_level.lower(),
        )
        logger.info(
            f"Statsgate is listening on {global_settings.http_host}:"
            f"{global_settings.http_port}. Press Ctrl+C to stop."
        )
        await uvicorn.Server(config).serve()

    except KeyboardInterrupt:
        logger.info("Received interrupt signal, shutting down...")
    except Exception as e:
        logger.error(f"Error in main loop: {e}")
    finally:
        logger.info("Stopping health monitor...")
        monitor.stop()

        logger.info("Closing connections...")
        await source.close()
        await store.close()

        logger.info("Statsgate stopped")


if __name__ == "__main__":
    asyncio.run(main())
