import asyncio
import logging
import signal

from utils.logging_config import setup_logging

# Initialize centralized logging configuration
setup_logging()

import config
from db import create_db_and_tables, dispose_engine
from realtime.bus import close_change_bus, get_change_bus
from services.storage import StorageService


async def startup():
    await create_db_and_tables()
    logging.info(f"[Startup] Database ready ({config.RUNTIME_ENVIRONMENT.value})")
    if not StorageService.signing_configured():
        logging.warning("[Startup] STORAGE_SIGNING_SECRET not set, image/audio messages are rejected")

    bus = get_change_bus()
    if bus is None:
        logging.info("[Startup] REDIS_HOST not set, realtime delivery disabled (views poll only)")
    else:
        await bus.redis.ping()
        logging.info(f"[Startup] Change bus connected to {config.REDIS_HOST}:{config.REDIS_PORT}")


async def shutdown():
    logging.warning('Shutting down..')
    await close_change_bus()
    await dispose_engine()
    logging.warning('Bye!')


async def main():
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops have no signal handlers; Ctrl+C still raises KeyboardInterrupt
            pass

    await startup()
    try:
        await stop_event.wait()
    finally:
        await shutdown()


if __name__ == '__main__':
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
