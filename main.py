
import asyncio
import locale
import logging
from typing import Dict

from core.initialization import initialize_components, load_configuration
from utils.logger import configure_logging

METRICS_EVERY_S = 300


def init_collation(logger: logging.Logger = None) -> bool:
    """
    Adopt the user's locale for string collation so sorted text columns
    (instrument, status, signal) follow locale order rather than code points.
    """
    try:
        locale.setlocale(locale.LC_COLLATE, "")
    except locale.Error as exc:
        (logger or logging.getLogger(__name__)).warning(
            "Locale collation unavailable (%s); sorting by code point", exc
        )
        return False
    return True


async def _log_metrics_forever(scheduler, every_s: float = METRICS_EVERY_S) -> None:
    while True:
        await asyncio.sleep(every_s)
        scheduler.log_metrics()


async def run_engine(config: Dict = None) -> None:
    """
    Entrypoint coroutine for the prediction log engine.

    Loads the configuration, configures a dedicated logger, wires the
    components and starts the session (timer + eviction sweep).  When the
    dashboard is enabled its JSON API is served alongside.  Runs until
    cancelled.
    """
    config = config or load_configuration()

    # Handlers from config.env (LOG_FILE, LOG_MAX_MB, ...) before any async work.
    logger = configure_logging(config)
    init_collation(logger)

    components = initialize_components(config, logger=logger)
    session = components["session"]
    notifier = components["notifier"]
    predictor = components["predictor"]

    background = [asyncio.create_task(_log_metrics_forever(components["scheduler"]))]

    dash = components["config"].get_dashboard()
    if dash["enabled"]:
        from dashboard.server import run_dashboard  # lazy: aiohttp.web only when served

        background.append(
            asyncio.create_task(
                run_dashboard(
                    session,
                    notifier,
                    port=dash["port"],
                    display_count=components["config"].get_display_count(),
                    log_level=config.get("LOG_LEVEL", "INFO"),
                )
            )
        )

    session.start()
    try:
        await session.wait()
    finally:
        for task in background:
            task.cancel()
        await asyncio.gather(*background, return_exceptions=True)
        await session.stop()
        batch = components["scheduler"].batch_task
        if batch is not None and not batch.done():
            await asyncio.gather(batch, return_exceptions=True)
        await notifier.drain()
        await predictor.close()
        logger.info("Engine stopped.")


def main():
    try:
        asyncio.run(run_engine())
    except KeyboardInterrupt:
        pass
    except Exception as e:
        print(f"❌ Engine terminated due to error: {e}")

if __name__ == "__main__":
    main()
