"""Expire available donations whose expiry date has passed.

Run periodically (cron) against the configured store:

    foodshare-expire      (or: python -m foodshare.expiry)
"""
import asyncio
import logging

from foodshare.core.config import get_settings
from foodshare.core.observability import setup_logging
from foodshare.deps import build_store

logger = logging.getLogger("foodshare.expiry")


async def run(store) -> int:
    expired = await store.expire_overdue()
    logger.info(f"expired {expired} donation(s)")
    return expired


async def main():
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    store = build_store(settings)
    try:
        await run(store)
    finally:
        close = getattr(store, "close", None)
        if close is not None:
            close()


def cli():
    asyncio.run(main())


if __name__ == "__main__":
    cli()
