"""Periodic deletion of expired chat sessions."""

import asyncio
import logging

from .store import SessionStore

logger = logging.getLogger(__name__)


async def run_session_sweeper(
    store: SessionStore,
    interval_seconds: float,
    stop_event: asyncio.Event,
) -> None:
    """Call store.sweep() every interval until stop_event is set.

    A failed sweep is logged and retried on the next tick.
    """
    logger.info(f"Session sweeper started (every {interval_seconds}s)")

    while not stop_event.is_set():
        try:
            await store.sweep()
        except Exception as e:
            logger.error(f"Session sweep failed: {e}")

        try:
            await asyncio.wait_for(stop_event.wait(), timeout=interval_seconds)
        except asyncio.TimeoutError:
            continue

    logger.info("Session sweeper stopped")
