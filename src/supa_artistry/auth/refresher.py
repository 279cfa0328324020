"""Token refresh worker — keeps the access token fresh in the background.

Learn: Access tokens are short-lived (an hour by default). This worker
polls the provider and refreshes the session once it's within `margin`
seconds of expiry:

  fresh → expiring → TOKEN_REFRESHED (new tokens)
                   → SIGNED_OUT (refresh token rejected = session expired)

Network failures are logged and retried on the next poll.

Usage:
    worker = TokenRefreshWorker(provider)
    task = asyncio.create_task(worker.run_loop())
    ...
    worker.stop()
"""

import asyncio
from typing import Optional

import structlog

from supa_artistry.auth.supabase import SupabaseAuthProvider
from supa_artistry.config import settings

logger = structlog.get_logger()


class TokenRefreshWorker:
    """Polls the provider and refreshes expiring sessions."""

    def __init__(
        self,
        provider: SupabaseAuthProvider,
        poll_interval: Optional[float] = None,
        margin: Optional[float] = None,
    ):
        self.provider = provider
        self.poll_interval = (
            settings.refresh_poll_interval if poll_interval is None else poll_interval
        )
        self.margin = settings.refresh_margin_seconds if margin is None else margin
        self._running = False

    async def run_loop(self) -> None:
        """Main worker loop — check the session, refresh if needed, sleep."""
        self._running = True
        logger.info("token_refresher.started", poll_interval=self.poll_interval)

        while self._running:
            try:
                await self.provider.refresh_if_needed(self.margin)
            except Exception:
                logger.exception("token_refresher.error")
            await asyncio.sleep(self.poll_interval)

    def stop(self) -> None:
        """Signal the worker to stop."""
        self._running = False
        logger.info("token_refresher.stopping")
