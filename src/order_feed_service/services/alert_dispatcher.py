"""Audio alert dispatch for new pending orders.

The dispatcher is an explicit state object: it remembers the pending count from
the previous delivery and fires only when the count strictly increases while
unmuted. The previous count always advances, muted or not, so unmuting never
replays an increase that was already seen.

Playback is fire-and-forget. It runs as its own task, and any failure is logged
and counted but never raised to the caller.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable

import httpx

from order_feed_service.errors import PlaybackError
from order_feed_service.observability.metrics import record_alert_fired, record_playback_failure

logger = logging.getLogger(__name__)


class AudioPlayer(ABC):
    """Something that can play the new-order cue."""

    @abstractmethod
    async def play(self) -> None:
        """Start playback.

        Raises:
            PlaybackError: If the device refuses or is unreachable
        """


class NullAudioPlayer(AudioPlayer):
    """Player that only logs. Used when no chime endpoint is configured."""

    def __init__(self) -> None:
        self.play_count = 0

    async def play(self) -> None:
        self.play_count += 1
        logger.info("New order alert (no audio device configured)")


class HttpChimePlayer(AudioPlayer):
    """Rings a kitchen display or chime device over HTTP."""

    def __init__(self, url: str, volume: float = 0.3, timeout_seconds: float = 2.0) -> None:
        """Initialize the player.

        Args:
            url: Endpoint that plays the cue when POSTed to
            volume: Playback volume between 0 and 1
            timeout_seconds: Request timeout
        """
        self.url = url
        self.volume = volume
        self.timeout_seconds = timeout_seconds

    async def play(self) -> None:
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.post(
                    self.url, json={"sound": "new_order", "volume": self.volume}
                )
                response.raise_for_status()
        except (httpx.HTTPStatusError, httpx.RequestError) as e:
            raise PlaybackError(f"Chime request to {self.url} failed: {e}") from e


class AlertDispatcher:
    """Decides when to play the new-order cue and starts playback."""

    def __init__(
        self,
        player: AudioPlayer,
        muted: bool = False,
        previous_pending: int = 0,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            player: Player used for the cue
            muted: Whether alerts start muted
            previous_pending: Pending count assumed before the first delivery
        """
        self.player = player
        self.muted = muted
        self.previous_pending = previous_pending
        self._tasks: set[asyncio.Task[None]] = set()

    def set_muted(self, muted: bool) -> None:
        """Toggle the mute gate. Does not touch the remembered pending count."""
        self.muted = muted
        logger.info(f"Order alerts {'muted' if muted else 'unmuted'}")

    def evaluate(self, pending_orders: int) -> bool:
        """Apply one delivery's pending count.

        Args:
            pending_orders: Pending count from the latest snapshot

        Returns:
            bool: True if this delivery should trigger playback
        """
        fire = pending_orders > self.previous_pending and not self.muted
        self.previous_pending = pending_orders
        return fire

    def dispatch(
        self,
        pending_orders: int,
        on_played: Callable[[], None] | None = None,
    ) -> bool:
        """Evaluate a delivery and start playback if it fires.

        Must be called from a running event loop. Playback runs in the
        background; the caller does not wait for it.

        Args:
            pending_orders: Pending count from the latest snapshot
            on_played: Called after playback starts successfully

        Returns:
            bool: True if playback was started
        """
        if not self.evaluate(pending_orders):
            return False

        record_alert_fired()
        task = asyncio.get_running_loop().create_task(self._play(on_played))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return True

    async def wait_idle(self) -> None:
        """Wait for any playback still in progress."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks))

    async def _play(self, on_played: Callable[[], None] | None) -> None:
        try:
            await self.player.play()
        except PlaybackError as e:
            logger.warning(f"Alert playback failed: {e}")
            record_playback_failure(type(e).__name__)
            return
        except Exception as e:
            logger.exception(f"Unexpected alert playback error: {e}")
            record_playback_failure(type(e).__name__)
            return

        if on_played is not None:
            on_played()
