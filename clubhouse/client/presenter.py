from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from ..config.loader import get_meeting_refresh_settings
from .api import ClubhouseAPIError, ClubhouseClient
from .voice import VoiceCapture, VoiceCaptureError

logger = logging.getLogger(__name__)


@dataclass
class Notification:
    """A transient message for the user, shaped like a UI toast."""

    title: str
    description: str
    variant: str = "default"


class MeetingRoomPresenter:
    """
    Client-side view of one open meeting.

    Two background tasks re-read the meeting detail and the transcript on
    their own intervals; a relevant realtime event wakes the matching task
    early. Commands never touch local state directly: on success the view is
    re-fetched, on failure a notification is emitted and the view is left as
    the last successful read showed it.
    """

    def __init__(
        self,
        api: ClubhouseClient,
        meeting_id: str,
        *,
        user_id: Optional[str] = None,
        capture: Optional[VoiceCapture] = None,
        notify: Optional[Callable[[Notification], None]] = None,
        detail_interval: Optional[float] = None,
        messages_interval: Optional[float] = None,
    ) -> None:
        refresh = get_meeting_refresh_settings()
        self.api = api
        self.meeting_id = meeting_id
        self.user_id = user_id
        self.capture = capture
        self._notify = notify
        self.detail_interval = detail_interval or refresh["detail_interval_seconds"]
        self.messages_interval = messages_interval or refresh["messages_interval_seconds"]
        self.polling_enabled = refresh["enabled"]

        self.meeting: Optional[Dict[str, Any]] = None
        self.messages: List[Dict[str, Any]] = []
        self.notifications: List[Notification] = []
        self._cursor: Optional[int] = None
        self._detail_wakeup = asyncio.Event()
        self._messages_wakeup = asyncio.Event()
        self._tasks: List[asyncio.Task] = []
        self._closed = False

    # --- lifecycle -------------------------------------------------------

    async def open(self) -> None:
        await self.refresh_detail()
        await self.refresh_messages()
        if self.polling_enabled:
            self._tasks = [
                asyncio.create_task(
                    self._poll(self.refresh_detail, self.detail_interval, self._detail_wakeup)
                ),
                asyncio.create_task(
                    self._poll(
                        self.refresh_messages, self.messages_interval, self._messages_wakeup
                    )
                ),
            ]

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        tasks, self._tasks = self._tasks, []
        try:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
        finally:
            if self.capture is not None:
                self.capture.release()

    async def __aenter__(self) -> "MeetingRoomPresenter":
        try:
            await self.open()
        except BaseException:
            await self.close()
            raise
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    @property
    def is_polling(self) -> bool:
        return any(not task.done() for task in self._tasks)

    async def _poll(
        self,
        refresh: Callable[[], Awaitable[None]],
        interval: float,
        wakeup: asyncio.Event,
    ) -> None:
        while True:
            try:
                await asyncio.wait_for(wakeup.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
            wakeup.clear()
            try:
                await refresh()
            except (ClubhouseAPIError, httpx.HTTPError) as exc:
                # The next tick retries; the view keeps the last good snapshot.
                logger.debug("Refresh of meeting %s failed: %s", self.meeting_id, exc)

    # --- reads -----------------------------------------------------------

    async def refresh_detail(self) -> None:
        self.meeting = await self.api.get_meeting(self.meeting_id)
        await self._sync_capture()

    async def refresh_messages(self) -> None:
        batch = await self.api.list_messages(self.meeting_id, after=self._cursor)
        if batch:
            self.messages.extend(batch)
            self._cursor = batch[-1]["sequence"]

    def handle_event(self, event: Dict[str, Any]) -> None:
        """Wake the poller that owns whatever a realtime event changed."""
        if event.get("meetingId") != self.meeting_id:
            return
        if event.get("type") == "receive_message":
            self._messages_wakeup.set()
        else:
            self._detail_wakeup.set()

    # --- commands --------------------------------------------------------

    def notify(self, notification: Notification) -> None:
        self.notifications.append(notification)
        if self._notify is not None:
            self._notify(notification)

    async def _command(self, call: Callable[[], Awaitable[Any]], *, messages: bool = False) -> bool:
        try:
            await call()
        except ClubhouseAPIError as exc:
            self.notify(Notification("Error", exc.detail, "destructive"))
            return False
        except httpx.HTTPError as exc:
            logger.warning("Command on meeting %s failed: %s", self.meeting_id, exc)
            self.notify(
                Notification("Error", str(exc) or "Could not reach the server", "destructive")
            )
            return False
        try:
            await self.refresh_detail()
            if messages:
                await self.refresh_messages()
        except (ClubhouseAPIError, httpx.HTTPError) as exc:
            # The command went through; the pollers pick up the new state.
            logger.debug("Refresh after command on %s failed: %s", self.meeting_id, exc)
        return True

    async def start(self) -> bool:
        return await self._command(lambda: self.api.start_meeting(self.meeting_id))

    async def end(self) -> bool:
        return await self._command(
            lambda: self.api.end_meeting(self.meeting_id), messages=True
        )

    async def join(self) -> bool:
        return await self._command(
            lambda: self.api.join_meeting(self.meeting_id), messages=True
        )

    async def leave(self) -> bool:
        try:
            return await self._command(
                lambda: self.api.leave_meeting(self.meeting_id), messages=True
            )
        finally:
            if self.capture is not None:
                self.capture.release()

    async def send_message(self, content: str) -> bool:
        return await self._command(
            lambda: self.api.send_message(self.meeting_id, content), messages=True
        )

    # --- voice -----------------------------------------------------------

    def _wants_capture(self) -> bool:
        meeting = self.meeting or {}
        return (
            meeting.get("status") == "active"
            and bool(meeting.get("isVoiceOnly"))
            and self.user_id is not None
            and self.user_id in (meeting.get("participants") or [])
        )

    async def _sync_capture(self) -> None:
        if self.capture is None or self._closed:
            return
        if self._wants_capture():
            if self.capture.is_active:
                return
            try:
                await self.capture.acquire()
            except VoiceCaptureError:
                self.notify(
                    Notification(
                        "Microphone Access Required",
                        "Please allow microphone access to join voice chat. "
                        "Refresh and try again.",
                        "destructive",
                    )
                )
                return
            if self._closed:
                # close() ran while the device was opening.
                self.capture.release()
                return
            self.notify(
                Notification("Voice Chat Connected", "Microphone is active and ready")
            )
        elif self.capture.is_active:
            self.capture.release()

    def toggle_mute(self) -> Optional[bool]:
        """Returns the new muted state, or None when nothing is captured."""
        if self.capture is None or not self.capture.is_active:
            return None
        muted = self.capture.toggle_mute()
        if muted:
            self.notify(Notification("Microphone Muted", "Your microphone is muted"))
        else:
            self.notify(Notification("Microphone Unmuted", "You can now speak"))
        return muted
