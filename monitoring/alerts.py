"""
============================================================================
UPTIMEKIT - ALERT MANAGER
============================================================================
Delivers transition events raised by the check executor:

    monitor_down, monitor_up, ssl_expiring, ssl_expired, ssl_valid

Design
------
The executor calls ``enqueue()``, which is non-blocking: it pushes a
payload onto an internal asyncio.Queue. A separate ``_dispatch_loop()``
task pulls items off the queue one at a time and delivers them:

1.  a local notification: a titled log record plus, unless disabled,
    a desktop popup with sound via desktop-notifier, and
2.  if the monitor has a webhook URL, a JSON POST via httpx.

Delivery failures are logged and never reach the scheduler. Every event
is delivered; there is no cooldown, rate limit or escalation.
============================================================================
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

import httpx
from desktop_notifier import DEFAULT_SOUND, DesktopNotifier, Urgency

from config.constants import NotificationEvent
from config.settings import Settings
from utils.helpers import StringHelper, TimeHelper
from utils.logger import get_logger


logger = get_logger("AlertManager")


# ============================================================================
# ALERT PAYLOAD (internal queue item)
# ============================================================================

@dataclass
class AlertPayload:
    """
    Lightweight payload that travels through the internal queue.
    Monitor fields are copied at enqueue time.
    """
    event: NotificationEvent
    monitor_id: Optional[int]
    name: Optional[str]
    url: str
    webhook_url: Optional[str] = None
    days_remaining: Optional[int] = None
    occurred_at: datetime = field(default_factory=TimeHelper.get_utc_now)

    @property
    def display_name(self) -> str:
        return StringHelper.display_name(self.name, self.url)

    @classmethod
    def from_monitor(cls, event: NotificationEvent, monitor: Any,
                     days_remaining: Optional[int] = None) -> "AlertPayload":
        """Build from a Monitor row or a MonitorSnapshot."""
        url = getattr(monitor, "target", None) or getattr(monitor, "url")
        monitor_id = getattr(monitor, "monitor_id", None)
        if monitor_id is None:
            monitor_id = getattr(monitor, "id", None)
        return cls(
            event=NotificationEvent(event),
            monitor_id=monitor_id,
            name=getattr(monitor, "name", None),
            url=url,
            webhook_url=getattr(monitor, "webhook_url", None),
            days_remaining=days_remaining,
        )


def build_notification(payload: AlertPayload, critical_days: int = 7,
                       warning_days: int = 14) -> Optional[Tuple[str, str]]:
    """
    Title and message of the local notification, or None when the event
    does not warrant one (an ssl_expiring beyond the warning window).
    """
    name = payload.display_name
    event = payload.event

    if event == NotificationEvent.MONITOR_DOWN:
        return "❌ Monitor Down", f"{name} is not responding"
    if event == NotificationEvent.MONITOR_UP:
        return "✅ Monitor Back Up", f"{name} is now responding"
    if event == NotificationEvent.SSL_EXPIRED:
        return "❌ SSL Certificate Expired", f"{name} certificate has expired!"
    if event == NotificationEvent.SSL_VALID:
        return "✅ SSL Certificate Valid", f"{name} certificate is now valid"

    days = payload.days_remaining
    if days is None:
        return None
    if days <= critical_days:
        return "🚨 SSL Certificate Critical", f"{name} certificate expires in {days} days!"
    if days <= warning_days:
        return "⚠️ SSL Certificate Warning", f"{name} certificate expires in {days} days"
    return None


def build_webhook_body(payload: AlertPayload) -> Dict[str, Any]:
    return {
        "event": payload.event.value,
        "monitor": {
            "name": payload.display_name,
            "url": payload.url,
            "status": "down" if payload.event == NotificationEvent.MONITOR_DOWN else "up",
            "time": TimeHelper.to_iso(payload.occurred_at),
        },
    }


# ============================================================================
# ALERT MANAGER
# ============================================================================

class AlertManager:
    """
    Central hub for notification delivery.

    Parameters
    ----------
    settings : Settings
        Application settings (NOTIFY_* and the SSL thresholds).
    transport : httpx.AsyncBaseTransport | None
        Optional transport for the webhook client.
    desktop : DesktopNotifier | None
        Desktop notifier; created on first use when omitted.
    """

    WARNING_EVENTS = (NotificationEvent.MONITOR_DOWN, NotificationEvent.SSL_EXPIRED)

    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        desktop: Optional[DesktopNotifier] = None,
    ):
        self.settings = settings
        self.enabled = settings.notifier.enabled
        self.local_enabled = settings.notifier.local_enabled
        self.desktop_enabled = self.local_enabled and settings.notifier.desktop_enabled
        self.sound = settings.notifier.sound
        self.webhook_timeout = settings.notifier.webhook_timeout
        self.critical_days = settings.monitoring.ssl_critical_days
        self.warning_days = settings.monitoring.ssl_warning_days
        self._transport = transport
        self._desktop = desktop

        # --- internal queue ---
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=settings.notifier.queue_size)

        # --- counters ---
        self.delivered = 0
        self.webhooks_sent = 0
        self.webhooks_failed = 0
        self.desktop_shown = 0
        self.desktop_failed = 0
        self.dropped = 0

        # --- lifecycle ---
        self._running = False
        self._dispatch_task: Optional[asyncio.Task] = None

        logger.info(
            f"AlertManager created (enabled={self.enabled}, "
            f"queue_size={self._queue.maxsize})"
        )

    # ------------------------------------------------------------------
    # PUBLIC API
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start the background dispatch loop."""
        if self._running:
            logger.warning("AlertManager is already running")
            return
        self._running = True
        self._dispatch_task = asyncio.create_task(self._dispatch_loop(), name="alert-dispatch")
        logger.info("✓ AlertManager started, dispatch loop active")

    async def stop(self) -> None:
        """Stop the dispatch loop and deliver what is still queued."""
        self._running = False
        if self._dispatch_task:
            self._dispatch_task.cancel()
            try:
                await self._dispatch_task
            except asyncio.CancelledError:
                pass
            self._dispatch_task = None

        drained = 0
        while not self._queue.empty():
            payload = self._queue.get_nowait()
            await self._deliver_safely(payload)
            self._queue.task_done()
            drained += 1
        if drained:
            logger.info(f"[AlertManager] Delivered {drained} remaining notification(s) on shutdown")
        logger.info("✓ AlertManager stopped")

    def enqueue(self, event: NotificationEvent, monitor: Any,
                days_remaining: Optional[int] = None) -> bool:
        """
        Non-blocking enqueue of a notification.

        Returns
        -------
        bool
            True if enqueued, False if disabled or the queue is full.
        """
        if not self.enabled:
            return False

        payload = AlertPayload.from_monitor(event, monitor, days_remaining)
        try:
            self._queue.put_nowait(payload)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(
                f"[AlertManager] Queue is full ({self._queue.maxsize}). "
                f"Dropping {payload.event.value} for {payload.display_name}"
            )
            return False

        logger.debug(
            f"[AlertManager] Enqueued {payload.event.value} for monitor "
            f"{payload.monitor_id}, queue_size={self._queue.qsize()}"
        )
        return True

    async def wait_idle(self) -> None:
        """Block until every queued notification has been processed."""
        await self._queue.join()

    # ------------------------------------------------------------------
    # DISPATCH LOOP
    # ------------------------------------------------------------------

    async def _dispatch_loop(self) -> None:
        logger.info("[AlertManager] Dispatch loop started")
        while self._running:
            try:
                payload = await self._queue.get()
            except asyncio.CancelledError:
                break

            try:
                await self._deliver_safely(payload)
            finally:
                self._queue.task_done()
        logger.info("[AlertManager] Dispatch loop exited")

    async def _deliver_safely(self, payload: AlertPayload) -> None:
        try:
            await self.deliver(payload)
        except Exception:
            logger.exception(f"[AlertManager] Failed to deliver {payload.event.value}")

    async def deliver(self, payload: AlertPayload) -> None:
        """Local notification first, then the webhook if configured."""
        if self.local_enabled:
            notification = self.notify_local(payload)
            if notification is not None and self.desktop_enabled:
                await self.show_desktop(payload, *notification)

        if payload.webhook_url and self._wants_webhook(payload):
            await self.send_webhook(payload)

        self.delivered += 1

    def _wants_webhook(self, payload: AlertPayload) -> bool:
        # ssl_expiring outside the warning window is not announced anywhere
        if payload.event == NotificationEvent.SSL_EXPIRING:
            return build_notification(payload, self.critical_days, self.warning_days) is not None
        return True

    # ------------------------------------------------------------------
    # LOCAL NOTIFICATION
    # ------------------------------------------------------------------

    def notify_local(self, payload: AlertPayload) -> Optional[Tuple[str, str]]:
        notification = build_notification(payload, self.critical_days, self.warning_days)
        if notification is None:
            logger.debug(
                f"[AlertManager] {payload.event.value} for {payload.display_name} "
                f"({payload.days_remaining} days) needs no notification"
            )
            return None

        title, message = notification
        level = "WARNING" if self._is_urgent(payload) else "INFO"
        logger.log(level, f"{title}: {message}")
        return notification

    def _is_urgent(self, payload: AlertPayload) -> bool:
        return payload.event in self.WARNING_EVENTS or (
            payload.event == NotificationEvent.SSL_EXPIRING
            and payload.days_remaining is not None
            and payload.days_remaining <= self.critical_days
        )

    def _desktop_notifier(self) -> DesktopNotifier:
        if self._desktop is None:
            self._desktop = DesktopNotifier(app_name=self.settings.app_name)
        return self._desktop

    async def show_desktop(self, payload: AlertPayload, title: str, message: str) -> bool:
        """
        Show the notification as a desktop popup.

        Returns True when the popup was dispatched. Failures (no
        notification service, headless host) are logged only.
        """
        try:
            await self._desktop_notifier().send(
                title=title,
                message=message,
                urgency=Urgency.Critical if self._is_urgent(payload) else Urgency.Normal,
                sound=DEFAULT_SOUND if self.sound else None,
            )
        except Exception as e:
            self.desktop_failed += 1
            logger.warning(f"[AlertManager] Failed to show desktop notification: {e}")
            return False

        self.desktop_shown += 1
        return True

    # ------------------------------------------------------------------
    # WEBHOOK
    # ------------------------------------------------------------------

    async def send_webhook(self, payload: AlertPayload) -> bool:
        """
        POST the event to the monitor's webhook.

        Returns True on a 2xx response. Failures are logged only.
        """
        body = build_webhook_body(payload)
        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(self.webhook_timeout),
                transport=self._transport,
            ) as client:
                response = await client.post(payload.webhook_url, json=body)
            response.raise_for_status()
        except httpx.HTTPError as e:
            self.webhooks_failed += 1
            logger.error(f"[AlertManager] Failed to send webhook to {payload.webhook_url}: {e}")
            return False

        self.webhooks_sent += 1
        logger.debug(
            f"[AlertManager] Webhook {payload.event.value} → {payload.webhook_url} "
            f"({response.status_code})"
        )
        return True

    # ------------------------------------------------------------------
    # DIAGNOSTIC
    # ------------------------------------------------------------------

    def get_stats(self) -> Dict[str, Any]:
        """Return current state of the alert manager for diagnostics."""
        return {
            "queue_size": self._queue.qsize(),
            "delivered": self.delivered,
            "webhooks_sent": self.webhooks_sent,
            "webhooks_failed": self.webhooks_failed,
            "desktop_shown": self.desktop_shown,
            "desktop_failed": self.desktop_failed,
            "dropped": self.dropped,
            "is_running": self._running,
        }


# ============================================================================
# END OF ALERT MANAGER MODULE
# ============================================================================
