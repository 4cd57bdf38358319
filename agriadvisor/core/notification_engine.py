"""
Notification Engine for AgriAdvisor
Outbreak alerts pushed to nearby farmers through pluggable channels
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Any, Optional, Callable, Set

import aiohttp
from sqlalchemy import select

from agriadvisor.core.database import db_service
from agriadvisor.core.models import (
    AlertType, DiseaseOutbreakDB, OutbreakAlertDB, OutbreakSeverity, UserDB, utcnow
)

KM_PER_DEGREE = 111.0


@dataclass
class Notification:
    """Alert message for a set of recipients"""
    id: str
    title: str
    message: str
    outbreak_id: Optional[str] = None
    severity: Optional[str] = None
    recipients: List[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)


class NotificationChannel(ABC):
    """Abstract base class for notification channels"""

    @abstractmethod
    async def send(self, notification: Notification) -> bool:
        """Send notification through this channel"""

    @property
    @abstractmethod
    def channel_name(self) -> str:
        """Get channel name"""


class LogChannel(NotificationChannel):
    """Writes alerts to the application log"""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    async def send(self, notification: Notification) -> bool:
        self.logger.warning(
            f"[{notification.severity or 'alert'}] {notification.message} "
            f"({len(notification.recipients)} recipients)"
        )
        return True

    @property
    def channel_name(self) -> str:
        return "log"


class WebhookChannel(NotificationChannel):
    """Webhook notification channel"""

    def __init__(self, webhook_url: str, api_key: Optional[str] = None, timeout_seconds: int = 10):
        self.webhook_url = webhook_url
        self.api_key = api_key
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self.logger = logging.getLogger(__name__)

    async def send(self, notification: Notification) -> bool:
        """Send notification via webhook"""

        if not self.webhook_url:
            return False

        headers = {'Content-Type': 'application/json'}
        if self.api_key:
            headers['Authorization'] = f'Bearer {self.api_key}'

        payload = {
            'id': notification.id,
            'title': notification.title,
            'message': notification.message,
            'outbreak_id': notification.outbreak_id,
            'severity': notification.severity,
            'recipients': notification.recipients,
            'timestamp': notification.created_at.isoformat()
        }

        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.post(self.webhook_url, json=payload, headers=headers) as response:
                    if response.status >= 400:
                        self.logger.warning(f"Webhook returned HTTP {response.status} for {notification.id}")
                        return False

            self.logger.info(f"Webhook notification sent: {notification.title}")
            return True

        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.logger.error(f"Failed to send webhook notification: {e}")
            return False

    @property
    def channel_name(self) -> str:
        return "webhook"


class NotificationEngine:
    """Multi-channel notification engine"""

    def __init__(self):
        self.channels: Dict[str, NotificationChannel] = {}
        self.sent_notifications: List[Notification] = []
        self.logger = logging.getLogger(__name__)

    def add_channel(self, channel: NotificationChannel):
        """Add a notification channel"""
        self.channels[channel.channel_name] = channel
        self.logger.info(f"Added notification channel: {channel.channel_name}")

    async def send_notification(self, notification: Notification,
                                channels: Optional[List[str]] = None) -> Dict[str, bool]:
        """Send notification through specified channels"""

        if not channels:
            channels = list(self.channels.keys())

        results = {}

        for channel_name in channels:
            channel = self.channels.get(channel_name)
            if channel is None:
                self.logger.warning(f"Channel {channel_name} not found")
                results[channel_name] = False
                continue

            try:
                results[channel_name] = await channel.send(notification)
            except Exception as e:
                self.logger.error(f"Error sending notification via {channel_name}: {e}")
                results[channel_name] = False

            if not results[channel_name]:
                self.logger.warning(f"Failed to send notification via {channel_name}")

        self.sent_notifications.append(notification)

        # Keep only last 1000 notifications
        if len(self.sent_notifications) > 1000:
            self.sent_notifications = self.sent_notifications[-1000:]

        return results


def build_notification_engine(config: Dict[str, Any]) -> NotificationEngine:
    engine = NotificationEngine()
    engine.add_channel(LogChannel())

    webhook_config = config.get('notifications', {}).get('channels', {}).get('webhook', {})
    if webhook_config.get('enabled') and webhook_config.get('url'):
        engine.add_channel(WebhookChannel(webhook_config['url'], webhook_config.get('api_key') or None))

    return engine


def format_alert_message(outbreak: DiseaseOutbreakDB) -> str:
    return (
        f"DISEASE ALERT: {outbreak.confirmed_cases} farmers reported {outbreak.disease} "
        f"in {outbreak.crop} near {outbreak.address}. Check your crops immediately!"
    )


class OutbreakAlertDispatcher:
    """Fire-and-forget alerting for outbreaks that cross the alert threshold"""

    def __init__(self, engine: Optional[NotificationEngine] = None,
                 session_factory: Optional[Callable] = None,
                 alert_radius_km: float = 25, case_threshold: int = 10):
        self.engine = engine or NotificationEngine()
        self.session_factory = session_factory or db_service.get_session
        self.alert_radius_km = alert_radius_km
        self.case_threshold = case_threshold
        self.logger = logging.getLogger(__name__)
        self._tasks: Set[asyncio.Task] = set()

    def should_alert(self, outbreak: DiseaseOutbreakDB) -> bool:
        return (outbreak.severity_level == OutbreakSeverity.CRITICAL
                or outbreak.confirmed_cases >= self.case_threshold)

    def dispatch(self, outbreak_id: str) -> asyncio.Task:
        """Schedule alert delivery without waiting for it"""
        task = asyncio.create_task(self._run(outbreak_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, outbreak_id: str) -> None:
        try:
            await self.send_outbreak_alert(outbreak_id)
        except Exception as e:
            self.logger.error(f"Outbreak alert for {outbreak_id} failed: {e}", exc_info=True)

    async def send_outbreak_alert(self, outbreak_id: str) -> Optional[Dict[str, bool]]:
        """Record an app alert for nearby farmers and push it to every channel"""
        async with self.session_factory() as session:
            outbreak = await session.get(DiseaseOutbreakDB, outbreak_id)
            if outbreak is None:
                self.logger.warning(f"Outbreak {outbreak_id} disappeared before alerting")
                return None

            recipients = await self.find_nearby_farmers(session, outbreak.latitude, outbreak.longitude)
            message = format_alert_message(outbreak)

            outbreak.alerts_sent.append(OutbreakAlertDB(
                alert_type=AlertType.APP.value,
                recipients=len(recipients),
                message=message,
            ))

            notification = Notification(
                id=f"outbreak_{outbreak.id}_{int(utcnow().timestamp())}",
                title=f"{outbreak.disease} outbreak in {outbreak.region}",
                message=message,
                outbreak_id=outbreak.id,
                severity=outbreak.severity,
                recipients=recipients,
            )

        self.logger.info(f"Alerting {len(recipients)} farmers about outbreak {outbreak_id}")
        return await self.engine.send_notification(notification)

    async def find_nearby_farmers(self, session, latitude: float, longitude: float) -> List[str]:
        delta = self.alert_radius_km / KM_PER_DEGREE
        result = await session.execute(
            select(UserDB.id).where(
                UserDB.is_active.is_(True),
                UserDB.latitude.between(latitude - delta, latitude + delta),
                UserDB.longitude.between(longitude - delta, longitude + delta),
            )
        )
        return list(result.scalars().all())

    async def wait_for_pending(self) -> None:
        """Wait for scheduled alerts to finish"""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await self.wait_for_pending()
