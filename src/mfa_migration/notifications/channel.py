"""
Notification channel protocol and in-memory implementation.

A NotificationChannel is the transport behind MFANotifier: one call per
e-mail, one per SMS. Implementations raise NotificationDeliveryError (or any
other exception) when a message could not be handed over.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from mfa_migration.exceptions import NotificationDeliveryError

logger = logging.getLogger(__name__)


@runtime_checkable
class NotificationChannel(Protocol):
    """
    Protocol for delivering user notifications.

    Example:
        >>> class SesChannel:
        ...     async def send_email(self, address, subject, html_body):
        ...         await ses.send_email(...)
        ...     async def send_sms(self, phone_number, text):
        ...         await sns.publish(...)
    """

    async def send_email(self, address: str, subject: str, html_body: str) -> None:
        """
        Send an HTML e-mail.

        Raises:
            NotificationDeliveryError: If the message was not accepted.
        """
        ...

    async def send_sms(self, phone_number: str, text: str) -> None:
        """
        Send a text message.

        Raises:
            NotificationDeliveryError: If the message was not accepted.
        """
        ...


@dataclass(frozen=True)
class SentEmail:
    address: str
    subject: str
    html_body: str


@dataclass(frozen=True)
class SentSms:
    phone_number: str
    text: str


class InMemoryNotificationChannel:
    """
    Records every delivery instead of sending it.

    Addresses registered with fail_for() raise NotificationDeliveryError.

    Example:
        >>> channel = InMemoryNotificationChannel()
        >>> await channel.send_sms("+15550100", "hello")
        >>> channel.sms[0].text
        'hello'
    """

    def __init__(self) -> None:
        self.emails: list[SentEmail] = []
        self.sms: list[SentSms] = []
        self._failing: set[str] = set()
        self._lock = asyncio.Lock()

    def fail_for(self, recipient: str) -> None:
        """Make deliveries to an e-mail address or phone number fail."""
        self._failing.add(recipient)

    def clear(self) -> None:
        self.emails.clear()
        self.sms.clear()
        self._failing.clear()

    async def send_email(self, address: str, subject: str, html_body: str) -> None:
        if address in self._failing:
            raise NotificationDeliveryError(f"E-mail to {address} rejected", channel="email")
        async with self._lock:
            self.emails.append(SentEmail(address, subject, html_body))
        logger.debug("Recorded e-mail to %s: %s", address, subject)

    async def send_sms(self, phone_number: str, text: str) -> None:
        if phone_number in self._failing:
            raise NotificationDeliveryError(f"SMS to {phone_number} rejected", channel="sms")
        async with self._lock:
            self.sms.append(SentSms(phone_number, text))
        logger.debug("Recorded SMS to %s", phone_number)

    def emails_to(self, address: str) -> list[SentEmail]:
        return [email for email in self.emails if email.address == address]


__all__ = [
    "NotificationChannel",
    "InMemoryNotificationChannel",
    "SentEmail",
    "SentSms",
]
