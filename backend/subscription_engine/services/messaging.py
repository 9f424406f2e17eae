from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from uuid import uuid4

from subscription_engine.core.settings import settings
from subscription_engine.services.errors import TransportError


logger = logging.getLogger(__name__)


class MessageTransport(ABC):
    """Outbound message sink used by the reminder sweep."""

    @abstractmethod
    def send(self, destination: str, body: str) -> str:
        """Deliver ``body`` to ``destination`` and return the provider message id.

        Raises TransportError when the provider refuses or cannot be reached.
        """


class LoggingTransport(MessageTransport):
    """Writes messages to the log instead of a provider. Used in development."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []

    def send(self, destination: str, body: str) -> str:
        message_id = f"log-{uuid4().hex[:16]}"
        self.sent.append((destination, body))
        logger.info("messaging.log.send destination=%s message_id=%s chars=%s", destination, message_id, len(body))
        return message_id


def _e164(raw: str) -> str:
    digits = re.sub(r"[^0-9+]", "", str(raw or ""))
    if not digits.startswith("+"):
        digits = "+" + digits.lstrip("+")
    return digits


class TwilioWhatsAppTransport(MessageTransport):
    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        timeout_s: float = 15,
    ) -> None:
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = _e164(from_number)
        self.timeout_s = timeout_s

    def send(self, destination: str, body: str) -> str:
        import requests

        url = f"https://api.twilio.com/2010-04-01/Accounts/{self.account_sid}/Messages.json"
        try:
            resp = requests.post(
                url,
                data={
                    "From": f"whatsapp:{self.from_number}",
                    "To": f"whatsapp:{_e164(destination)}",
                    "Body": body,
                },
                auth=(self.account_sid, self.auth_token),
                timeout=self.timeout_s,
            )
        except requests.RequestException as exc:
            raise TransportError("transport_unreachable", str(exc)) from exc

        try:
            data = resp.json() or {}
        except ValueError:
            data = {}
        if resp.status_code >= 400:
            raise TransportError(
                "transport_rejected",
                f"Twilio error ({resp.status_code}): {data.get('message') or 'unknown error'}",
            )
        sid = str(data.get("sid") or "").strip()
        if not sid:
            raise TransportError("transport_rejected", "Twilio response carried no message sid")
        return sid


def get_transport() -> MessageTransport:
    kind = settings.reminder_transport
    if kind == "twilio":
        if not (settings.twilio_account_sid and settings.twilio_auth_token and settings.twilio_whatsapp_number):
            raise RuntimeError("REMINDER_TRANSPORT=twilio but TWILIO_* credentials are not set")
        return TwilioWhatsAppTransport(
            account_sid=settings.twilio_account_sid,
            auth_token=settings.twilio_auth_token,
            from_number=settings.twilio_whatsapp_number,
            timeout_s=settings.twilio_timeout_s,
        )
    return LoggingTransport()
