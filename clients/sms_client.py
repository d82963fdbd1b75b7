"""
Twilio SMS client.

Thin wrapper around the twilio REST SDK that speaks the channel transport
contract: send(to, subject, body) -> TransportResult. Credentials from Vault.
"""

import logging
import re

from twilio.base.exceptions import TwilioException
from twilio.rest import Client as TwilioClient

from core.models import TransportResult

logger = logging.getLogger(__name__)

# Twilio's cap for a concatenated message
MAX_SMS_LENGTH = 1600

_PHONE_NOISE = re.compile(r"[\s\-\(\)\.]")
_E164 = re.compile(r"^\+?[1-9]\d{1,14}$")


class SmsGatewayError(Exception):
    """Raised when Twilio rejects or fails a request."""


def normalize_phone(phone: str | None) -> str | None:
    """
    Normalize a stored phone number to E.164.

    Strips spaces, dashes, parentheses and dots. Bare 10-digit numbers are
    taken as US numbers.

    Returns:
        "+15055551234"-style string, or None if the number is unusable
    """
    if not phone:
        return None

    cleaned = _PHONE_NOISE.sub("", phone)
    if not _E164.match(cleaned):
        return None

    if cleaned.startswith("+"):
        return cleaned
    if len(cleaned) == 10:
        return f"+1{cleaned}"
    return f"+{cleaned}"


class TwilioSmsClient:
    """
    SMS channel transport.

    Usage:
        client = TwilioSmsClient(**get_sms_config())
        result = client.send("+15055551234", None, "Class starts at 9 AM")
    """

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str | None = None,
        messaging_service_sid: str | None = None,
        max_length: int = MAX_SMS_LENGTH,
        client: TwilioClient | None = None,
    ):
        """
        Initialize with Twilio credentials.

        Args:
            account_sid: Twilio account SID
            auth_token: Twilio auth token
            from_number: Sending number; ignored when messaging_service_sid is set
            messaging_service_sid: Optional messaging service to send through
            max_length: Longest body accepted
            client: Pre-built twilio Client (tests)

        Raises:
            ValueError: If credentials or sender are missing
        """
        if not account_sid:
            raise ValueError("account_sid is required")
        if not auth_token:
            raise ValueError("auth_token is required")
        if not from_number and not messaging_service_sid:
            raise ValueError("from_number or messaging_service_sid is required")

        self.from_number = from_number
        self.messaging_service_sid = messaging_service_sid
        self.max_length = max_length
        self._client = client or TwilioClient(account_sid, auth_token)

    def _create_message(self, to: str, body: str):
        """
        Call the Twilio Messages API.

        Raises:
            SmsGatewayError: On any Twilio or transport failure
        """
        params = {"body": body, "to": to}
        if self.messaging_service_sid:
            params["messaging_service_sid"] = self.messaging_service_sid
        else:
            params["from_"] = self.from_number

        try:
            return self._client.messages.create(**params)
        except TwilioException as e:
            code = getattr(e, "code", None)
            logger.error(f"Twilio rejected SMS to {to} (code={code}): {e}")
            raise SmsGatewayError(f"Twilio error: {e}")
        except Exception as e:
            logger.error(f"Twilio request failed for {to}: {e}")
            raise SmsGatewayError(f"Request failed: {e}")

    def send(self, to: str, subject: str | None, body: str) -> TransportResult:
        """
        Send one text message. The subject is ignored.

        Never raises for delivery problems; they come back as
        TransportResult(success=False).
        """
        phone = normalize_phone(to)
        if phone is None:
            return TransportResult(success=False, error=f"Invalid phone number: {to}")

        if not body:
            return TransportResult(success=False, error="Message body is empty")

        if len(body) > self.max_length:
            return TransportResult(
                success=False,
                error=f"Message is {len(body)} characters, limit is {self.max_length}",
            )

        try:
            message = self._create_message(phone, body)
        except SmsGatewayError as e:
            return TransportResult(success=False, error=str(e))

        logger.info(f"SMS sent to {phone} (sid={message.sid}, status={message.status})")
        return TransportResult(success=True, provider_reference=message.sid)
