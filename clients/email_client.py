"""
Email gateway client for sending notification emails via HTTP gateway.

Uses HMAC-SHA256 signature for request authentication. The gateway does the
SMTP side; this client only signs, posts and reads back the message id.
"""

import hashlib
import hmac
import json
import logging

import requests

from core.models import TransportResult

logger = logging.getLogger(__name__)


class EmailGatewayError(Exception):
    """Raised when email gateway request fails."""


class EmailGatewayClient:
    """
    Email channel transport.

    Usage:
        client = EmailGatewayClient(**get_email_config())
        result = client.send("ana@example.com", "Class reminder", "<p>See you Saturday</p>")
        if result.success:
            ...
    """

    def __init__(
        self,
        gateway_url: str,
        api_key: str,
        hmac_secret: str,
        from_name: str | None = None,
        timeout: float = 10,
    ):
        """
        Initialize with gateway credentials.

        Args:
            gateway_url: Full URL to the email gateway endpoint
            api_key: API key for X-API-Key header
            hmac_secret: Secret for HMAC-SHA256 signature
            from_name: Display name for the sender, gateway default if None
            timeout: Seconds before the request counts as failed

        Raises:
            ValueError: If any credential is empty
        """
        if not gateway_url:
            raise ValueError("gateway_url is required")
        if not api_key:
            raise ValueError("api_key is required")
        if not hmac_secret:
            raise ValueError("hmac_secret is required")

        self.gateway_url = gateway_url
        self.api_key = api_key
        self.hmac_secret = hmac_secret
        self.from_name = from_name
        self.timeout = timeout

    def _sign_and_send(self, payload: dict) -> dict:
        """
        Sign payload with HMAC and send to gateway.

        Args:
            payload: Dict to send as JSON

        Returns:
            Parsed gateway response

        Raises:
            EmailGatewayError: On any failure
        """
        payload_json = json.dumps(payload, separators=(",", ":"))

        signature = hmac.new(
            self.hmac_secret.encode("utf-8"),
            payload_json.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()

        headers = {
            "Content-Type": "application/json",
            "X-API-Key": self.api_key,
            "X-Signature": signature,
        }

        try:
            response = requests.post(
                self.gateway_url,
                data=payload_json,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout as e:
            logger.error(f"Email gateway timed out: {e}")
            raise EmailGatewayError(f"Timed out after {self.timeout}s")
        except (requests.exceptions.RequestException, ConnectionError) as e:
            logger.error(f"Email gateway connection failed: {e}")
            raise EmailGatewayError(f"Connection failed: {e}")

        try:
            response_data = response.json()
        except ValueError:
            logger.error(f"Email gateway returned invalid JSON: {response.text}")
            raise EmailGatewayError("Invalid response from gateway")

        if response.status_code != 200 or not response_data.get("success"):
            error_msg = response_data.get("message", "Unknown error")
            logger.error(f"Email gateway error: {error_msg}")
            raise EmailGatewayError(f"Gateway error: {error_msg}")

        return response_data

    def send(self, to: str, subject: str | None, body: str) -> TransportResult:
        """
        Send one HTML email.

        Never raises for delivery problems; they come back as
        TransportResult(success=False) so the caller can compensate.

        Args:
            to: Recipient email address
            subject: Subject line (empty string if None)
            body: HTML body

        Returns:
            TransportResult with the gateway's message id on success
        """
        payload = {
            "type": "custom",
            "email": to,
            "subject": subject or "",
            "body": body,
            "sender": "system",
        }
        if self.from_name:
            payload["from_name"] = self.from_name

        try:
            response_data = self._sign_and_send(payload)
        except EmailGatewayError as e:
            return TransportResult(success=False, error=str(e))

        message_id = response_data.get("message_id")
        logger.info(f"Email sent to {to}: {subject} (message_id={message_id})")
        return TransportResult(success=True, provider_reference=message_id)
