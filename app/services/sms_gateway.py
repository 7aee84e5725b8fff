"""Text.lk SMS delivery."""
import logging
import re
from dataclasses import dataclass
from typing import Any

import httpx

logger = logging.getLogger(__name__)

_SEPARATORS = re.compile(r"[\s\-()]")


def clean_phone_number(phone: str) -> str:
    """Strip spaces, dashes and parentheses from a phone number."""
    return _SEPARATORS.sub("", phone)


@dataclass
class SMSResult:
    status: str
    message: str | None = None
    data: Any = None

    @property
    def ok(self) -> bool:
        return self.status == "success"


class SMSGateway:
    def __init__(
        self,
        api_token: str,
        sender_id: str = "WeddingPix",
        endpoint: str = "https://app.text.lk/api/http/sms/send",
        country_code: str = "94",
        otp_expiry_minutes: int = 5,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_token = api_token
        self.sender_id = sender_id
        self.endpoint = endpoint
        self.country_code = country_code
        self.otp_expiry_minutes = otp_expiry_minutes
        self.timeout = timeout
        self._transport = transport

    def format_phone_number(self, phone: str) -> str:
        cleaned = clean_phone_number(phone)
        if cleaned.startswith("+"):
            cleaned = cleaned[1:]
        if cleaned.startswith("0"):
            cleaned = self.country_code + cleaned[1:]
        if not cleaned.startswith(self.country_code):
            cleaned = self.country_code + cleaned
        return cleaned

    async def send_sms(self, recipient: str, message: str) -> SMSResult:
        """Post one plain-text message. Never raises; failures come back as status "error"."""
        if not self.api_token:
            logger.warning("No Text.lk API token configured, skipping SMS delivery")
            return SMSResult(status="success", message="SMS delivery disabled (no API token)")

        payload = {
            "api_token": self.api_token,
            "recipient": self.format_phone_number(recipient),
            "sender_id": self.sender_id,
            "type": "plain",
            "message": message,
        }
        headers = {"Content-Type": "application/json", "Accept": "application/json"}

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.endpoint, json=payload, headers=headers)
                response.raise_for_status()
                body = response.json()
        except httpx.HTTPStatusError as e:
            logger.error("SMS gateway returned HTTP %s: %s", e.response.status_code, e.response.text[:200])
            return SMSResult(status="error", message=f"SMS gateway returned HTTP {e.response.status_code}")
        except (httpx.HTTPError, ValueError) as e:
            logger.error("SMS sending failed: %s", e)
            return SMSResult(status="error", message=str(e) or "Failed to send SMS")

        if not isinstance(body, dict):
            return SMSResult(status="error", message="Unexpected SMS gateway response", data=body)

        status = "success" if body.get("status") == "success" else "error"
        if status == "error":
            logger.error("SMS gateway rejected message: %s", body.get("message"))
        return SMSResult(status=status, message=body.get("message"), data=body.get("data"))

    async def send_otp(self, phone: str, otp: str) -> SMSResult:
        message = (
            f"Your Wedding Photos verification code is: {otp}\n\n"
            f"This code will expire in {self.otp_expiry_minutes} minutes.\n\n"
            f"- {self.sender_id}"
        )
        return await self.send_sms(phone, message)

    async def send_welcome(self, phone: str, guest_name: str, upload_url: str | None = None) -> SMSResult:
        message = f"Welcome {guest_name}!\n\nYou can now upload photos from the wedding.\n\n"
        if upload_url:
            message += f"Upload link: {upload_url}\n\n"
        message += "Thank you for sharing your memories with us!"
        return await self.send_sms(phone, message)
