"""OTP delivery: Mailgun (SendGrid fallback) email, Twilio SMS.

The code itself is never logged; only recipient, channel and provider outcome are.
"""
import logging

import httpx

from marketplace.config import Settings, get_settings
from marketplace.services.errors import DeliveryFailed

logger = logging.getLogger(__name__)

CHANNEL_EMAIL = "email"
CHANNEL_SMS = "sms"

PURPOSE_REGISTRATION = "registration"
PURPOSE_PASSWORD_RESET = "passwordReset"

MAILGUN_US_BASE = "https://api.mailgun.net"
MAILGUN_EU_BASE = "https://api.eu.mailgun.net"


def _mask(recipient: str) -> str:
    if "@" in recipient:
        local, _, domain = recipient.partition("@")
        return f"{local[:2]}***@{domain}"
    return f"***{recipient[-4:]}"


def _render(code: str, display_name: str | None, purpose: str, expire_minutes: int) -> tuple[str, str, str]:
    """(subject, text, html) for an OTP message."""
    name = (display_name or "").strip() or "there"
    if purpose == PURPOSE_PASSWORD_RESET:
        subject = "Your password reset code"
        lead = "Use this code to reset your password"
    else:
        subject = "Your verification code"
        lead = "Use this code to verify your registration"
    text = f"Hi {name}, {lead.lower()}: {code}. It expires in {expire_minutes} minutes."
    html = f"""
    <p>Hi {name},</p>
    <p>{lead}: <strong style="font-size:1.2em;letter-spacing:0.2em;">{code}</strong></p>
    <p>This code expires in {expire_minutes} minutes. If you did not request this, you can ignore this message.</p>
    """
    return subject, text, html


class OtpDelivery:
    """Sends one-time codes to an email address or phone number."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()

    def deliver(
        self,
        channel: str,
        recipient: str,
        code: str,
        display_name: str | None = None,
        purpose: str = PURPOSE_REGISTRATION,
    ) -> None:
        """Raises DeliveryFailed when no provider accepted the message."""
        subject, text, html = _render(code, display_name, purpose, self.settings.otp_expire_minutes)
        if channel == CHANNEL_EMAIL:
            ok = self.send_email(recipient, subject, html, text_content=text)
        elif channel == CHANNEL_SMS:
            ok = self.send_sms(recipient, text)
        else:
            raise ValueError(f"unknown delivery channel: {channel}")
        if not ok:
            logger.warning("OTP delivery failed: channel=%s to=%s purpose=%s", channel, _mask(recipient), purpose)
            raise DeliveryFailed()
        logger.info("OTP delivered: channel=%s to=%s purpose=%s", channel, _mask(recipient), purpose)

    def send_email(self, to_email: str, subject: str, html_content: str, text_content: str | None = None) -> bool:
        """Mailgun when configured, otherwise SendGrid. False when neither is configured or both fail."""
        s = self.settings
        if s.mailgun_api_key and s.mailgun_domain:
            return self._send_email_mailgun(to_email, subject, html_content, text_content)
        if s.sendgrid_api_key:
            return self._send_email_sendgrid(to_email, subject, html_content, text_content)
        logger.warning(
            "Email NOT SENT to %s: MAILGUN_API_KEY/MAILGUN_DOMAIN and SENDGRID_API_KEY are unset.", _mask(to_email)
        )
        return False

    def _send_email_mailgun(self, to_email: str, subject: str, html_content: str, text_content: str | None) -> bool:
        s = self.settings
        base = (s.mailgun_base_url or MAILGUN_US_BASE).strip().rstrip("/")
        domain = (s.mailgun_domain or "").strip().lower()
        from_addr = (s.mailgun_from_email or "").strip()
        from_domain = from_addr.split("@")[-1].lower() if "@" in from_addr else ""
        if domain and from_domain != domain:
            # Mailgun drops mail whose sender domain differs from the sending domain
            from_addr = f"noreply@{domain}"
        data = {
            "from": f"{s.mailgun_from_name} <{from_addr}>",
            "to": to_email,
            "subject": subject,
            "text": text_content or "",
            "html": html_content or "",
        }
        try:
            with httpx.Client(timeout=10.0) as client:
                r = client.post(f"{base}/v3/{domain}/messages", auth=("api", s.mailgun_api_key), data=data)
                if 200 <= r.status_code < 300:
                    return True
                if r.status_code == 401 and base == MAILGUN_US_BASE:
                    logger.info("Mailgun 401 with US endpoint, retrying with EU endpoint")
                    r = client.post(
                        f"{MAILGUN_EU_BASE}/v3/{domain}/messages", auth=("api", s.mailgun_api_key), data=data
                    )
                    if 200 <= r.status_code < 300:
                        return True
                logger.warning("Mailgun API failed: status=%s body=%s", r.status_code, r.text[:500])
        except httpx.HTTPError as e:
            logger.warning("Mailgun request error: %s: %s", type(e).__name__, e)
        if s.sendgrid_api_key:
            return self._send_email_sendgrid(to_email, subject, html_content, text_content)
        return False

    def _send_email_sendgrid(self, to_email: str, subject: str, html_content: str, text_content: str | None) -> bool:
        from sendgrid import SendGridAPIClient
        from sendgrid.helpers.mail import Mail

        s = self.settings
        message = Mail(
            from_email=(s.sendgrid_from_email, s.sendgrid_from_name),
            to_emails=to_email,
            subject=subject,
            html_content=html_content,
            plain_text_content=text_content or "",
        )
        try:
            SendGridAPIClient(s.sendgrid_api_key).send(message)
            return True
        except Exception as e:
            logger.warning("SendGrid send failed: %s", type(e).__name__)
            return False

    def send_sms(self, to_phone: str, body: str) -> bool:
        s = self.settings
        if not s.twilio_account_sid or not s.twilio_auth_token:
            logger.warning("SMS NOT SENT to %s: TWILIO_ACCOUNT_SID/TWILIO_AUTH_TOKEN are unset.", _mask(to_phone))
            return False
        from twilio.base.exceptions import TwilioException
        from twilio.rest import Client

        try:
            client = Client(s.twilio_account_sid, s.twilio_auth_token)
            client.messages.create(body=body, from_=s.twilio_from_phone_number, to=to_phone)
            return True
        except TwilioException as e:
            logger.warning("Twilio send failed: %s", type(e).__name__)
            return False


def get_otp_delivery() -> OtpDelivery:
    return OtpDelivery()
