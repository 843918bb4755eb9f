import asyncio
import logging
from enum import Enum
from typing import Any, Dict, Optional

import resend

from config import settings

# Configure logging
logger = logging.getLogger(__name__)

class EmailProvider(str, Enum):
    GMAIL = "gmail"
    RESEND = "resend"
    HYBRID = "hybrid"

class EmailService:
    """
    Outbound email through Gmail or Resend.

    send_email never raises for delivery problems; it reports them in the
    returned dict so callers can decide how much a failure matters.
    """

    def __init__(self):
        self.gmail_service = None
        self.resend_api_key = settings.RESEND_API_KEY
        self.email_service = settings.EMAIL_SERVICE
        self.timeout = settings.UPSTREAM_TIMEOUT_SECONDS

        # Initialize Gmail service if needed
        if self.email_service in [EmailProvider.GMAIL, EmailProvider.HYBRID]:
            try:
                from gmail_service import GmailService
                self.gmail_service = GmailService()
                logger.info("Gmail service initialized successfully")
            except Exception as e:
                logger.warning(f"Gmail service unavailable: {e}")

        # Initialize Resend if needed
        if self.email_service in [EmailProvider.RESEND, EmailProvider.HYBRID]:
            if not self.resend_api_key:
                logger.warning("RESEND_API_KEY not found in environment variables")
            else:
                resend.api_key = self.resend_api_key
                logger.info("Resend service initialized successfully")

    def _choose_provider(self) -> Optional[EmailProvider]:
        """Pick a configured provider; hybrid prefers Gmail for transactional mail."""
        if self.email_service == EmailProvider.GMAIL:
            return EmailProvider.GMAIL if self.gmail_service else None
        if self.email_service == EmailProvider.RESEND:
            return EmailProvider.RESEND if self.resend_api_key else None
        if self.email_service == EmailProvider.HYBRID:
            if self.gmail_service:
                return EmailProvider.GMAIL
            return EmailProvider.RESEND if self.resend_api_key else None
        raise ValueError(f"Invalid email service configuration: {self.email_service}")

    async def send_email(
        self,
        to_email: str,
        subject: str,
        content: str,
        html_content: Optional[str] = None,
        from_email: Optional[str] = None,
        reply_to: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Send one email using the configured provider

        Returns:
            Dict with status and message/response data
        """
        provider = None
        try:
            provider = self._choose_provider()
            if provider is None:
                return {"status": "error", "message": "No email provider configured", "provider": "none"}

            logger.info(f"Using {provider.value} to send email to {to_email}")
            sender = from_email or settings.FROM_EMAIL

            if provider == EmailProvider.GMAIL:
                call = asyncio.to_thread(
                    self.gmail_service.send_email,
                    to_email=to_email,
                    subject=subject,
                    body=content,
                    from_email=sender,
                    html_body=html_content,
                    reply_to=reply_to,
                )
            else:
                call = self._send_via_resend(to_email, subject, content, sender, html_content, reply_to)

            result = await asyncio.wait_for(call, timeout=self.timeout)
            result.setdefault("provider", provider.value)
            return result

        except asyncio.TimeoutError:
            logger.error(f"Timed out sending email to {to_email}")
            return {"status": "error", "message": "Email provider timed out", "provider": provider.value}
        except Exception as e:
            logger.error(f"Failed to send email to {to_email}: {str(e)}")
            return {
                "status": "error",
                "message": f"Failed to send email: {str(e)}",
                "provider": provider.value if provider else "unknown"
            }

    async def _send_via_resend(
        self,
        to_email: str,
        subject: str,
        content: str,
        from_email: str,
        html_content: Optional[str] = None,
        reply_to: Optional[str] = None
    ) -> Dict[str, Any]:
        """Send email via Resend API"""
        params = {
            "from": from_email,
            "to": [to_email],
            "subject": subject,
            "text": content,
        }
        if html_content:
            params["html"] = html_content
        if reply_to:
            params["reply_to"] = reply_to

        result = await asyncio.to_thread(resend.Emails.send, params)
        return {
            "status": "success",
            "message_id": result["id"],
            "provider": "resend",
        }

    async def get_provider_health(self) -> Dict[str, Any]:
        """Which providers are usable right now"""
        return {
            "gmail": {"available": self.gmail_service is not None},
            "resend": {"available": bool(self.resend_api_key)},
            "primary_service": self.email_service,
        }

# Global email service instance
email_service = EmailService()

def get_email_service():
    return email_service
