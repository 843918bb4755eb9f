import os
import base64
import pickle
import logging
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional
from google.auth.transport.requests import Request
from googleapiclient.discovery import build

logger = logging.getLogger(__name__)

# If modifying these scopes, regenerate the stored token.
SCOPES = ['https://www.googleapis.com/auth/gmail.send']

class GmailService:
    def __init__(self, token_path: str = 'token.pickle'):
        self.token_path = token_path
        self.service = self._get_gmail_service()

    def _load_credentials(self):
        # Production: base64 pickled credentials in GMAIL_TOKEN
        if 'GMAIL_TOKEN' in os.environ:
            logger.info("Loading Gmail token from environment variable")
            return pickle.loads(base64.b64decode(os.environ['GMAIL_TOKEN']))

        # Development: token file next to the app
        if os.path.exists(self.token_path):
            logger.info(f"Loading Gmail token from {self.token_path}")
            with open(self.token_path, 'rb') as token:
                return pickle.load(token)

        raise RuntimeError("No Gmail token found. Set GMAIL_TOKEN or provide token.pickle.")

    def _get_gmail_service(self):
        """Get Gmail API service using stored OAuth 2.0 credentials."""
        creds = self._load_credentials()

        if not creds.valid:
            if creds.expired and creds.refresh_token:
                logger.info("Refreshing expired Gmail credentials")
                creds.refresh(Request())
            else:
                raise RuntimeError("Gmail credentials are invalid and cannot be refreshed")

        return build('gmail', 'v1', credentials=creds, static_discovery=False)

    def send_email(
        self,
        to_email: str,
        subject: str,
        body: str,
        from_email: Optional[str] = None,
        html_body: Optional[str] = None,
        reply_to: Optional[str] = None,
    ) -> dict:
        """Send an email through the Gmail API (blocking).

        Args:
            to_email: Email address of the recipient
            subject: Email subject
            body: Plain text body
            from_email: Optional sender (must be the authenticated user or an alias)
            html_body: Optional HTML alternative
            reply_to: Optional Reply-To header

        Returns:
            dict: {"status": "success", "message_id": ...} or {"status": "error", "message": ...}
        """
        try:
            if html_body:
                message = MIMEMultipart('alternative')
                message.attach(MIMEText(body, 'plain'))
                message.attach(MIMEText(html_body, 'html'))
            else:
                message = MIMEText(body)
            message['to'] = to_email
            message['subject'] = subject
            if from_email:
                message['from'] = from_email
            if reply_to:
                message['reply-to'] = reply_to

            raw_message = base64.urlsafe_b64encode(message.as_bytes()).decode()
            sent_message = self.service.users().messages().send(
                userId='me',
                body={'raw': raw_message}
            ).execute()

            return {"status": "success", "message_id": sent_message['id']}

        except Exception as e:
            return {"status": "error", "message": str(e)}
