import logging
from typing import Any, Dict, List, Optional

from email_validator import EmailNotValidError, validate_email
from jinja2 import DictLoader, Environment, select_autoescape

from schemas.form import FieldType

logger = logging.getLogger(__name__)

_TEMPLATES = {
    "notification.txt": (
        "New submission for \"{{ form_name }}\"\n"
        "\n"
        "{% for row in answers %}{{ row.label }}: {{ row.value }}\n{% endfor %}"
        "{% if files %}\nFiles:\n{% for file in files %}- {{ file.name }} ({{ file.size }} bytes)\n{% endfor %}{% endif %}"
        "\nSubmission ID: {{ submission_id }}\n"
    ),
    "notification.html": (
        "<h2>New submission for &ldquo;{{ form_name }}&rdquo;</h2>"
        "<table>{% for row in answers %}"
        "<tr><th align=\"left\">{{ row.label }}</th><td>{{ row.value }}</td></tr>"
        "{% endfor %}</table>"
        "{% if files %}<h3>Files</h3><ul>{% for file in files %}"
        "<li>{{ file.name }} ({{ file.size }} bytes)</li>"
        "{% endfor %}</ul>{% endif %}"
        "<p><small>Submission ID: {{ submission_id }}</small></p>"
    ),
}

_env = Environment(
    loader=DictLoader(_TEMPLATES),
    autoescape=select_autoescape(enabled_extensions=("html",), default_for_string=False),
)


def parse_recipients(notification_emails: Optional[str]) -> List[str]:
    """Comma separated list -> trimmed addresses, empty entries dropped."""
    if not notification_emails:
        return []
    return [email.strip() for email in notification_emails.split(",") if email.strip()]


class NotificationDispatcher:
    def __init__(self, email_service):
        self.email_service = email_service

    def render(
        self,
        form_name: str,
        fields: List[Dict[str, Any]],
        data: Dict[str, str],
        files: List[Dict[str, Any]],
        submission_id: str,
    ) -> Dict[str, str]:
        # answers follow the form's field order
        answers = [
            {"label": field["label"], "value": data[field["name"]]}
            for field in fields
            if field.get("type") != FieldType.FILE.value and field["name"] in data
        ]
        context = {
            "form_name": form_name,
            "answers": answers,
            "files": files,
            "submission_id": submission_id,
        }
        return {
            "subject": f"New submission: {form_name}",
            "text": _env.get_template("notification.txt").render(**context),
            "html": _env.get_template("notification.html").render(**context),
        }

    async def dispatch(
        self,
        notification_emails: Optional[str],
        form_name: str,
        fields: List[Dict[str, Any]],
        data: Dict[str, str],
        files: List[Dict[str, Any]],
        submission_id: str,
    ) -> Dict[str, List[str]]:
        """
        Send one notification per configured recipient.

        Every send is independent; failures are logged and never raised.
        """
        outcome = {"sent": [], "failed": []}
        recipients = parse_recipients(notification_emails)
        if not recipients:
            logger.info(f"No notification emails configured for submission {submission_id}")
            return outcome

        message = self.render(form_name, fields, data, files, submission_id)

        for recipient in recipients:
            try:
                validate_email(recipient, check_deliverability=False)
            except EmailNotValidError as e:
                # warn only, the send is still attempted
                logger.warning(f"Notification address {recipient} looks invalid: {str(e)}")

            try:
                result = await self.email_service.send_email(
                    to_email=recipient,
                    subject=message["subject"],
                    content=message["text"],
                    html_content=message["html"],
                )
            except Exception as e:
                logger.exception(f"Notification email to {recipient} failed: {str(e)}")
                outcome["failed"].append(recipient)
                continue

            if result.get("status") == "success":
                outcome["sent"].append(recipient)
            else:
                logger.error(f"Notification email to {recipient} failed: {result.get('message')}")
                outcome["failed"].append(recipient)

        logger.info(
            f"Notifications for submission {submission_id}: "
            f"{len(outcome['sent'])} sent, {len(outcome['failed'])} failed"
        )
        return outcome
