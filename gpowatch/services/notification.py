"""
Change Notifications
--------------------
Builds the change summary of a run (one titled section per non-empty change
set) and sends it by mail.
"""

import logging
import smtplib
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any, Dict, List, Optional

from jinja2 import Environment, select_autoescape

from gpowatch.core.config import settings
from gpowatch.core.drift.types import ChangeSet, ChangeType
from gpowatch.core.exceptions import NotificationFailure

logger = logging.getLogger(__name__)

SECTION_TITLES = {
    ChangeType.ADDED: "Added Policies",
    ChangeType.CHANGED: "Changed Policies",
    ChangeType.REMOVED: "Removed Policies",
}

TIME_FORMAT = "%Y-%m-%d %H:%M:%S"

_env = Environment(autoescape=select_autoescape(default=True, default_for_string=True))

HTML_TEMPLATE = _env.from_string("""
<!DOCTYPE html>
<html>
<head>
    <style>
        body { font-family: Arial, sans-serif; margin: 20px; }
        .header { background-color: #2196f3; color: white; padding: 15px; border-radius: 5px; }
        .added { border-left: 4px solid #4caf50; padding: 10px; margin: 10px 0; }
        .changed { border-left: 4px solid #ff9800; padding: 10px; margin: 10px 0; }
        .removed { border-left: 4px solid #f44336; padding: 10px; margin: 10px 0; }
        table { border-collapse: collapse; width: 100%; }
        th, td { border: 1px solid #ddd; padding: 8px; text-align: left; }
        th { background-color: #f2f2f2; }
    </style>
</head>
<body>
    <div class="header">
        <h2>Group Policy Changes</h2>
        <p>{{ total }} change(s) detected under {{ watched_root }} at {{ detected_at }} UTC</p>
    </div>
{% for section in sections %}
    <div class="{{ section.change_type }}">
        <h3>{{ section.title }}</h3>
        <table>
            <thead>
                <tr>
                    <th>Policy Name</th>
                    <th>Organizational Unit</th>
                    <th>Update Time</th>
                </tr>
            </thead>
            <tbody>
{% for row in section.rows %}
                <tr>
                    <td>{{ row.PolicyName }}</td>
                    <td>{{ row.OrganizationalUnit }}</td>
                    <td>{{ row.UpdateTime }}</td>
                </tr>
{% endfor %}
            </tbody>
        </table>
    </div>
{% endfor %}
</body>
</html>
""")


def build_summary(change_set: ChangeSet) -> List[Dict[str, Any]]:
    """
    Build the notification sections for a change set.
    Empty sets contribute no section.
    """
    sections = []
    for change_type, records in change_set.sections():
        if not records:
            continue
        sections.append({
            "change_type": change_type.value,
            "title": SECTION_TITLES[change_type],
            "rows": [
                {
                    "PolicyName": record.display_name,
                    "OrganizationalUnit": record.organizational_path,
                    "UpdateTime": record.modification_time.strftime(TIME_FORMAT),
                }
                for record in records
            ],
        })
    return sections


def build_subject(change_set: ChangeSet, watched_root: str) -> str:
    return (
        f"Group Policy changes under {watched_root}: {len(change_set.added)} added, "
        f"{len(change_set.changed)} changed, {len(change_set.removed)} removed"
    )


def create_change_email_html(
    sections: List[Dict[str, Any]],
    watched_root: str,
    detected_at: datetime
) -> str:
    """Create HTML email body for a change summary."""
    return HTML_TEMPLATE.render(
        sections=sections,
        total=sum(len(section["rows"]) for section in sections),
        watched_root=watched_root,
        detected_at=detected_at.strftime(TIME_FORMAT),
    )


def create_change_email_text(
    sections: List[Dict[str, Any]],
    watched_root: str,
    detected_at: datetime
) -> str:
    """Create plain text email body for a change summary."""
    text = f"""
GROUP POLICY CHANGES

Watched root: {watched_root}
Detection Time: {detected_at.strftime(TIME_FORMAT)} UTC
"""

    for section in sections:
        text += f"\n{section['title'].upper()}:\n"
        for i, row in enumerate(section["rows"], 1):
            text += (
                f"{i}. {row['PolicyName']}\n"
                f"   Organizational Unit: {row['OrganizationalUnit']}\n"
                f"   Update Time: {row['UpdateTime']}\n"
            )

    text += "\nThis is an automated message from GPOWatch.\n"
    return text


def send_html_email(
    to_email: str,
    from_email: str,
    subject: str,
    html_body: str,
    text_body: Optional[str] = None
) -> None:
    """
    Send HTML email using the configured SMTP relay.

    Raises:
        NotificationFailure: the relay could not be reached or refused the message
    """
    msg = MIMEMultipart('alternative')
    msg['Subject'] = subject
    msg['From'] = from_email
    msg['To'] = to_email

    if text_body:
        msg.attach(MIMEText(text_body, 'plain'))
    msg.attach(MIMEText(html_body, 'html'))

    try:
        with smtplib.SMTP(settings.SMTP_SERVER, settings.SMTP_PORT, timeout=settings.SMTP_TIMEOUT) as server:
            if settings.SMTP_USERNAME and settings.SMTP_PASSWORD:
                server.starttls()
                server.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)

            server.send_message(msg)
            logger.info(f"Email sent successfully to {to_email}")

    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"Failed to send email: {str(e)}")
        raise NotificationFailure(f"Failed to send email to {to_email}: {e}") from e


class Notifier:
    """Sends change summaries to the configured recipient."""

    def __init__(self, recipient: Optional[str] = None, sender: Optional[str] = None):
        self.recipient = recipient
        self.sender = sender or settings.MAIL_FROM

    @classmethod
    def from_settings(cls) -> "Notifier":
        return cls(recipient=settings.MAIL_TO, sender=settings.MAIL_FROM)

    @property
    def enabled(self) -> bool:
        return bool(self.recipient)

    def send(self, to: str, sender: str, subject: str, html_body: str, text_body: Optional[str] = None) -> None:
        send_html_email(to, sender, subject, html_body, text_body)

    def notify(self, change_set: ChangeSet, watched_root: str, detected_at: datetime) -> None:
        """
        Raises:
            NotificationFailure: the summary could not be delivered
        """
        sections = build_summary(change_set)
        self.send(
            self.recipient,
            self.sender,
            build_subject(change_set, watched_root),
            create_change_email_html(sections, watched_root, detected_at),
            create_change_email_text(sections, watched_root, detected_at),
        )
        logger.info(f"Change notification sent to {self.recipient} for {change_set.total} changes")
