"""
Notification message formatting
Subject and notify-command templates, and the summary + log message body
"""
import socket
from typing import Dict, List, Optional

from models.notifications import HostIdentity
from services.command_template import build_command, substitute_tokens


def current_host() -> HostIdentity:
    """Short and fully-qualified names of this host"""
    fqdn = socket.getfqdn() or socket.gethostname()
    short = socket.gethostname().split(".", 1)[0] or fqdn.split(".", 1)[0]
    return HostIdentity(short=short, long=fqdn)


class NotificationMessageFormatter:
    """Service for formatting notification messages with template support"""

    SUMMARY_HEADING = "Command Summary:"
    LOG_HEADING = "Log Output:"

    def __init__(self, host: Optional[HostIdentity] = None):
        self.host = host or current_host()

    def template_values(self, status: str, subject: Optional[str] = None) -> Dict[str, str]:
        """Token values in substitution order; SUBJECT only once it is known"""
        values = {
            'STATUS': status,
            'HOSTLONG': self.host.long,
            'HOSTSHORT': self.host.short,
        }
        if subject is not None:
            values['SUBJECT'] = subject
        return values

    def build_subject(self, template: str, status: str) -> str:
        return substitute_tokens(template, self.template_values(status))

    def build_notify_command(self, template: str, status: str, subject: str) -> List[str]:
        return build_command(template, self.template_values(status, subject))

    def build_body(self, subject: str, summary_lines: List[str], log_text: str) -> str:
        """Subject, optional command summary, then the captured log verbatim"""
        parts = [subject, ""]
        if summary_lines:
            parts.append(self.SUMMARY_HEADING)
            parts.extend(summary_lines)
            parts.append("")
        parts.append(self.LOG_HEADING)
        return "\n".join(parts) + "\n" + log_text
