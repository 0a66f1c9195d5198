"""
Notification sender service
Delivers composed messages via the operator's notify command or a notifiers provider
"""
import subprocess
import sys
from typing import List

from notifiers import get_notifier

from models.notifications import NotificationMessage, NotificationResult
from models.settings import ProviderSettings


class NotificationSender:
    """Service for sending notifications; failures are reported, never raised"""

    UNSENT_LABEL = "No notification command configured - message follows:"

    def send_via_command(self, command: List[str], message: NotificationMessage) -> NotificationResult:
        """Pipe the message body to the notify command's stdin"""
        channel = f"command {command[0]}" if command else "command"
        if not command:
            return NotificationResult(channel=channel, success=False, error_message="empty notify command")
        try:
            result = subprocess.run(command, input=message.body, text=True)
        except OSError as e:
            return NotificationResult(channel=channel, success=False,
                                      error_message=f"Failed to run notify command: {e}")

        if result.returncode != 0:
            return NotificationResult(channel=channel, success=False,
                                      error_message=f"Notify command exited with code {result.returncode}")
        return NotificationResult(channel=channel, success=True)

    def send_via_provider(self, provider: ProviderSettings, message: NotificationMessage) -> NotificationResult:
        """Send via a notifiers provider (email, telegram, pushover, ...)"""
        channel = f"provider {provider.name}"
        try:
            notifier = get_notifier(provider.name, strict=True)

            content = provider.config.copy()
            content['message'] = message.body
            if 'subject' in notifier.arguments:
                content['subject'] = message.subject
            result = notifier.notify(**content)

            if result and hasattr(result, 'status'):
                if str(result.status).lower() == 'success':
                    return NotificationResult(channel=channel, success=True)
                errors = getattr(result, 'errors', None) or ['Unknown error']
                return NotificationResult(channel=channel, success=False,
                                          error_message=f"Notification failed: {', '.join(errors)}")
            return NotificationResult(channel=channel, success=True)

        except Exception as e:
            return NotificationResult(channel=channel, success=False,
                                      error_message=f"Failed to send {provider.name} notification: {e}")

    def print_message(self, message: NotificationMessage):
        """No delivery channel configured: show the message on stdout instead"""
        print(self.UNSENT_LABEL)
        print(message.body, end="" if message.body.endswith("\n") else "\n", flush=True)

    def log_notification_results(self, results: List[NotificationResult]):
        """Report delivery problems on stderr without affecting the run outcome"""
        for result in results:
            if result.success:
                continue
            print(f"WARNING: Notification via {result.channel} failed: {result.error_message}",
                  file=sys.stderr, flush=True)
