"""
Notification service - composes and dispatches the end-of-run notification
Runs once per wrapper run, after output capture has been stopped
"""
import logging
from typing import List, Optional

from models.notifications import NotificationMessage, NotificationResult
from models.run import CommandOutcome, RunContext
from models.settings import NotifyPolicy, NotifySettings
from services.notification_message_formatter import NotificationMessageFormatter
from services.notification_sender import NotificationSender
from services.output_capture import OutputCaptureSink

logger = logging.getLogger(__name__)


class NotificationService:
    """Coordinator for the run notification - delegates formatting and delivery"""

    def __init__(self, settings: NotifySettings,
                 formatter: Optional[NotificationMessageFormatter] = None,
                 sender: Optional[NotificationSender] = None):
        self.settings = settings
        self.formatter = formatter or NotificationMessageFormatter()
        self.sender = sender or NotificationSender()

    def finish_run(self, context: RunContext, sink: OutputCaptureSink) -> Optional[NotificationMessage]:
        """Stop capture, notify according to policy, and always delete the log"""
        try:
            sink.stop()
            status = context.final_status
            if not self.should_notify(status):
                logger.debug("Run succeeded and notify policy is '%s' - notification skipped",
                             self.settings.policy.value)
                return None

            message = self.compose(context, sink.read_log())
            self.deliver(message)
            return message
        finally:
            sink.remove()

    def should_notify(self, status: str) -> bool:
        if self.settings.policy is NotifyPolicy.ERRORS:
            return status == CommandOutcome.FAILED.value
        return True

    def compose(self, context: RunContext, log_text: str) -> NotificationMessage:
        status = context.final_status
        subject = self.formatter.build_subject(self.settings.subject, status)
        body = self.formatter.build_body(subject, context.results.format_lines(), log_text)
        return NotificationMessage(subject=subject, body=body, status=status, host=self.formatter.host)

    def deliver(self, message: NotificationMessage) -> List[NotificationResult]:
        """Send via every configured channel, or print when there is none"""
        results = []

        if self.settings.command.strip():
            command = self.formatter.build_notify_command(self.settings.command, message.status, message.subject)
            results.append(self.sender.send_via_command(command, message))

        if self.settings.provider is not None:
            results.append(self.sender.send_via_provider(self.settings.provider, message))

        if not results:
            self.sender.print_message(message)

        self.sender.log_notification_results(results)
        return results
