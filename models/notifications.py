"""
Notification data classes
Composed message and per-channel delivery results
"""
from typing import Optional

from pydantic import BaseModel


class HostIdentity(BaseModel):
    """Host names substituted into subject and notify command templates"""
    short: str
    long: str


class NotificationMessage(BaseModel):
    """A composed notification ready for delivery"""
    subject: str
    body: str
    status: str
    host: HostIdentity


class NotificationResult(BaseModel):
    """Result of one delivery attempt"""
    channel: str
    success: bool
    error_message: Optional[str] = None
