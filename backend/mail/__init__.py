"""Outbound email configuration, transports and rendering."""

from .config import EmailConfig, load_email_config
from .providers import (
    DevPrintProvider,
    EmailProvider,
    SMTPProvider,
    SendFailed,
    create_email_provider,
)
from .renderer import render_incident_notification, strip_html

__all__ = [
    "DevPrintProvider",
    "EmailProvider",
    "EmailConfig",
    "SMTPProvider",
    "SendFailed",
    "create_email_provider",
    "load_email_config",
    "render_incident_notification",
    "strip_html",
]
