"""Rendering helpers for incident notification emails."""
from __future__ import annotations

import html
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Tuple

from ..app.schemas.notifications import (
    IncidentNotification,
    IncidentNotificationType,
    IncidentStatus,
)

_TEMPLATE_PATH = Path(__file__).resolve().parent / "templates"
_PLACEHOLDER_PATTERN = re.compile(r"{{\s*(\w+)\s*}}")
_HEAD_PATTERN = re.compile(r"<head\b.*?</head>", re.IGNORECASE | re.DOTALL)
_TAG_PATTERN = re.compile(r"<[^>]*>")

_ENTITY_REPLACEMENTS = (
    ("&nbsp;", " "),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&quot;", '"'),
    ("&#39;", "'"),
    ("&amp;", "&"),
)

_SUBJECT_FORMATS: Dict[IncidentNotificationType, str] = {
    IncidentNotificationType.INCIDENT_CREATED: "🚨 New Incident: {title}",
    IncidentNotificationType.INCIDENT_UPDATED: "📋 Incident Update: {title}",
    IncidentNotificationType.INCIDENT_RESOLVED: "✅ Incident Resolved: {title}",
}
_DEFAULT_SUBJECT_FORMAT = "Status Update: {title}"

_STATUS_COLORS: Dict[IncidentStatus, str] = {
    IncidentStatus.INVESTIGATING: "#f59e0b",
    IncidentStatus.IDENTIFIED: "#ef4444",
    IncidentStatus.MONITORING: "#3b82f6",
    IncidentStatus.RESOLVED: "#10b981",
}
_DEFAULT_STATUS_COLOR = "#6b7280"

# Context keys whose values are already HTML and must not be escaped again.
_RAW_KEYS = frozenset({"message_html", "badge_color"})


def _load_template(template: str) -> str:
    path = _TEMPLATE_PATH / template
    return path.read_text(encoding="utf-8")


def _render_template(template: str, context: Dict[str, Any], *, raw_keys: Iterable[str] = ()) -> str:
    source = _load_template(template)
    unescaped = set(raw_keys)

    def _replace(match: re.Match[str]) -> str:
        key = match.group(1)
        value = context.get(key, "")
        if value is None:
            return ""
        text = str(value)
        return text if key in unescaped else html.escape(text, quote=True)

    return _PLACEHOLDER_PATTERN.sub(_replace, source)


def incident_subject(notification_type: str, title: str) -> str:
    try:
        template = _SUBJECT_FORMATS[IncidentNotificationType(notification_type)]
    except ValueError:
        template = _DEFAULT_SUBJECT_FORMAT
    return template.format(title=title)


def status_badge_color(incident_status: str) -> str:
    try:
        return _STATUS_COLORS[IncidentStatus((incident_status or "").strip().lower())]
    except ValueError:
        return _DEFAULT_STATUS_COLOR


def strip_html(markup: str) -> str:
    """Derive a plain-text body from rendered HTML."""

    text = _HEAD_PATTERN.sub("", markup)
    text = _TAG_PATTERN.sub("", text)
    for entity, replacement in _ENTITY_REPLACEMENTS:
        text = text.replace(entity, replacement)

    lines = []
    previous_blank = True
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line:
            if not previous_blank:
                lines.append("")
            previous_blank = True
            continue
        lines.append(line)
        previous_blank = False
    return "\n".join(lines).strip()


def _format_created_at(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    hour = value.hour % 12 or 12
    return f"{value:%B} {value.day}, {value.year} at {hour}:{value:%M} {value:%p} UTC"


def render_incident_notification(notification: IncidentNotification) -> Tuple[str, str, str]:
    """Return ``(subject, text_body, html_body)`` for ``notification``."""

    message_html = html.escape(notification.message.strip()).replace("\n", "<br />")
    context = {
        "status_page_name": notification.status_page_name,
        "status_page_url": notification.status_page_url,
        "incident_title": notification.incident_title,
        "incident_status": notification.incident_status,
        "badge_color": status_badge_color(notification.incident_status),
        "created_display": _format_created_at(notification.created_at),
        "message_html": message_html,
        "unsubscribe_url": notification.unsubscribe_url,
    }
    subject = incident_subject(notification.type, notification.incident_title)
    html_body = _render_template("incident_body.html.j2", context, raw_keys=_RAW_KEYS).strip()
    text_body = strip_html(html_body)
    return subject, text_body, html_body


__all__ = [
    "incident_subject",
    "render_incident_notification",
    "status_badge_color",
    "strip_html",
]
