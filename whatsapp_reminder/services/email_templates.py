from __future__ import annotations

import html

from whatsapp_reminder.schemas.reminder import ReminderPayload
from whatsapp_reminder.services.whatsapp import create_whatsapp_link

PREVIEW_LENGTH = 61
NO_NUMBER_TEXT = "no number provided"

MAIL_START = """<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<title>WhatsApp Reminder</title>
</head>
<body style="font-family: sans-serif;">
<p>The following reminders are due. Tap a message to open it in WhatsApp.</p>
<ul>
"""

MAIL_ITEM = """<li><a href="{link}">{text}</a> ({number})</li>
"""

MAIL_END = """</ul>
</body>
</html>
"""


def preview_text(message_text: str) -> str:
    escaped = html.escape(message_text)
    if len(escaped) > PREVIEW_LENGTH:
        cut = escaped[:PREVIEW_LENGTH]
        # never end inside an entity such as "&amp;"
        amp = cut.rfind("&")
        if amp != -1 and ";" not in cut[amp:]:
            cut = cut[:amp]
        return cut + "..."
    return escaped


def render_item(payload: ReminderPayload) -> str:
    link = create_whatsapp_link(payload.phone_number, payload.message_text)
    return MAIL_ITEM.format(
        link=html.escape(link, quote=True),
        text=preview_text(payload.message_text),
        number=html.escape(payload.phone_number) or NO_NUMBER_TEXT,
    )


def render_digest(payloads: list[ReminderPayload]) -> str:
    return MAIL_START + "".join(render_item(payload) for payload in payloads) + MAIL_END
