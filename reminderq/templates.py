"""Reminder message rendering."""

from datetime import datetime
from typing import Dict, NamedTuple
from zoneinfo import ZoneInfo

import jinja2

from .models import Event, Modality, RecipientRole

JA_WEEKDAYS = ["月曜日", "火曜日", "水曜日", "木曜日", "金曜日", "土曜日", "日曜日"]

MODALITY_NAMES: Dict[str, Dict[Modality, str]] = {
    "ja": {
        Modality.PHONE: "電話面接",
        Modality.VIDEO: "ビデオ面接",
        Modality.ONSITE: "対面面接",
    },
    "en": {
        Modality.PHONE: "Phone interview",
        Modality.VIDEO: "Video interview",
        Modality.ONSITE: "On-site interview",
    },
}

SUBJECTS = {
    ("ja", RecipientRole.COUNTERPART): "【リマインダー】明日の面接予定: {{ other_name }}さん",
    ("ja", RecipientRole.SUBJECT): "【リマインダー】明日の面接のご案内",
    ("en", RecipientRole.COUNTERPART): "[Reminder] Interview tomorrow: {{ other_name }}",
    ("en", RecipientRole.SUBJECT): "[Reminder] Your interview tomorrow",
}

BODIES = {
    ("ja", RecipientRole.COUNTERPART): """\
{{ name }}様

明日、以下の面接が予定されています。

■ 候補者: {{ other_name }}さん
{% if event.position %}■ 応募職種: {{ event.position }}
{% endif %}■ 日時: {{ when }}
■ 所要時間: {{ event.duration_minutes }}分
■ 形式: {{ modality }}
{% if event.location %}■ 場所: {{ event.location }}
{% endif %}{% if event.meeting_url %}■ 会議URL: {{ event.meeting_url }}
{% endif %}
ご準備をお願いいたします。

---
{{ sender }}""",
    ("ja", RecipientRole.SUBJECT): """\
{{ name }}様

明日、以下の面接が予定されております。

■ 日時: {{ when }}
■ 所要時間: {{ event.duration_minutes }}分
■ 形式: {{ modality }}
■ 面接官: {{ other_name }}
{% if event.location %}■ 場所: {{ event.location }}
{% endif %}{% if event.meeting_url %}■ 会議URL: {{ event.meeting_url }}
{% endif %}
当日はお時間に余裕を持ってご参加ください。
ご不明点がございましたら、お気軽にお問い合わせください。

---
{{ sender }}""",
    ("en", RecipientRole.COUNTERPART): """\
Dear {{ name }},

You have the following interview scheduled for tomorrow.

- Candidate: {{ other_name }}
{% if event.position %}- Position: {{ event.position }}
{% endif %}- When: {{ when }}
- Duration: {{ event.duration_minutes }} minutes
- Format: {{ modality }}
{% if event.location %}- Location: {{ event.location }}
{% endif %}{% if event.meeting_url %}- Meeting URL: {{ event.meeting_url }}
{% endif %}
Please prepare accordingly.

---
{{ sender }}""",
    ("en", RecipientRole.SUBJECT): """\
Dear {{ name }},

This is a reminder of your interview tomorrow.

- When: {{ when }}
- Duration: {{ event.duration_minutes }} minutes
- Format: {{ modality }}
- Interviewer: {{ other_name }}
{% if event.location %}- Location: {{ event.location }}
{% endif %}{% if event.meeting_url %}- Meeting URL: {{ event.meeting_url }}
{% endif %}
Please allow some extra time on the day.
If you have any questions, feel free to contact us.

---
{{ sender }}""",
}

NOTIFICATION_MESSAGES = {
    "ja": "{{ other_name }}さんとの面接が明日{{ when }}に予定されています",
    "en": "Your interview with {{ other_name }} is scheduled for tomorrow, {{ when }}",
}

_env = jinja2.Environment(undefined=jinja2.StrictUndefined, keep_trailing_newline=False)


class RenderedReminder(NamedTuple):
    recipient_address: str
    subject: str
    body: str
    summary: str  # one-line text for an in-app notification


def _language(locale: str) -> str:
    language = locale.replace("-", "_").split("_")[0].lower()
    return language if language in MODALITY_NAMES else "en"


def format_datetime(moment: datetime, tz_name: str, locale: str) -> str:
    """Format a datetime in the given timezone the way the locale expects."""
    local = moment.astimezone(ZoneInfo(tz_name))
    if _language(locale) == "ja":
        weekday = JA_WEEKDAYS[local.weekday()]
        return f"{local.year}年{local.month}月{local.day}日{weekday} {local:%H:%M}"
    return f"{local:%A}, {local:%B} {local.day}, {local.year} {local:%H:%M} ({tz_name})"


def render_reminder(
    event: Event,
    role: RecipientRole,
    default_timezone: str = "Asia/Tokyo",
    default_locale: str = "ja",
    sender: str = "PeopleBooster",
) -> RenderedReminder:
    """Build the reminder for one recipient of an event."""
    recipient = event.recipient_for(role)
    other = event.other_party(role)
    language = _language(recipient.locale or default_locale)
    context = {
        "event": event,
        "name": recipient.display_name,
        "other_name": other.display_name,
        "when": format_datetime(
            event.scheduled_at, recipient.timezone or default_timezone, language
        ),
        "modality": MODALITY_NAMES[language][event.modality],
        "sender": sender,
    }
    subject = _env.from_string(SUBJECTS[(language, role)]).render(context)
    body = _env.from_string(BODIES[(language, role)]).render(context)
    summary = _env.from_string(NOTIFICATION_MESSAGES[language]).render(context)
    return RenderedReminder(recipient.email, subject, body.strip(), summary)

