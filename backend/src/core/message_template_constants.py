"""
Default reminder templates and placeholder names.

Each reminder rule stores its own template text; these defaults are offered
when a rule is created without one. Placeholders resolved when the reminder
is scheduled: {date}, {time}. Placeholders resolved at send time, against the
current patient record: {name}, {patient_id}.
"""

PLACEHOLDER_NAME = "name"
PLACEHOLDER_PATIENT_ID = "patient_id"
PLACEHOLDER_DATE = "date"
PLACEHOLDER_TIME = "time"

# Day-before reminder
DEFAULT_REMINDER_TEMPLATE = """{name}様

明日のご予約についてお知らせいたします。

予約日時: {date} {time}

ご来院をお待ちしております。
変更・キャンセルはお早めにご連絡ください。"""

# Flex reminder texts
FLEX_REMINDER_HEADER = "明日のご予約"
FLEX_REMINDER_NOTE = "変更・キャンセルはマイページからお手続きください。"
FLEX_HEADER_BG_COLOR = "#E75A7C"
FLEX_HEADER_TEXT_COLOR = "#FFFFFF"
FLEX_BODY_TEXT_COLOR = "#555555"
