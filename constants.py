# Global Constants

class NotificationTypes:
    REMINDER = "reminder"
    OVERDUE = "overdue"
    DAILY_SUMMARY = "daily-summary"
    OVERDUE_DIGEST = "overdue-digest"
    # Ad-hoc types created outside the sweep
    DUE_SOON = "due-soon"
    SYSTEM = "system"

    # Types that concern exactly one task and get push quick actions
    SINGLE_TASK = (REMINDER, OVERDUE)


# Digest dedup looks back this far for already-sent daily notifications
DIGEST_LOOKBACK_HOURS = 36

DAILY_SUMMARY_PREVIEW_LIMIT = 5
OVERDUE_DIGEST_PREVIEW_LIMIT = 10
OVERDUE_DIGEST_MESSAGE_LIMIT = 5

MAX_DUE_DATE_REMINDERS = 10
MAX_REMINDER_DAYS_BEFORE = 30

PUSH_TAG_PREFIX = "pillar"
