from .conversation import Conversation, Message
from .daily_tool import DailyTool
from .error_log import ErrorLog
from .job import Job
from .journal import JournalEntry
from .presence import Presence
from .push_subscription import PushSubscription
from .sent_notification import SentNotification
from .user import User

__all__ = [
    "Conversation",
    "DailyTool",
    "ErrorLog",
    "Job",
    "JournalEntry",
    "Message",
    "Presence",
    "PushSubscription",
    "SentNotification",
    "User",
]
