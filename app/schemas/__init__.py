from .base import CamelModel, SuccessResponse
from .chat import (
    ChatMarkSeenRequest,
    ChatRequest,
    ChatSubmitResponse,
    ConversationStatusResponse,
    MessageOut,
    MessageStatusResponse,
)
from .daily_tools import DailyToolOut, DailyToolRequest, RefineRequest
from .jobs import (
    JobAcceptedResponse,
    JobMarkSeenRequest,
    JobStatusResponse,
    JobUpdateRequest,
    ProcessJobRequest,
    ProcessJobResponse,
    ScheduledUserOut,
    ScheduleResponse,
    SweepResponse,
)
from .notifications import (
    CheckinResponse,
    FanOutResponse,
    HeartbeatRequest,
    SendNotificationRequest,
    SubscribeRequest,
    SubscriptionOut,
    UnsubscribeRequest,
    VapidKeyResponse,
)

__all__ = [
    "CamelModel",
    "ChatMarkSeenRequest",
    "ChatRequest",
    "ChatSubmitResponse",
    "CheckinResponse",
    "ConversationStatusResponse",
    "DailyToolOut",
    "DailyToolRequest",
    "FanOutResponse",
    "HeartbeatRequest",
    "JobAcceptedResponse",
    "JobMarkSeenRequest",
    "JobStatusResponse",
    "JobUpdateRequest",
    "MessageOut",
    "MessageStatusResponse",
    "ProcessJobRequest",
    "ProcessJobResponse",
    "RefineRequest",
    "ScheduleResponse",
    "ScheduledUserOut",
    "SendNotificationRequest",
    "SubscribeRequest",
    "SubscriptionOut",
    "SuccessResponse",
    "SweepResponse",
    "UnsubscribeRequest",
    "VapidKeyResponse",
]
