from .crew import Crew, classify_crew
from .events import (
    ChannelCreatorResolver,
    ChannelInfo,
    MemberJoinEvent,
    MentionedUser,
    MessageEvent,
    ReplyAuthor,
    VoiceStateChange,
)
from .interactions import ConnectionCandidate, ConnectionCandidates, InteractionTracker
from .members import MemberJoinTracker
from .messages import MessageTracker
from .ownership import ChannelOwnershipPolicy
from .timebuckets import DaySegment, bucket_for, date_key, is_weekend, split_interval
from .voice import ClosedSession, VoiceSessionTracker

__all__ = [
    "ChannelCreatorResolver",
    "ChannelInfo",
    "ChannelOwnershipPolicy",
    "ClosedSession",
    "ConnectionCandidate",
    "ConnectionCandidates",
    "Crew",
    "DaySegment",
    "InteractionTracker",
    "MemberJoinEvent",
    "MemberJoinTracker",
    "MentionedUser",
    "MessageEvent",
    "MessageTracker",
    "ReplyAuthor",
    "VoiceSessionTracker",
    "VoiceStateChange",
    "bucket_for",
    "classify_crew",
    "date_key",
    "is_weekend",
    "split_interval",
]
