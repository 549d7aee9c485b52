from .chat import ChatMessage, ChatService
from .social_service import (
    Invitee,
    SocialActivity,
    SocialService,
    SplitFareRequest,
    SplitParticipant,
    SplitType,
)

__all__ = [
    "ChatMessage",
    "ChatService",
    "Invitee",
    "SocialActivity",
    "SocialService",
    "SplitFareRequest",
    "SplitParticipant",
    "SplitType",
]
