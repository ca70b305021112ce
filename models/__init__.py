"""Database models."""

from models.chat import Message
from models.credit import CreditTransaction
from models.like import Like
from models.limits import ActivityLimits
from models.match import Match
from models.profile import Profile
from models.safety import Block, ModerationAction, Report
from models.search import SearchHistory
from models.user import PrivacySettings, User

__all__ = [
    "User",
    "PrivacySettings",
    "Profile",
    "Like",
    "Match",
    "Message",
    "ActivityLimits",
    "CreditTransaction",
    "SearchHistory",
    "Block",
    "Report",
    "ModerationAction",
]
