# Import all models so that SQLAlchemy registers them for metadata.create_all
from sportslot.models.user import User, UserDailyRights
from sportslot.models.court import Court
from sportslot.models.booking import Booking, BookingParticipant, SlotClaim
from sportslot.models.penalty import Penalty
from sportslot.models.message import Message
from sportslot.models.points_request import PointsRequest
from sportslot.models.settings import PolicySetting
from sportslot.models.audit_log import AuditLog

__all__ = [
    "User",
    "UserDailyRights",
    "Court",
    "Booking",
    "BookingParticipant",
    "SlotClaim",
    "Penalty",
    "Message",
    "PointsRequest",
    "PolicySetting",
    "AuditLog",
]
