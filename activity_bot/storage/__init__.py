from .activity import ActivityMixin
from .channels import ChannelOwnershipMixin
from .interactions import InteractionsMixin
from .moments import MomentsMixin
from .recap import RecapRunsMixin
from .schema import SchemaMixin
from .store import ActivityStore
from .users import UsersMixin

__all__ = [
    "ActivityStore",
    "SchemaMixin",
    "UsersMixin",
    "ActivityMixin",
    "InteractionsMixin",
    "MomentsMixin",
    "ChannelOwnershipMixin",
    "RecapRunsMixin",
]
