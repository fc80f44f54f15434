from __future__ import annotations

from .activity import ActivityMixin
from .channels import ChannelOwnershipMixin
from .interactions import InteractionsMixin
from .moments import MomentsMixin
from .recap import RecapRunsMixin
from .schema import SchemaMixin
from .users import UsersMixin
from .utils import _sqlite_connection


class ActivityStore(
    SchemaMixin,
    UsersMixin,
    ActivityMixin,
    InteractionsMixin,
    MomentsMixin,
    ChannelOwnershipMixin,
    RecapRunsMixin,
):
    """Persistent community-activity store: users, daily activity, interactions, moments and ownership."""

    backend_name = "sqlite"

    async def ping(self) -> None:
        async with _sqlite_connection(self.db_path) as db:
            await db.execute("SELECT 1")
