# /src/boardchat/channels.py
# Channel resolution - one chat channel per (project, organization)

import hashlib
import logging
from datetime import datetime
from typing import Callable, List

from .directory import ProjectDirectory, UserDirectory
from .errors import NotFoundError
from .models import Channel, utcnow
from .storage.base import DocumentStore

CHANNELS = "channels"


def channel_id_for(project_id: str, organization_id: str) -> str:
    """Deterministic channel id for a (project, organization) pair."""
    digest = hashlib.sha256(f"{organization_id}\x00{project_id}".encode("utf-8"))
    return f"chan_{digest.hexdigest()[:32]}"


class ChannelResolver:
    """Finds or lazily creates the chat channel of a project.

    Creation is a single create-if-absent write on a deterministic id, so
    concurrent first accesses converge on the same channel (first writer
    wins) without any lock.
    """

    def __init__(
        self,
        store: DocumentStore,
        users: UserDirectory,
        projects: ProjectDirectory,
        clock: Callable[[], datetime] = utcnow
    ):
        self._store = store
        self._users = users
        self._projects = projects
        self._clock = clock
        self._logger = logging.getLogger(__name__)

    async def get_or_create_channel(self, project_id: str, organization_id: str) -> str:
        """Return the channel id of a project, creating the channel on first access.

        Membership is the project's clients plus every admin of the tenant,
        frozen at creation time.

        Raises:
            NotFoundError: if the channel must be created and the project does not exist
        """
        channel_id = channel_id_for(project_id, organization_id)
        if await self._store.get(CHANNELS, channel_id) is not None:
            return channel_id

        project = await self._projects.get_project(project_id)
        if project is None:
            raise NotFoundError("project", project_id)

        admins = await self._users.get_admins(organization_id)
        members = list(dict.fromkeys([*project.client_ids, *(admin.id for admin in admins)]))

        channel = Channel(
            id=channel_id,
            project_id=project_id,
            organization_id=organization_id,
            user_ids=members,
            created_at=self._clock()
        )
        created = await self._store.create_if_absent(CHANNELS, channel_id, channel.to_dict())
        if created:
            self._logger.info(f"Created channel {channel_id} for project {project_id} ({len(members)} members)")
        else:
            self._logger.debug(f"Channel {channel_id} was created concurrently; using existing")
        return channel_id

    async def get_channel(self, channel_id: str) -> Channel:
        doc = await self._store.get(CHANNELS, channel_id)
        if doc is None:
            raise NotFoundError("channel", channel_id)
        return Channel.from_dict(doc)

    async def list_channels(self, organization_id: str) -> List[Channel]:
        """Channels of a tenant, most recently active first."""
        docs = await self._store.find(CHANNELS, {"organization_id": organization_id})
        channels = [Channel.from_dict(doc) for doc in docs]
        channels.sort(
            key=lambda c: c.last_message.timestamp if c.last_message else c.created_at,
            reverse=True
        )
        return channels
