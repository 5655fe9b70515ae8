"""Capability interface the lifecycle service uses to mutate the chat platform."""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Protocol

from .models import OutboundMessage, PlatformUser, ScheduledEventHandle


class PlatformError(RuntimeError):
    """Raised by platform adapters when an API call fails."""


class PlatformPermissionError(PlatformError):
    """The bot lacks a permission needed for the call."""


class ChannelNotFoundError(PlatformError):
    """A channel id could not be resolved."""


class ChatPlatform(Protocol):
    async def create_role(self, name: str, *, colour: int, mentionable: bool, reason: str) -> int:
        ...

    async def create_forum(
        self, name: str, *, parent_id: Optional[int], role_id: int, reason: str
    ) -> int:
        ...

    async def create_scheduled_event(
        self,
        *,
        name: str,
        start_time: datetime,
        end_time: datetime,
        location: str,
        description: str,
    ) -> ScheduledEventHandle:
        ...

    async def grant_role(self, user_id: int, role_id: int, *, reason: str) -> None:
        ...

    async def revoke_role(self, user_id: int, role_id: int, *, reason: str) -> None:
        ...

    async def member_has_role(self, user_id: int, role_id: int) -> bool:
        ...

    async def delete_role(self, role_id: int, *, reason: str) -> None:
        ...

    async def relocate_channel(self, channel_id: int, parent_id: Optional[int]) -> None:
        ...

    async def post_message(self, channel_id: int, message: OutboundMessage) -> None:
        ...

    async def post_thread(
        self, channel_id: int, *, title: str, message: OutboundMessage, locked: bool = False
    ) -> int:
        ...

    async def fetch_interested_users(self, external_event_id: int) -> List[PlatformUser]:
        ...


__all__ = [
    "ChannelNotFoundError",
    "ChatPlatform",
    "PlatformError",
    "PlatformPermissionError",
]
