"""discord.py implementation of the :class:`ChatPlatform` capability interface."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, List, Optional

import discord
from discord.ext import commands

from ...models import OutboundMessage, PlatformUser, ScheduledEventHandle, ScheduledEventStatus
from ...platform import ChannelNotFoundError, PlatformError, PlatformPermissionError
from .builders import build_embed, build_join_view

logger = logging.getLogger(__name__)

_STATUS_MAP = {
    discord.EventStatus.scheduled: ScheduledEventStatus.SCHEDULED,
    discord.EventStatus.active: ScheduledEventStatus.ACTIVE,
    discord.EventStatus.completed: ScheduledEventStatus.COMPLETED,
    discord.EventStatus.cancelled: ScheduledEventStatus.CANCELLED,
}


def to_event_status(status: discord.EventStatus) -> ScheduledEventStatus:
    return _STATUS_MAP.get(status, ScheduledEventStatus.SCHEDULED)


@contextmanager
def _translate_errors(action: str) -> Iterator[None]:
    try:
        yield
    except discord.Forbidden as exc:
        raise PlatformPermissionError(f"{action}: {exc.text or exc}") from exc
    except discord.HTTPException as exc:
        raise PlatformError(f"{action}: {exc.text or exc}") from exc


class DiscordPlatform:
    """Performs role, forum and scheduled-event mutations in a single guild."""

    def __init__(self, bot: commands.Bot, guild_id: Optional[int]) -> None:
        self._bot = bot
        self._guild_id = guild_id

    async def _guild(self) -> discord.Guild:
        if self._guild_id is None:
            raise PlatformError("CTF_GUILD_ID is not configured")
        guild = self._bot.get_guild(self._guild_id)
        if guild is None:
            with _translate_errors("fetch guild"):
                guild = await self._bot.fetch_guild(self._guild_id)
        return guild

    async def _member(self, user_id: int) -> discord.Member:
        guild = await self._guild()
        member = guild.get_member(user_id)
        if member is None:
            with _translate_errors(f"fetch member {user_id}"):
                member = await guild.fetch_member(user_id)
        return member

    async def _channel(self, channel_id: int) -> discord.abc.GuildChannel:
        guild = await self._guild()
        channel = guild.get_channel_or_thread(channel_id)
        if channel is not None:
            return channel
        try:
            return await guild.fetch_channel(channel_id)
        except discord.NotFound as exc:
            raise ChannelNotFoundError(f"Channel {channel_id} not found") from exc
        except discord.HTTPException as exc:
            raise PlatformError(f"fetch channel {channel_id}: {exc.text or exc}") from exc

    async def _category(self, category_id: Optional[int]) -> Optional[discord.CategoryChannel]:
        if category_id is None:
            return None
        channel = await self._channel(category_id)
        if not isinstance(channel, discord.CategoryChannel):
            logger.warning("Channel %s is not a category; ignoring", category_id)
            return None
        return channel

    async def create_role(self, name: str, *, colour: int, mentionable: bool, reason: str) -> int:
        guild = await self._guild()
        with _translate_errors("create role"):
            role = await guild.create_role(
                name=name,
                colour=discord.Colour(colour),
                mentionable=mentionable,
                reason=reason,
            )
        return role.id

    async def create_forum(
        self, name: str, *, parent_id: Optional[int], role_id: int, reason: str
    ) -> int:
        guild = await self._guild()
        category = await self._category(parent_id)
        role = guild.get_role(role_id) or discord.Object(id=role_id, type=discord.Role)
        overwrites = {
            guild.default_role: discord.PermissionOverwrite(view_channel=False),
            role: discord.PermissionOverwrite(
                view_channel=True,
                send_messages=True,
                create_public_threads=True,
                send_messages_in_threads=True,
                read_message_history=True,
            ),
        }
        with _translate_errors("create forum"):
            forum = await guild.create_forum(
                name,
                category=category,
                overwrites=overwrites,
                reason=reason,
            )
        return forum.id

    async def create_scheduled_event(
        self,
        *,
        name: str,
        start_time: datetime,
        end_time: datetime,
        location: str,
        description: str,
    ) -> ScheduledEventHandle:
        guild = await self._guild()
        with _translate_errors("create scheduled event"):
            event = await guild.create_scheduled_event(
                name=name,
                start_time=start_time,
                end_time=end_time,
                entity_type=discord.EntityType.external,
                privacy_level=discord.PrivacyLevel.guild_only,
                location=location,
                description=description,
            )
        return ScheduledEventHandle(id=event.id, url=event.url)

    async def grant_role(self, user_id: int, role_id: int, *, reason: str) -> None:
        member = await self._member(user_id)
        with _translate_errors("add role"):
            await member.add_roles(discord.Object(id=role_id), reason=reason)

    async def revoke_role(self, user_id: int, role_id: int, *, reason: str) -> None:
        member = await self._member(user_id)
        with _translate_errors("remove role"):
            await member.remove_roles(discord.Object(id=role_id), reason=reason)

    async def member_has_role(self, user_id: int, role_id: int) -> bool:
        member = await self._member(user_id)
        return member.get_role(role_id) is not None

    async def delete_role(self, role_id: int, *, reason: str) -> None:
        guild = await self._guild()
        role = guild.get_role(role_id)
        if role is None:
            raise PlatformError(f"Role {role_id} not found")
        with _translate_errors("delete role"):
            await role.delete(reason=reason)

    async def relocate_channel(self, channel_id: int, parent_id: Optional[int]) -> None:
        if parent_id is None:
            raise PlatformError("Archive category is not configured")
        channel = await self._channel(channel_id)
        category = await self._channel(parent_id)
        if not isinstance(category, discord.CategoryChannel):
            raise PlatformError(f"Channel {parent_id} is not a category")
        with _translate_errors("move channel"):
            await channel.edit(category=category)

    async def post_message(self, channel_id: int, message: OutboundMessage) -> None:
        channel = await self._channel(channel_id)
        if not isinstance(channel, discord.abc.Messageable):
            raise ChannelNotFoundError(f"Channel {channel_id} cannot receive messages")
        view = build_join_view(message.join_action)
        with _translate_errors("send message"):
            if view is None:
                await channel.send(embed=build_embed(message))
            else:
                await channel.send(embed=build_embed(message), view=view)

    async def post_thread(
        self, channel_id: int, *, title: str, message: OutboundMessage, locked: bool = False
    ) -> int:
        channel = await self._channel(channel_id)
        if not isinstance(channel, discord.ForumChannel):
            raise ChannelNotFoundError(f"Channel {channel_id} is not a forum")
        with _translate_errors("create thread"):
            created = await channel.create_thread(name=title, embed=build_embed(message))
            if locked:
                await created.thread.edit(locked=True, pinned=True)
        return created.thread.id

    async def fetch_interested_users(self, external_event_id: int) -> List[PlatformUser]:
        guild = await self._guild()
        with _translate_errors(f"fetch scheduled event {external_event_id}"):
            event = guild.get_scheduled_event(external_event_id)
            if event is None:
                event = await guild.fetch_scheduled_event(external_event_id)
            users = [
                PlatformUser(id=user.id, display_name=user.display_name)
                async for user in event.users()
            ]
        return users


__all__ = ["DiscordPlatform", "to_event_status"]
