"""Platform-neutral message composition for announcements and tallies.

Builders here return :class:`OutboundMessage` objects so the lifecycle service
never depends on Discord types. The Discord adapter renders them to embeds.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional, Sequence

from .actions import build_join_payload
from .config import Settings
from .models import CreatedEvent, CTFEvent, EventRequest, JoinAction, OutboundMessage, Participant
from .timeutil import format_date_range

ZERO_WIDTH_SPACE = "​"
EMBED_CHAR_LIMIT = 6000
EMBED_FIELD_LIMIT = 25


def chunk_text(text: str, limit: int = 1024) -> List[str]:
    """Split text into blocks of at most ``limit`` characters.

    Breaks fall on line boundaries where possible; a single line longer than
    the limit is cut hard.
    """

    if limit <= 0:
        raise ValueError("limit must be positive")
    chunks: List[str] = []
    current = ""
    for line in text.split("\n"):
        while len(line) > limit:
            if current:
                chunks.append(current)
                current = ""
            chunks.append(line[:limit])
            line = line[limit:]
        candidate = f"{current}\n{line}" if current else line
        if len(candidate) > limit:
            chunks.append(current)
            current = line
        else:
            current = candidate
    if current:
        chunks.append(current)
    return chunks


def _date_range(request_start: datetime, request_end: datetime, settings: Settings) -> str:
    return format_date_range(
        request_start,
        request_end,
        offset_hours=settings.timezone_offset_hours,
        label=settings.timezone_label,
    )


def build_event_description(request: EventRequest, settings: Settings) -> str:
    """Public scheduled-event description. Never includes the team password."""

    description = ""
    if request.url:
        description += f"🔗 Official URL: {request.url}\n\n"
    if request.team_name or request.invite_link:
        description += "**Team Information:**\n"
        if request.team_name:
            description += f"👥 Team Name: {request.team_name}\n"
        description += "\n🔐 Team Password & Invite Link are available in the forum channel"
    return description or settings.default_description


def build_info_message(request: EventRequest, settings: Settings) -> OutboundMessage:
    """Forum information post, visible to role holders only; carries secrets."""

    rules = "\n".join(settings.forum_rules)
    description = (
        f"This forum is dedicated to the **{request.name}** CTF event.\n\n"
        "Use this space to collaborate, share writeups, and discuss challenges!"
    )
    if rules:
        description += f"\n\n**📜 Rules:**\n{rules}"
    message = OutboundMessage(
        title=f"🚩 Welcome to {request.name}!",
        description=description,
        colour=settings.role_colour,
        timestamp=datetime.now(timezone.utc),
    )
    message.add_field("📅 Event Period", _date_range(request.start_time, request.end_time, settings))
    if request.url:
        message.add_field("🔗 Official URL", request.url)
    if request.team_name:
        message.add_field("👥 Team Name", request.team_name, inline=True)
    if request.team_password:
        message.add_field("🔐 Team Password", f"||{request.team_password}||", inline=True)
    if request.invite_link:
        message.add_field("📨 Invite Link", request.invite_link)
    return message


def build_announcement(
    request: EventRequest, created: CreatedEvent, settings: Settings
) -> OutboundMessage:
    """Public announcement with a join button; password and invite link excluded."""

    message = OutboundMessage(
        title=f"🚩 {request.name}",
        description=_date_range(request.start_time, request.end_time, settings),
        colour=settings.role_colour,
        timestamp=datetime.now(timezone.utc),
        join_action=JoinAction(
            label="Join CTF",
            payload=build_join_payload(created.external_id, created.role_id),
        ),
    )
    if request.url:
        message.add_field("🔗 Official URL", request.url)
    if request.team_name:
        message.add_field("👥 Team Name", request.team_name, inline=True)
    message.add_field("📅 Event", f"[View Event]({created.event_url})")
    message.add_field("💬 Forum", f"<#{created.channel_id}>")
    message.add_field(
        "🎭 Role",
        f"<@&{created.role_id}> - Click \"Interested\" on the event or the button below to get access!",
    )
    return message


def _numbered(participants: Sequence[Participant]) -> str:
    return "\n".join(
        f"{index}. {participant.display_name}"
        for index, participant in enumerate(participants, start=1)
    )


def build_tally_message(
    event: CTFEvent,
    active: Sequence[Participant],
    left: Sequence[Participant],
    settings: Settings,
) -> OutboundMessage:
    message = OutboundMessage(
        title=f"📊 {event.name} - Final Participants",
        description=f"✅ Active: **{len(active)}** | ❌ Left: **{len(left)}**",
        colour=settings.role_colour,
        timestamp=datetime.now(timezone.utc),
    )
    if active:
        for index, chunk in enumerate(chunk_text(_numbered(active), settings.tally_field_limit)):
            message.add_field("✅ Active Participants" if index == 0 else ZERO_WIDTH_SPACE, chunk)
    else:
        message.add_field("✅ Active Participants", "No active participants.")
    if left:
        for index, chunk in enumerate(chunk_text(_numbered(left), settings.tally_field_limit)):
            message.add_field("❌ Left Participants" if index == 0 else ZERO_WIDTH_SPACE, chunk)
    return message


def _message_size(message: OutboundMessage) -> int:
    return len(message.title) + len(message.description) + sum(
        len(item.name) + len(item.value) for item in message.fields
    )


def paginate_message(
    message: OutboundMessage,
    *,
    char_limit: int = EMBED_CHAR_LIMIT,
    field_limit: int = EMBED_FIELD_LIMIT,
) -> List[OutboundMessage]:
    """Split a message's fields across pages that each fit one embed.

    The first page keeps the title and description; later pages carry a
    "(continued)" title and only fields.
    """

    pages: List[OutboundMessage] = []
    current = OutboundMessage(
        title=message.title,
        description=message.description,
        colour=message.colour,
        timestamp=message.timestamp,
        join_action=message.join_action,
    )
    for item in message.fields:
        size = len(item.name) + len(item.value)
        if current.fields and (
            len(current.fields) >= field_limit or _message_size(current) + size > char_limit
        ):
            pages.append(current)
            current = OutboundMessage(
                title=f"{message.title} (continued)",
                colour=message.colour,
                timestamp=message.timestamp,
            )
        current.fields.append(item)
    pages.append(current)
    return pages


def build_confirmation(created: CreatedEvent) -> str:
    lines = [
        "✅ CTF event created successfully!",
        "",
        f"📅 **Event:** {created.event_url}",
        f"💬 **Forum:** <#{created.channel_id}>",
        f"🎭 **Role:** <@&{created.role_id}>",
    ]
    if created.announced and created.announcement_channel_id is not None:
        lines.append(f"📢 **Announcement posted in:** <#{created.announcement_channel_id}>")
    elif created.announcement_error:
        lines.append(f"⚠️ Failed to post the announcement: {created.announcement_error}")
    else:
        lines.append("⚠️ Could not find the target channel to post the announcement.")
    return "\n".join(lines)


def format_partial_state(created: dict) -> Optional[str]:
    if not created:
        return None
    parts = [f"{key}={value}" for key, value in created.items()]
    return "Already created (not rolled back): " + ", ".join(parts)


__all__ = [
    "EMBED_CHAR_LIMIT",
    "EMBED_FIELD_LIMIT",
    "build_announcement",
    "build_confirmation",
    "build_event_description",
    "build_info_message",
    "build_tally_message",
    "chunk_text",
    "format_partial_state",
    "paginate_message",
]
