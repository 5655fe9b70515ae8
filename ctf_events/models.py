"""Core data models for the CTF events bot."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional


class ParticipantStatus(str, Enum):
    ACTIVE = "active"
    LEFT = "left"


class ScheduledEventStatus(str, Enum):
    """Platform-neutral view of a scheduled event's status."""

    SCHEDULED = "scheduled"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ButtonJoinOutcome(str, Enum):
    JOINED = "joined"
    ALREADY_JOINED = "already_joined"
    EVENT_INACTIVE = "event_inactive"
    ROLE_MISMATCH = "role_mismatch"


@dataclass
class CTFEvent:
    id: Optional[int]
    external_id: int
    name: str
    slug: str
    role_id: int
    channel_id: int
    start_time: datetime
    end_time: datetime
    is_active: bool = True
    archived_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


@dataclass
class Participant:
    event_id: int
    user_id: int
    display_name: str
    status: ParticipantStatus
    joined_at: datetime
    left_at: Optional[datetime] = None


@dataclass(frozen=True)
class EventRequest:
    """Inputs collected by the creation command, after date parsing."""

    name: str
    start_time: datetime
    end_time: datetime
    url: Optional[str] = None
    team_name: Optional[str] = None
    team_password: Optional[str] = None
    invite_link: Optional[str] = None
    announce_channel_id: Optional[int] = None


@dataclass(frozen=True)
class ScheduledEventHandle:
    id: int
    url: str


@dataclass(frozen=True)
class PlatformUser:
    id: int
    display_name: str


@dataclass
class CreatedEvent:
    event_id: int
    external_id: int
    event_url: str
    slug: str
    role_id: int
    channel_id: int
    announcement_channel_id: Optional[int] = None
    announced: bool = False
    announcement_error: Optional[str] = None


@dataclass
class CompletionSummary:
    event_id: int
    active_count: int
    left_count: int
    tally_posted: bool = False
    relocated: bool = False
    role_deleted: bool = False
    revoke_failures: List[int] = field(default_factory=list)


@dataclass
class MessageField:
    name: str
    value: str
    inline: bool = False


@dataclass
class JoinAction:
    """A join button attached to an outbound message."""

    label: str
    payload: str


@dataclass
class OutboundMessage:
    """Platform-neutral rich message; adapters render it to embeds."""

    title: str
    description: str = ""
    colour: Optional[int] = None
    fields: List[MessageField] = field(default_factory=list)
    timestamp: Optional[datetime] = None
    join_action: Optional[JoinAction] = None

    def add_field(self, name: str, value: str, *, inline: bool = False) -> None:
        self.fields.append(MessageField(name=name, value=value, inline=inline))
