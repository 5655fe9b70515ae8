"""Shared fixtures: an in-memory chat platform and a wired lifecycle service."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, List, Optional, Set

import pytest

from ctf_events.config import BotConfig, Settings
from ctf_events.models import OutboundMessage, PlatformUser, ScheduledEventHandle
from ctf_events.platform import ChannelNotFoundError, PlatformError
from ctf_events.service import EventLifecycleService
from ctf_events.state import EventStore
from ctf_events.telemetry import TelemetryCollector

ADMIN_ROLE = 111
ANNOUNCE_CHANNEL = 500
ACTIVE_CATEGORY = 10
ARCHIVE_CATEGORY = 20
NOW = datetime(2026, 1, 1, tzinfo=timezone.utc)


class FakePlatform:
    """Records every call and keeps just enough state to answer queries."""

    def __init__(self) -> None:
        self.calls: List[tuple] = []
        self.failures: Dict[str, PlatformError] = {}
        self.channels: Set[int] = {ANNOUNCE_CHANNEL, ACTIVE_CATEGORY, ARCHIVE_CATEGORY}
        self.member_roles: Dict[int, Set[int]] = {}
        self.deleted_roles: Set[int] = set()
        self.interested: Dict[int, List[PlatformUser]] = {}
        self.messages: List[tuple] = []
        self.threads: List[dict] = []
        self.event_descriptions: List[str] = []
        self.parents: Dict[int, Optional[int]] = {}
        self._next_id = 1000

    def _new_id(self) -> int:
        self._next_id += 1
        return self._next_id

    def _record(self, op: str, *args) -> None:
        self.calls.append((op, *args))
        if op in self.failures:
            raise self.failures[op]

    @property
    def ops(self) -> List[str]:
        return [call[0] for call in self.calls]

    async def create_role(self, name: str, *, colour: int, mentionable: bool, reason: str) -> int:
        self._record("create_role", name)
        return self._new_id()

    async def create_forum(
        self, name: str, *, parent_id: Optional[int], role_id: int, reason: str
    ) -> int:
        self._record("create_forum", name, parent_id, role_id)
        channel_id = self._new_id()
        self.channels.add(channel_id)
        self.parents[channel_id] = parent_id
        return channel_id

    async def create_scheduled_event(
        self,
        *,
        name: str,
        start_time: datetime,
        end_time: datetime,
        location: str,
        description: str,
    ) -> ScheduledEventHandle:
        self._record("create_scheduled_event", name)
        self.event_descriptions.append(description)
        event_id = self._new_id()
        return ScheduledEventHandle(id=event_id, url=f"https://discord.com/events/1/{event_id}")

    async def grant_role(self, user_id: int, role_id: int, *, reason: str) -> None:
        self._record("grant_role", user_id, role_id)
        self.member_roles.setdefault(user_id, set()).add(role_id)

    async def revoke_role(self, user_id: int, role_id: int, *, reason: str) -> None:
        self._record("revoke_role", user_id, role_id)
        self.member_roles.setdefault(user_id, set()).discard(role_id)

    async def member_has_role(self, user_id: int, role_id: int) -> bool:
        return role_id in self.member_roles.get(user_id, set())

    async def delete_role(self, role_id: int, *, reason: str) -> None:
        self._record("delete_role", role_id)
        if role_id in self.deleted_roles:
            raise PlatformError(f"Role {role_id} not found")
        self.deleted_roles.add(role_id)

    async def relocate_channel(self, channel_id: int, parent_id: Optional[int]) -> None:
        self._record("relocate_channel", channel_id, parent_id)
        if channel_id not in self.channels:
            raise ChannelNotFoundError(f"Channel {channel_id} not found")
        self.parents[channel_id] = parent_id

    async def post_message(self, channel_id: int, message: OutboundMessage) -> None:
        self._record("post_message", channel_id)
        if channel_id not in self.channels:
            raise ChannelNotFoundError(f"Channel {channel_id} not found")
        self.messages.append((channel_id, message))

    async def post_thread(
        self, channel_id: int, *, title: str, message: OutboundMessage, locked: bool = False
    ) -> int:
        self._record("post_thread", channel_id, title)
        if channel_id not in self.channels:
            raise ChannelNotFoundError(f"Channel {channel_id} not found")
        thread_id = self._new_id()
        self.channels.add(thread_id)
        self.threads.append(
            {
                "id": thread_id,
                "channel_id": channel_id,
                "title": title,
                "message": message,
                "locked": locked,
            }
        )
        return thread_id

    async def fetch_interested_users(self, external_event_id: int) -> List[PlatformUser]:
        self._record("fetch_interested_users", external_event_id)
        return list(self.interested.get(external_event_id, []))


@pytest.fixture
def admin_roles() -> tuple:
    return (ADMIN_ROLE,)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def settings() -> Settings:
    return Settings.from_dict({"forum": {"rules": ["❌ Do not share flags"]}})


@pytest.fixture
def config(tmp_path) -> BotConfig:
    return BotConfig(
        admin_role_ids=frozenset({ADMIN_ROLE}),
        announcement_channel_id=ANNOUNCE_CHANNEL,
        active_category_id=ACTIVE_CATEGORY,
        archive_category_id=ARCHIVE_CATEGORY,
        guild_id=1,
        db_path=tmp_path / "events.db",
        telemetry_db_path=tmp_path / "telemetry.db",
    )


@pytest.fixture
def platform() -> FakePlatform:
    return FakePlatform()


@pytest.fixture
def store(config) -> EventStore:
    return EventStore(config.db_path)


@pytest.fixture
def telemetry(config) -> TelemetryCollector:
    return TelemetryCollector(config.telemetry_db_path)


@pytest.fixture
def service(config, settings, store, platform, telemetry) -> EventLifecycleService:
    return EventLifecycleService(config, settings, store, platform, telemetry=telemetry)
