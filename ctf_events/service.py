"""Event lifecycle controller: creation, membership tracking and archival."""
from __future__ import annotations

import logging
from contextlib import nullcontext
from datetime import datetime, timezone
from typing import Dict, Iterable, Optional

from .config import BotConfig, Settings
from .messages import (
    build_announcement,
    build_event_description,
    build_info_message,
    build_tally_message,
    paginate_message,
)
from .models import (
    ButtonJoinOutcome,
    CompletionSummary,
    CreatedEvent,
    CTFEvent,
    EventRequest,
    ParticipantStatus,
)
from .platform import ChannelNotFoundError, ChatPlatform, PlatformError
from .slug import slugify
from .state import EventStore
from .telemetry import TelemetryCollector, track_duration

logger = logging.getLogger(__name__)


class LifecycleError(RuntimeError):
    """Base class for errors reported back to the invoking user."""


class EventValidationError(LifecycleError):
    """Request rejected before any side effect was attempted."""


class PermissionDeniedError(LifecycleError):
    """Caller does not hold an allow-listed role."""


class EventCreationError(LifecycleError):
    """A platform call failed part way through creation.

    ``created`` maps object kinds to the ids that already exist; nothing is
    rolled back.
    """

    def __init__(self, message: str, *, created: Dict[str, int], cause: PlatformError) -> None:
        super().__init__(message)
        self.created = dict(created)
        self.cause = cause


class EventLifecycleService:
    """Sole writer of event and participant records."""

    def __init__(
        self,
        config: BotConfig,
        settings: Settings,
        store: EventStore,
        platform: ChatPlatform,
        telemetry: Optional[TelemetryCollector] = None,
    ) -> None:
        self.config = config
        self.settings = settings
        self.store = store
        self.platform = platform
        self._telemetry = telemetry

    # Creation ----------------------------------------------------------
    def validate_request(self, request: EventRequest, *, now: Optional[datetime] = None) -> None:
        now = now or datetime.now(timezone.utc)
        if not request.name.strip():
            raise EventValidationError("Event name must not be empty.")
        if not slugify(request.name):
            raise EventValidationError("Event name must contain letters or digits.")
        if request.end_time <= request.start_time:
            raise EventValidationError("End date must be after start date.")
        if request.start_time < now:
            raise EventValidationError("Start date is in the past.")

    async def create_event(
        self,
        request: EventRequest,
        *,
        actor_role_ids: Iterable[int],
        now: Optional[datetime] = None,
    ) -> CreatedEvent:
        if not self.config.is_admin(actor_role_ids):
            raise PermissionDeniedError("Admin role required.")
        self.validate_request(request, now=now)

        slug = slugify(request.name)
        reason = f"CTF Event: {request.name}"
        created: Dict[str, int] = {}
        try:
            role_id = await self.platform.create_role(
                slug,
                colour=self.settings.role_colour,
                mentionable=self.settings.role_mentionable,
                reason=reason,
            )
            created["role"] = role_id
            logger.info("Created role %s (%s)", slug, role_id)

            channel_id = await self.platform.create_forum(
                slug,
                parent_id=self.config.active_category_id,
                role_id=role_id,
                reason=reason,
            )
            created["forum"] = channel_id
            logger.info("Created forum %s (%s)", slug, channel_id)

            handle = await self.platform.create_scheduled_event(
                name=request.name,
                start_time=request.start_time,
                end_time=request.end_time,
                location=request.url or self.settings.location_placeholder,
                description=build_event_description(request, self.settings),
            )
            created["scheduled_event"] = handle.id
            logger.info("Created scheduled event %s (%s)", request.name, handle.id)
        except PlatformError as exc:
            logger.error("Platform error creating %s after %s: %s", slug, created, exc)
            raise EventCreationError(str(exc), created=created, cause=exc) from exc

        event_id = self.store.create_event(
            CTFEvent(
                id=None,
                external_id=handle.id,
                name=request.name,
                slug=slug,
                role_id=role_id,
                channel_id=channel_id,
                start_time=request.start_time,
                end_time=request.end_time,
            )
        )
        created["record"] = event_id
        logger.info("Saved event %s to database as %s", slug, event_id)

        try:
            await self.platform.post_thread(
                channel_id,
                title=self.settings.info_thread_title,
                message=build_info_message(request, self.settings),
                locked=True,
            )
        except PlatformError as exc:
            logger.error("Failed to post info thread for %s: %s", slug, exc)
            raise EventCreationError(str(exc), created=created, cause=exc) from exc

        result = CreatedEvent(
            event_id=event_id,
            external_id=handle.id,
            event_url=handle.url,
            slug=slug,
            role_id=role_id,
            channel_id=channel_id,
        )
        target = request.announce_channel_id or self.config.announcement_channel_id
        if target is None:
            logger.warning("No announcement channel configured for %s", slug)
        else:
            try:
                await self.platform.post_message(
                    target, build_announcement(request, result, self.settings)
                )
                result.announcement_channel_id = target
                result.announced = True
            except ChannelNotFoundError:
                logger.warning("Announcement channel %s not found for %s", target, slug)
            except PlatformError as exc:
                logger.error("Failed to post announcement for %s to %s: %s", slug, target, exc)
                result.announcement_error = str(exc)

        self._track("created", slug, {"event_id": event_id, "announced": result.announced})
        return result

    # Membership --------------------------------------------------------
    async def sync_participants(self) -> int:
        """Upsert every currently interested user of each active event."""

        upserts = 0
        with self._timed("sync_participants"):
            events = self.store.list_active_events()
            logger.info("Syncing participants for %d active events", len(events))
            for event in events:
                try:
                    users = await self.platform.fetch_interested_users(event.external_id)
                except PlatformError as exc:
                    logger.error("Failed to sync event %s: %s", event.name, exc)
                    continue
                for user in users:
                    self.store.add_or_reactivate_participant(event.id, user.id, user.display_name)
                    upserts += 1
                logger.info("Synced %d participants for %s", len(users), event.name)
        if events:
            self._track("synced", "*", {"events": len(events), "upserts": upserts})
        return upserts

    def _lookup_active(self, external_id: int) -> Optional[CTFEvent]:
        event = self.store.get_event_by_external_id(external_id)
        if event is None:
            logger.info("Event not found in database: %s", external_id)
            return None
        if not event.is_active:
            logger.info("Ignoring signal for archived event %s", event.slug)
            return None
        return event

    async def on_join(self, external_id: int, user_id: int, display_name: str) -> bool:
        event = self._lookup_active(external_id)
        if event is None:
            return False
        await self.platform.grant_role(user_id, event.role_id, reason=f"Joined {event.name}")
        logger.info("Assigned role %s to %s", event.slug, display_name)
        self.store.add_or_reactivate_participant(event.id, user_id, display_name)
        self._track_participation("joined", event, user_id)
        return True

    async def on_leave(self, external_id: int, user_id: int) -> bool:
        event = self._lookup_active(external_id)
        if event is None:
            return False
        await self.platform.revoke_role(user_id, event.role_id, reason=f"Left {event.name}")
        logger.info("Removed role %s from %s", event.slug, user_id)
        self.store.mark_participant_left(event.id, user_id)
        self._track_participation("left", event, user_id)
        return True

    async def on_button_join(
        self, external_id: int, role_id: int, user_id: int, display_name: str
    ) -> ButtonJoinOutcome:
        event = self.store.get_event_by_external_id(external_id)
        if event is None or not event.is_active:
            return ButtonJoinOutcome.EVENT_INACTIVE
        if event.role_id != role_id:
            logger.warning(
                "Join button role %s does not match event %s role %s",
                role_id,
                event.slug,
                event.role_id,
            )
            return ButtonJoinOutcome.ROLE_MISMATCH
        if await self.platform.member_has_role(user_id, role_id):
            return ButtonJoinOutcome.ALREADY_JOINED
        await self.platform.grant_role(user_id, role_id, reason=f"Joined {event.name} via button")
        self.store.add_or_reactivate_participant(event.id, user_id, display_name)
        self._track_participation("button_joined", event, user_id)
        return ButtonJoinOutcome.JOINED

    # Completion --------------------------------------------------------
    async def on_completion(self, external_id: int) -> Optional[CompletionSummary]:
        """Post the tally, archive the forum, strip and delete the role."""

        event = self.store.get_event_by_external_id(external_id)
        if event is None:
            logger.info("Event not found in database: %s", external_id)
            return None
        with self._timed("on_completion"):
            return await self._complete(event)

    async def _complete(self, event: CTFEvent) -> CompletionSummary:
        participants = self.store.list_participants(event.id, include_left=True)
        active = [p for p in participants if p.status is ParticipantStatus.ACTIVE]
        left = [p for p in participants if p.status is ParticipantStatus.LEFT]
        logger.info(
            "Completing %s: %d active, %d left participants", event.slug, len(active), len(left)
        )
        summary = CompletionSummary(event_id=event.id, active_count=len(active), left_count=len(left))

        forum_exists = True
        pages = paginate_message(build_tally_message(event, active, left, self.settings))
        try:
            thread_id = await self.platform.post_thread(
                event.channel_id,
                title=self.settings.tally_thread_title,
                message=pages[0],
            )
            for page in pages[1:]:
                await self.platform.post_message(thread_id, page)
            summary.tally_posted = True
            logger.info("Posted tally for %s in %d page(s)", event.slug, len(pages))
        except ChannelNotFoundError:
            forum_exists = False
            logger.warning("Forum %s for %s no longer exists", event.channel_id, event.slug)
        except PlatformError as exc:
            logger.error("Failed to post tally for %s: %s", event.slug, exc)

        if forum_exists:
            try:
                await self.platform.relocate_channel(
                    event.channel_id, self.config.archive_category_id
                )
                summary.relocated = True
                logger.info("Moved forum for %s to archive category", event.slug)
            except PlatformError as exc:
                logger.error("Failed to move forum for %s to archive: %s", event.slug, exc)

        reason = f"CTF Event completed: {event.name}"
        for participant in active:
            try:
                await self.platform.revoke_role(participant.user_id, event.role_id, reason=reason)
            except PlatformError as exc:
                summary.revoke_failures.append(participant.user_id)
                logger.error("Failed to remove role from %s: %s", participant.display_name, exc)

        try:
            await self.platform.delete_role(event.role_id, reason=reason)
            summary.role_deleted = True
            logger.info("Deleted role %s", event.slug)
        except PlatformError as exc:
            logger.error("Failed to delete role %s: %s", event.slug, exc)

        self.store.archive_event(event.id)
        logger.info("Cleanup completed for %s", event.name)
        self._track(
            "archived",
            event.slug,
            {
                "active": summary.active_count,
                "left": summary.left_count,
                "revoke_failures": len(summary.revoke_failures),
                "role_deleted": summary.role_deleted,
            },
        )
        return summary

    # Telemetry ---------------------------------------------------------
    def _timed(self, operation: str):
        if self._telemetry is None:
            return nullcontext()
        return track_duration(operation, self._telemetry)

    def _track(self, transition: str, slug: str, details: Dict[str, object]) -> None:
        if self._telemetry is not None:
            self._telemetry.track_lifecycle(transition, slug, details)

    def _track_participation(self, action: str, event: CTFEvent, user_id: int) -> None:
        if self._telemetry is not None:
            self._telemetry.track_participation(action, event.slug, str(user_id))


__all__ = [
    "EventCreationError",
    "EventLifecycleService",
    "EventValidationError",
    "LifecycleError",
    "PermissionDeniedError",
]
