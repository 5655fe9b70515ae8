"""Routes inbound platform signals to the lifecycle service.

Every handler is an exception boundary: failures are logged (and recorded in
telemetry) so one bad interaction never takes down the dispatch loop.
Commands and buttons always get a private reply; passive notifications only
log.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Tuple

from .actions import is_join_payload, parse_join_payload
from .messages import build_confirmation, format_partial_state
from .models import ButtonJoinOutcome, EventRequest, ScheduledEventStatus
from .platform import PlatformPermissionError
from .service import (
    EventCreationError,
    EventLifecycleService,
    EventValidationError,
    PermissionDeniedError,
)
from .telemetry import TelemetryCollector
from .timeutil import DATE_FORMAT_HINT, parse_local_datetime

logger = logging.getLogger(__name__)

Reply = Callable[[str], Awaitable[None]]

CREATE_EVENT_COMMAND = "ctf-event"
GENERIC_COMMAND_FAILURE = "❌ There was an error while executing this command!"
GENERIC_BUTTON_FAILURE = "❌ Failed to join the CTF. Please try again shortly."
MISSING_PERMISSIONS_HINT = (
    "**Missing Permissions:** The bot needs `MANAGE_EVENTS`, `MANAGE_ROLES`, "
    "and `MANAGE_CHANNELS` permissions."
)


@dataclass(frozen=True)
class CommandInvocation:
    name: str
    user_id: int
    role_ids: Tuple[int, ...] = ()
    guild_id: Optional[int] = None
    options: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ButtonPress:
    custom_id: str
    user_id: int
    display_name: str
    in_guild: bool = True


_BUTTON_REPLIES = {
    ButtonJoinOutcome.JOINED: "✅ Joined the CTF! Role <@&{role_id}> has been granted.",
    ButtonJoinOutcome.ALREADY_JOINED: "✅ You already joined <@&{role_id}>.",
    ButtonJoinOutcome.EVENT_INACTIVE: "❌ This CTF event is no longer active.",
    ButtonJoinOutcome.ROLE_MISMATCH: "❌ This Join CTF button does not match the event data.",
}


class InteractionRouter:
    """Dispatches commands, buttons and scheduled-event notifications."""

    def __init__(
        self,
        service: EventLifecycleService,
        telemetry: Optional[TelemetryCollector] = None,
    ) -> None:
        self.service = service
        self._telemetry = telemetry
        self._commands: Dict[str, Callable[[CommandInvocation, Reply], Awaitable[bool]]] = {
            CREATE_EVENT_COMMAND: self._create_event_command,
        }

    # Commands ----------------------------------------------------------
    async def handle_command(self, invocation: CommandInvocation, reply: Reply) -> bool:
        """Run a command; returns False when it failed or was not recognised.

        Rejections the user can fix (permissions, bad input) count as handled.
        """

        handler = self._commands.get(invocation.name)
        if handler is None:
            logger.error("No command matching %s was found", invocation.name)
            return False
        try:
            return await handler(invocation, reply)
        except Exception as exc:
            logger.exception("Unhandled error in command %s", invocation.name)
            self._track_error(exc, invocation.name, invocation.user_id)
            await reply(GENERIC_COMMAND_FAILURE)
            return False

    async def _create_event_command(self, invocation: CommandInvocation, reply: Reply) -> bool:
        if not self.service.config.is_admin(invocation.role_ids):
            await reply("❌ You do not have permission to use this command. Admin role required.")
            return True

        options = invocation.options
        offset = self.service.settings.timezone_offset_hours
        try:
            start = parse_local_datetime(str(options.get("start_date", "")), offset_hours=offset)
            end = parse_local_datetime(str(options.get("end_date", "")), offset_hours=offset)
        except ValueError:
            await reply(
                f"❌ Invalid date format. Please use {DATE_FORMAT_HINT} format.\n"
                "Example: 31/01/2026 15:00"
            )
            return True

        request = EventRequest(
            name=str(options.get("name", "")).strip(),
            start_time=start,
            end_time=end,
            url=options.get("url") or None,
            team_name=options.get("team_name") or None,
            team_password=options.get("team_password") or None,
            invite_link=options.get("invite_link") or None,
            announce_channel_id=options.get("channel_id") or None,
        )
        try:
            created = await self.service.create_event(request, actor_role_ids=invocation.role_ids)
        except PermissionDeniedError:
            await reply("❌ You do not have permission to use this command. Admin role required.")
            return True
        except EventValidationError as exc:
            await reply(f"❌ {exc}")
            return True
        except EventCreationError as exc:
            self._track_error(exc.cause, invocation.name, invocation.user_id)
            lines = ["❌ Failed to create CTF event.", ""]
            if isinstance(exc.cause, PlatformPermissionError):
                lines.append(MISSING_PERMISSIONS_HINT)
            else:
                lines.append(f"**Error:** {exc}")
            partial = format_partial_state(exc.created)
            if partial:
                lines.append(partial)
            await reply("\n".join(lines))
            return False

        await reply(build_confirmation(created))
        return True

    # Buttons -----------------------------------------------------------
    async def handle_button(self, press: ButtonPress, reply: Reply) -> bool:
        """Handle a join button press; returns False for foreign buttons."""

        if not is_join_payload(press.custom_id):
            return False
        try:
            payload = parse_join_payload(press.custom_id)
        except ValueError:
            await reply("❌ Invalid Join CTF button.")
            return True
        if not press.in_guild:
            await reply("❌ This button can only be used inside the server.")
            return True
        try:
            outcome = await self.service.on_button_join(
                payload.external_event_id, payload.role_id, press.user_id, press.display_name
            )
        except Exception as exc:
            logger.exception("Error handling join button %s", press.custom_id)
            self._track_error(exc, "join_button", press.user_id)
            await reply(GENERIC_BUTTON_FAILURE)
            return True
        await reply(_BUTTON_REPLIES[outcome].format(role_id=payload.role_id))
        return True

    # Passive notifications ---------------------------------------------
    async def handle_interest_added(
        self, external_id: int, user_id: int, display_name: str
    ) -> None:
        logger.debug("User %s marked interest in %s", display_name, external_id)
        try:
            await self.service.on_join(external_id, user_id, display_name)
        except Exception as exc:
            logger.exception("Error handling event user add for %s", external_id)
            self._track_error(exc, "interest_added", user_id)

    async def handle_interest_removed(self, external_id: int, user_id: int) -> None:
        try:
            await self.service.on_leave(external_id, user_id)
        except Exception as exc:
            logger.exception("Error handling event user remove for %s", external_id)
            self._track_error(exc, "interest_removed", user_id)

    async def handle_status_change(
        self,
        external_id: int,
        previous: ScheduledEventStatus,
        current: ScheduledEventStatus,
    ) -> bool:
        """Run completion only on a transition into ``completed``."""

        if previous is ScheduledEventStatus.COMPLETED or current is not ScheduledEventStatus.COMPLETED:
            return False
        logger.info("Scheduled event %s completed", external_id)
        try:
            await self.service.on_completion(external_id)
        except Exception as exc:
            logger.exception("Error handling completion of %s", external_id)
            self._track_error(exc, "completion", None)
        return True

    async def startup(self) -> int:
        try:
            return await self.service.sync_participants()
        except Exception as exc:
            logger.exception("Error syncing participants")
            self._track_error(exc, "startup_sync", None)
            return 0

    def _track_error(self, exc: BaseException, source: str, user_id: Optional[int]) -> None:
        if self._telemetry is None:
            return
        self._telemetry.track_error(
            type(exc).__name__,
            source=source,
            user_id=str(user_id) if user_id is not None else None,
            error_details=str(exc),
        )


__all__ = [
    "ButtonPress",
    "CREATE_EVENT_COMMAND",
    "CommandInvocation",
    "InteractionRouter",
    "Reply",
]
