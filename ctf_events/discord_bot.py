"""Discord bot entry point for the CTF events lifecycle."""

import logging
from typing import Optional

import discord
from discord import app_commands
from discord.ext import commands

from .actions import is_join_payload
from .adapters.discord import DiscordPlatform, to_event_status
from .config import BotConfig, Settings, get_settings
from .router import CREATE_EVENT_COMMAND, ButtonPress, CommandInvocation, InteractionRouter
from .service import EventLifecycleService
from .state import EventStore
from .telemetry import get_telemetry
from .telemetry_decorator import track_command
from .timeutil import DATE_FORMAT_HINT

logger = logging.getLogger(__name__)


def _role_ids(user: discord.abc.User) -> tuple:
    roles = getattr(user, "roles", None) or []
    return tuple(role.id for role in roles)


def build_bot(
    config: BotConfig,
    settings: Optional[Settings] = None,
    intents: Optional[discord.Intents] = None,
) -> commands.Bot:
    intents = intents or discord.Intents.default()
    intents.guilds = True
    intents.members = True
    intents.guild_scheduled_events = True
    bot = commands.Bot(command_prefix="/", intents=intents, application_id=config.application_id)

    settings = settings or get_settings()
    telemetry = get_telemetry(config.telemetry_db_path)
    service = EventLifecycleService(
        config,
        settings,
        EventStore(config.db_path),
        DiscordPlatform(bot, config.guild_id),
        telemetry=telemetry,
    )
    router = InteractionRouter(service, telemetry=telemetry)
    setattr(bot, "lifecycle_service", service)
    setattr(bot, "interaction_router", router)
    synced_once = False

    @bot.event
    async def on_ready() -> None:
        nonlocal synced_once
        logger.info("CTF events bot connected as %s", bot.user)
        try:
            synced = await bot.tree.sync()
            logger.info("Synced %d commands", len(synced))
        except Exception as exc:  # pragma: no cover - logging only
            logger.exception("Failed to sync commands: %s", exc)
        if synced_once:
            return
        synced_once = True
        upserts = await router.startup()
        logger.info("Startup sync upserted %d participants", upserts)

    @bot.event
    async def on_interaction(interaction: discord.Interaction) -> None:
        if interaction.type is not discord.InteractionType.component:
            return
        custom_id = (interaction.data or {}).get("custom_id", "")
        if not is_join_payload(custom_id):
            return
        await interaction.response.defer(ephemeral=True, thinking=True)

        async def reply(content: str) -> None:
            await interaction.followup.send(content, ephemeral=True)

        await router.handle_button(
            ButtonPress(
                custom_id=custom_id,
                user_id=interaction.user.id,
                display_name=interaction.user.display_name,
                in_guild=interaction.guild is not None,
            ),
            reply,
        )

    @bot.event
    async def on_scheduled_event_user_add(
        event: discord.ScheduledEvent, user: discord.User
    ) -> None:
        await router.handle_interest_added(event.id, user.id, user.display_name)

    @bot.event
    async def on_scheduled_event_user_remove(
        event: discord.ScheduledEvent, user: discord.User
    ) -> None:
        await router.handle_interest_removed(event.id, user.id)

    @bot.event
    async def on_scheduled_event_update(
        before: discord.ScheduledEvent, after: discord.ScheduledEvent
    ) -> None:
        await router.handle_status_change(
            after.id, to_event_status(before.status), to_event_status(after.status)
        )

    @app_commands.command(name=CREATE_EVENT_COMMAND, description="Create a new CTF event")
    @track_command(name=CREATE_EVENT_COMMAND)
    @app_commands.describe(
        name="CTF event name",
        start_date=f"Start date ({DATE_FORMAT_HINT}, {settings.timezone_label})",
        end_date=f"End date ({DATE_FORMAT_HINT}, {settings.timezone_label})",
        url="CTF platform URL",
        team_name="Team name",
        team_password="Team password",
        invite_link="Team invite link",
        channel="Channel for the announcement",
    )
    async def ctf_event(
        interaction: discord.Interaction,
        name: str,
        start_date: str,
        end_date: str,
        url: Optional[str] = None,
        team_name: Optional[str] = None,
        team_password: Optional[str] = None,
        invite_link: Optional[str] = None,
        channel: Optional[discord.TextChannel] = None,
    ):
        await interaction.response.defer(ephemeral=True, thinking=True)

        async def reply(content: str) -> None:
            await interaction.followup.send(content, ephemeral=True)

        return await router.handle_command(
            CommandInvocation(
                name=CREATE_EVENT_COMMAND,
                user_id=interaction.user.id,
                role_ids=_role_ids(interaction.user),
                guild_id=interaction.guild_id,
                options={
                    "name": name,
                    "start_date": start_date,
                    "end_date": end_date,
                    "url": url,
                    "team_name": team_name,
                    "team_password": team_password,
                    "invite_link": invite_link,
                    "channel_id": channel.id if channel is not None else None,
                },
            ),
            reply,
        )

    bot.tree.add_command(ctf_event)
    return bot


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    config = BotConfig.from_env()
    if not config.token:
        raise RuntimeError("DISCORD_TOKEN environment variable must be set")
    if config.guild_id is None:
        raise RuntimeError("CTF_GUILD_ID environment variable must be set")
    bot = build_bot(config)
    bot.run(config.token)


__all__ = ["build_bot", "main"]
