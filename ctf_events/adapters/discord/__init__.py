"""Discord adapter: the discord.py side of the chat platform interface."""

from __future__ import annotations

from .builders import build_embed, build_join_view
from .platform import DiscordPlatform, to_event_status

__all__ = ["DiscordPlatform", "build_embed", "build_join_view", "to_event_status"]
