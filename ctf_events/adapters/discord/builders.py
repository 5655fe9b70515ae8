"""Discord embed/view builders.

Renders the platform-neutral :class:`OutboundMessage` into Discord UI
objects. Kept separate so rendering can be unit tested without a gateway.
"""

from __future__ import annotations

from typing import Optional

import discord

from ...models import JoinAction, OutboundMessage

DEFAULT_COLOUR = 0xFF6B6B


def build_embed(message: OutboundMessage) -> discord.Embed:
    embed = discord.Embed(
        title=message.title,
        description=message.description or None,
        colour=discord.Colour(message.colour if message.colour is not None else DEFAULT_COLOUR),
        timestamp=message.timestamp,
    )
    for item in message.fields:
        embed.add_field(name=item.name, value=item.value, inline=item.inline)
    return embed


def build_join_view(action: Optional[JoinAction]) -> Optional[discord.ui.View]:
    """Attach a persistent-style join button; the click is routed by custom id."""

    if action is None:
        return None
    view = discord.ui.View(timeout=None)
    view.add_item(
        discord.ui.Button(
            label=action.label,
            style=discord.ButtonStyle.success,
            emoji="🚩",
            custom_id=action.payload,
        )
    )
    return view


__all__ = ["build_embed", "build_join_view"]
