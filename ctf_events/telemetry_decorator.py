"""Discord command telemetry decorator."""
from __future__ import annotations

import functools
import time
from typing import Any, Callable, Optional

import discord

from .telemetry import get_telemetry


def track_command(func: Optional[Callable] = None, *, name: Optional[str] = None) -> Callable:
    """Decorator to track Discord command usage and latency.

    ``name`` overrides the recorded command name, which otherwise is the
    function name. A wrapped command that returns ``False`` is recorded as a
    failure even though it did not raise.
    """
    if func is None:
        return functools.partial(track_command, name=name)

    command_name = name or func.__name__

    @functools.wraps(func)
    async def wrapper(interaction: discord.Interaction, *args, **kwargs) -> Any:
        telemetry = get_telemetry()
        user_id = str(interaction.user.id)
        guild_id = str(interaction.guild_id) if interaction.guild_id else "dm"
        start_time = time.time()
        success = False

        try:
            result = await func(interaction, *args, **kwargs)
            success = result is not False
            return result

        except Exception as e:
            telemetry.track_error(
                type(e).__name__,
                source=command_name,
                user_id=user_id,
                error_details=str(e),
            )
            raise

        finally:
            duration_ms = (time.time() - start_time) * 1000
            telemetry.track_command(
                command_name,
                user_id,
                guild_id,
                success=success,
                duration_ms=duration_ms,
            )

    return wrapper


__all__ = ["track_command"]
