"""Encoding of the custom id carried by the "Join CTF" button."""
from __future__ import annotations

from dataclasses import dataclass

JOIN_PREFIX = "join_ctf"


@dataclass(frozen=True)
class JoinPayload:
    external_event_id: int
    role_id: int


def build_join_payload(external_event_id: int, role_id: int) -> str:
    return f"{JOIN_PREFIX}:{external_event_id}:{role_id}"


def is_join_payload(custom_id: str) -> bool:
    return custom_id.startswith(f"{JOIN_PREFIX}:")


def parse_join_payload(custom_id: str) -> JoinPayload:
    """Split ``join_ctf:<event>:<role>``; raises ``ValueError`` when malformed."""

    parts = custom_id.split(":")
    if len(parts) != 3 or parts[0] != JOIN_PREFIX:
        raise ValueError(f"Malformed join payload: {custom_id!r}")
    _, event_part, role_part = parts
    if not event_part.isdigit() or not role_part.isdigit():
        raise ValueError(f"Malformed join payload: {custom_id!r}")
    return JoinPayload(external_event_id=int(event_part), role_id=int(role_part))


__all__ = ["JOIN_PREFIX", "JoinPayload", "build_join_payload", "is_join_payload", "parse_join_payload"]
