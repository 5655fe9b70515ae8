"""Tests for announcement, info and tally message composition."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from ctf_events.messages import (
    EMBED_CHAR_LIMIT,
    EMBED_FIELD_LIMIT,
    ZERO_WIDTH_SPACE,
    build_announcement,
    build_confirmation,
    build_event_description,
    build_info_message,
    build_tally_message,
    chunk_text,
    format_partial_state,
    paginate_message,
)
from ctf_events.models import (
    CreatedEvent,
    CTFEvent,
    EventRequest,
    OutboundMessage,
    Participant,
    ParticipantStatus,
)

START = datetime(2026, 2, 1, 8, 0, tzinfo=timezone.utc)


def _request(**overrides) -> EventRequest:
    base = dict(
        name="Pascal CTF 2026",
        start_time=START,
        end_time=START + timedelta(days=2),
        url="https://ctf.example.org",
        team_name="hexhive",
        team_password="hunter2",
        invite_link="https://ctf.example.org/invite/abc",
    )
    base.update(overrides)
    return EventRequest(**base)


def _created(**overrides) -> CreatedEvent:
    base = dict(
        event_id=1,
        external_id=900,
        event_url="https://discord.com/events/1/900",
        slug="pascal-ctf-2026",
        role_id=901,
        channel_id=902,
    )
    base.update(overrides)
    return CreatedEvent(**base)


def _participants(count: int, status=ParticipantStatus.ACTIVE, prefix="player"):
    return [
        Participant(
            event_id=1,
            user_id=index,
            display_name=f"{prefix}-{index:04d}",
            status=status,
            joined_at=START,
        )
        for index in range(count)
    ]


def _event() -> CTFEvent:
    return CTFEvent(
        id=1,
        external_id=900,
        name="Pascal CTF 2026",
        slug="pascal-ctf-2026",
        role_id=901,
        channel_id=902,
        start_time=START,
        end_time=START + timedelta(days=2),
    )


def test_chunk_text_respects_limit_and_line_boundaries():
    lines = [f"{i}. someone-with-a-long-name" for i in range(1, 101)]
    text = "\n".join(lines)

    chunks = chunk_text(text, 1024)

    assert len(chunks) > 1
    assert all(len(chunk) <= 1024 for chunk in chunks)
    assert "\n".join(chunks) == text


def test_chunk_text_cuts_overlong_lines():
    chunks = chunk_text("x" * 2500, 1024)

    assert [len(chunk) for chunk in chunks] == [1024, 1024, 452]


def test_chunk_text_short_input():
    assert chunk_text("one\ntwo", 1024) == ["one\ntwo"]
    assert chunk_text("", 1024) == []


def test_event_description_never_contains_password(settings):
    description = build_event_description(_request(), settings)

    assert "hunter2" not in description
    assert "https://ctf.example.org" in description
    assert "hexhive" in description


def test_event_description_falls_back_to_default(settings):
    request = _request(url=None, team_name=None, invite_link=None, team_password=None)

    assert build_event_description(request, settings) == settings.default_description


def test_info_message_hides_password_in_spoiler(settings):
    message = build_info_message(_request(), settings)
    values = {item.name: item.value for item in message.fields}

    assert values["🔐 Team Password"] == "||hunter2||"
    assert values["📨 Invite Link"] == "https://ctf.example.org/invite/abc"
    assert "❌ Do not share flags" in message.description
    assert "WIB" in values["📅 Event Period"]


def test_announcement_links_event_forum_and_role(settings):
    message = build_announcement(_request(), _created(), settings)
    text = " ".join(item.value for item in message.fields)

    assert message.join_action.payload == "join_ctf:900:901"
    assert message.join_action.label == "Join CTF"
    assert "https://discord.com/events/1/900" in text
    assert "<#902>" in text
    assert "<@&901>" in text
    assert "hunter2" not in text


def test_tally_counts_and_empty_active_list(settings):
    left = _participants(1, ParticipantStatus.LEFT, prefix="quitter")

    message = build_tally_message(_event(), [], left, settings)

    assert message.description == "✅ Active: **0** | ❌ Left: **1**"
    assert message.fields[0].value == "No active participants."
    assert message.fields[1].name == "❌ Left Participants"
    assert "1. quitter-0000" in message.fields[1].value


def test_tally_splits_long_lists_into_continuation_fields(settings):
    active = _participants(200)

    message = build_tally_message(_event(), active, [], settings)

    assert len(message.fields) > 1
    assert message.fields[0].name == "✅ Active Participants"
    assert all(item.name == ZERO_WIDTH_SPACE for item in message.fields[1:])
    assert all(len(item.value) <= settings.tally_field_limit for item in message.fields)
    assert "200. player-0199" in message.fields[-1].value


def _embed_length(message) -> int:
    return len(message.title) + len(message.description) + sum(
        len(item.name) + len(item.value) for item in message.fields
    )


def test_large_tally_pages_fit_embed_limits(settings):
    active = _participants(400, prefix="participant_number")
    left = _participants(50, ParticipantStatus.LEFT, prefix="former_participant")
    message = build_tally_message(_event(), active, left, settings)
    assert _embed_length(message) > EMBED_CHAR_LIMIT

    pages = paginate_message(message)

    assert len(pages) > 1
    assert all(_embed_length(page) <= EMBED_CHAR_LIMIT for page in pages)
    assert all(0 < len(page.fields) <= EMBED_FIELD_LIMIT for page in pages)
    assert pages[0].title == message.title
    assert pages[0].description == message.description
    assert all(page.title == f"{message.title} (continued)" for page in pages[1:])
    assert [item for page in pages for item in page.fields] == message.fields


def test_paginate_starts_new_page_at_field_limit():
    message = OutboundMessage(title="Tally")
    for index in range(30):
        message.add_field(str(index), "x")

    pages = paginate_message(message)

    assert [len(page.fields) for page in pages] == [EMBED_FIELD_LIMIT, 5]


def test_small_message_stays_on_one_page(settings):
    message = build_tally_message(_event(), _participants(3), [], settings)

    assert paginate_message(message) == [message]


def test_confirmation_reports_announcement_error():
    text = build_confirmation(_created(announcement_error="Missing Access"))

    assert text.startswith("✅ CTF event created successfully!")
    assert "⚠️ Failed to post the announcement: Missing Access" in text
    assert "Could not find the target channel" not in text


def test_confirmation_mentions_missing_announcement_channel():
    text = build_confirmation(_created())

    assert text.startswith("✅ CTF event created successfully!")
    assert "Could not find the target channel" in text

    announced = build_confirmation(_created(announcement_channel_id=500, announced=True))
    assert "<#500>" in announced


def test_partial_state_summary():
    assert format_partial_state({}) is None
    assert format_partial_state({"role": 1, "forum": 2}) == (
        "Already created (not rolled back): role=1, forum=2"
    )
