"""tests for message extraction."""

from datetime import datetime, timezone

from bs4 import BeautifulSoup
from builders import attachments, call_record, field, media_map, message, share

from metarecord.core.archive import MediaMap
from metarecord.core.fields import Field, tokenize
from metarecord.core.messages import (
    extract_messages,
    parse_author,
    parse_size,
    photo_id_from,
    sort_messages,
    split_messages,
)
from metarecord.core.models import Message

ALICE = "alice (Instagram: 111)"
BOB = "bob (Instagram: 222)"
AT_10 = "2024-01-01 10:00:00 UTC"
AT_11 = "2024-01-01 11:00:00 UTC"
AT_12 = "2024-01-01 12:00:00 UTC"


def _tokens(markup: str) -> list:
    soup = BeautifulSoup(f"<div id='root'>{markup}</div>", "html.parser")
    return tokenize(soup.find(id="root"))


def _extract(markup: str, media=None, diagnostics=None) -> list[Message]:
    return extract_messages(
        "1234567890123",
        _tokens(markup),
        media if media is not None else MediaMap(),
        diagnostics if diagnostics is not None else [],
    )


def test_parse_author() -> None:
    """authors parse into username and platform id."""
    author = parse_author("alice.b (Instagram: 111)")

    assert author is not None
    assert author.username == "alice.b"
    assert author.platform_id == "111"
    assert parse_author("someone") is None


def test_photo_id_from_filename() -> None:
    """photo ids are runs of 15 or more digits in the file name."""
    path = "linked_media/photo_123456789012345_n.jpg"
    assert photo_id_from(path) == "123456789012345"
    assert photo_id_from("linked_media/photo_1234.jpg") is None
    assert photo_id_from(None) is None


def test_parse_size() -> None:
    """sizes ignore thousands separators and units."""
    assert parse_size("1,024 bytes") == 1024
    assert parse_size("unknown") is None


def test_split_messages_at_author_fields() -> None:
    """each Author field starts a message."""
    tokens = _tokens(message(ALICE, AT_10, "a") + message(BOB, "x", "b"))

    extents = split_messages(tokens)

    assert len(extents) == 2
    assert all(isinstance(e[0], Field) and e[0].label == "Author" for e in extents)


def test_split_messages_falls_back_to_sent() -> None:
    """spans without authors split at Sent fields."""
    tokens = _tokens(
        field("Sent", AT_10)
        + field("Body", "a")
        + field("Sent", AT_11)
        + field("Body", "b")
    )

    assert len(split_messages(tokens)) == 2
    assert split_messages(_tokens(field("Body", "orphan"))) == []


def test_text_message() -> None:
    """a plain message carries author, time and body."""
    messages = _extract(message(ALICE, AT_10, "hello"))

    assert len(messages) == 1
    msg = messages[0]
    assert msg.id == "1234567890123-0"
    assert msg.thread_id == "1234567890123"
    assert msg.sender == "alice"
    assert msg.sent == datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)
    assert msg.body == "hello"
    assert msg.type == "text"


def test_unparseable_sent_keeps_message() -> None:
    """an unparseable Sent value leaves sent as None."""
    messages = _extract(message(ALICE, "sometime last week", "hello"))

    assert len(messages) == 1
    assert messages[0].sent is None


def test_image_attachment_resolves_against_media() -> None:
    """media tags become attachments resolved through the media map."""
    media = media_map("linked_media/photo_123456789012345.jpg")

    messages = _extract(
        message(
            BOB,
            AT_10,
            extra=attachments("linked_media/photo_123456789012345.jpg"),
        ),
        media=media,
    )

    attachment = messages[0].attachments[0]
    assert messages[0].type == "image"
    assert attachment.filename == "photo_123456789012345.jpg"
    assert attachment.photo_id == "123456789012345"
    assert attachment.resolved_blob is not None
    assert attachment.size == attachment.resolved_blob.size


def test_unresolved_attachment_is_kept() -> None:
    """attachments missing from the archive keep their reference."""
    messages = _extract(
        message(BOB, AT_10, extra=attachments("linked_media/gone.jpg"))
    )

    attachment = messages[0].attachments[0]
    assert attachment.resolved_blob is None
    assert attachment.source_path == "linked_media/gone.jpg"
    assert attachment.type == "image/jpeg"


def test_textual_attachment_description() -> None:
    """Type/Size/Linked Media File groups describe attachments without tags."""
    block = field(
        "Attachments",
        children=field("Type", "video/mp4")
        + field("Size", "2048")
        + field("Linked Media File", "linked_media/clip.mp4"),
    )

    messages = _extract(message(BOB, AT_10, extra=block))

    attachment = messages[0].attachments[0]
    assert messages[0].type == "video"
    assert attachment.size == 2048
    assert attachment.source_path == "linked_media/clip.mp4"


def test_type_depends_on_evidence_not_body() -> None:
    """changing only the body never changes the message type."""
    bodies = ["hello", "Liked a message", "https://example.com/x", "Call Record"]
    image = attachments("linked_media/a.jpg")

    plain = [_extract(message(ALICE, AT_10, body))[0].type for body in bodies]
    with_image = [
        _extract(message(ALICE, AT_10, body, extra=image))[0].type for body in bodies
    ]

    assert plain == ["text"] * len(bodies)
    assert with_image == ["image"] * len(bodies)


def test_share_message() -> None:
    """shares with a url classify the message as share."""
    messages = _extract(
        message(
            ALICE,
            AT_10,
            extra=share(
                url="https://example.com/p/1",
                text="look at this",
                created="2023-12-31 09:00:00 UTC",
            ),
        )
    )

    shared = messages[0].share
    assert shared is not None
    assert shared.url == "https://example.com/p/1"
    assert shared.text == "look at this"
    assert shared.date_created == datetime(2023, 12, 31, 9, 0, tzinfo=timezone.utc)
    assert messages[0].type == "share"


def test_empty_share_is_dropped() -> None:
    """a Share label without values yields no share."""
    messages = _extract(message(ALICE, AT_10, "hi", extra=share()))

    assert messages[0].share is None


def test_call_records() -> None:
    """call records parse type, missed flag and duration."""
    messages = _extract(
        message(ALICE, AT_10, extra=call_record("video", "false", "42"))
        + message(BOB, AT_11, extra=call_record("audio", "true", ""))
    )

    video, missed = (m.call_record for m in messages)
    assert video is not None and missed is not None
    assert (video.call_type, video.missed, video.duration) == ("video", False, 42)
    assert (missed.call_type, missed.missed, missed.duration) == ("audio", True, 0)
    assert messages[0].type == "call"


def test_removed_by_sender() -> None:
    """a Removed by Sender marker flags the message."""
    messages = _extract(
        message(ALICE, AT_10, extra=field("Removed by Sender", "true"))
    )

    assert messages[0].removed_by_sender is True


def test_messages_are_sorted_chronologically() -> None:
    """messages come out in sent order with undated ones last."""
    messages = _extract(
        message(ALICE, AT_12, "late")
        + message(BOB, "no date", "undated")
        + message(BOB, "2024-01-01 09:00:00 UTC", "early")
    )

    assert [m.body for m in messages] == ["early", "late", "undated"]
    assert [m.id for m in messages] == [
        "1234567890123-2",
        "1234567890123-0",
        "1234567890123-1",
    ]


def test_sort_messages_keeps_source_order_for_undated() -> None:
    """undated messages keep their relative order."""
    first = Message(id="a", thread_id="t", author=None, sent=None, body="1")
    second = Message(id="b", thread_id="t", author=None, sent=None, body="2")

    assert sort_messages([first, second]) == [first, second]


def test_extract_messages_start_offsets_ids() -> None:
    """start offsets message ids for merged spans."""
    messages = extract_messages(
        "t",
        _tokens(message(ALICE, AT_10, "hi")),
        MediaMap(),
        [],
        start=5,
    )

    assert messages[0].id == "t-5"
