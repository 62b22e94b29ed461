"""End-to-end tests for the streaming chat parser."""

import asyncio
import io
import threading

import pytest

from chat_archive.exceptions import ExportFileError, FormatNotRecognizedError
from chat_archive.parser import orchestrator
from chat_archive.parser.orchestrator import (
    ChatParser,
    display_name_from_filename,
    parse_file,
    parse_file_async,
    parse_stream,
    parse_text,
)

ANDROID_EXPORT = (
    "20/06/2021, 14:30 - Alice: Hello\n"
    "20/06/2021, 14:31 - Bob: Hi\n"
)

IOS_EXPORT = (
    "[20/06/2021, 14:30:00] Alice: Morning\n"
    "[20/06/2021, 14:30:05] Bob: <attached: 00000001-PHOTO-2021-06-20-14-30-05.jpg>\n"
    "[20/06/2021, 14:31:00] Messages and calls are end-to-end encrypted.\n"
)


# ---------------------------------------------------------------------------
# Basic scenarios
# ---------------------------------------------------------------------------

def test_android_two_messages():
    result = parse_text(ANDROID_EXPORT)

    assert result.chat.source_platform == "android"
    assert [m.content for m in result.messages] == ["Hello", "Hi"]
    assert [m.sender_name for m in result.messages] == ["Alice", "Bob"]
    assert result.senders == {"Alice", "Bob"}
    assert result.warnings == []
    assert result.recognized


def test_timestamps_resolved_day_first():
    result = parse_text(ANDROID_EXPORT)
    first = result.messages[0].timestamp
    assert (first.year, first.month, first.day, first.hour, first.minute) == (2021, 6, 20, 14, 30)
    assert first.tzinfo is not None


def test_ios_export():
    result = parse_text(IOS_EXPORT)

    assert result.chat.source_platform == "ios"
    assert len(result.messages) == 3
    photo = result.messages[1]
    assert photo.type == "image"
    assert photo.attachment_name == "00000001-photo-2021-06-20-14-30-05.jpg"
    notice = result.messages[2]
    assert notice.sender_name is None
    assert notice.is_system
    assert notice.type == "system"
    assert result.senders == {"Alice", "Bob"}


def test_continuation_lines_join_with_newline():
    text = (
        "20/06/2021, 14:30 - Alice: Line one\n"
        "Line two\n"
        "20/06/2021, 14:31 - Bob: Next\n"
    )
    result = parse_text(text)

    assert len(result.messages) == 2
    assert result.messages[0].content == "Line one\nLine two"
    assert result.messages[0].raw_text == "20/06/2021, 14:30 - Alice: Line one\nLine two"


def test_blank_lines_inside_message_are_kept():
    text = (
        "20/06/2021, 14:30 - Alice: Para one\n"
        "\n"
        "Para two\n"
    )
    result = parse_text(text)
    assert result.messages[0].content == "Para one\n\nPara two"


def test_trailing_blank_lines_are_trimmed():
    text = "20/06/2021, 14:30 - Alice: Hello\n\n\n20/06/2021, 14:31 - Bob: Hi"
    result = parse_text(text)
    assert result.messages[0].content == "Hello"


def test_message_content_is_sanitized():
    text = "20/06/2021, 14:30 - Alice: \u200eHello\u200f  \n"
    result = parse_text(text)
    assert result.messages[0].content == "Hello"


def test_sender_name_is_sanitized():
    text = "20/06/2021, 14:30 - \u202aAlice\u202c: Hello\n"
    result = parse_text(text)
    assert result.messages[0].sender_name == "Alice"
    assert result.senders == {"Alice"}


def test_leading_bidi_mark_before_timestamp():
    text = "\u200e[20/06/2021, 14:30:00] Alice: Hello\n"
    result = parse_text(text)
    assert result.chat.source_platform == "ios"
    assert len(result.messages) == 1


def test_android_system_line_without_sender():
    text = (
        "20/06/2021, 14:29 - Alice created group \"Trip\"\n"
        "20/06/2021, 14:30 - Alice: Hello\n"
    )
    result = parse_text(text)
    system = result.messages[0]
    assert system.sender_name is None
    assert system.type == "system"
    assert system.content == 'Alice created group "Trip"'
    assert result.senders == {"Alice"}


def test_explicit_system_sender_is_not_a_participant():
    text = "20/06/2021, 14:30 - System: Security code changed\n"
    result = parse_text(text)
    assert result.messages[0].sender_name is None
    assert result.senders == set()


def test_media_omitted_message():
    text = "20/06/2021, 14:30 - Alice: <Media omitted>\n"
    message = parse_text(text).messages[0]
    assert message.type == "image"
    assert message.is_media_omitted


def test_twelve_hour_clock():
    text = "6/20/21, 2:30 pm - Alice: Hello\n"
    message = parse_text(text).messages[0]
    assert (message.timestamp.month, message.timestamp.day) == (6, 20)
    assert message.timestamp.hour == 14


def test_month_first_policy():
    text = "03/04/2021, 10:00 - Alice: Hello\n"
    day_first = parse_text(text).messages[0].timestamp
    month_first = parse_text(text, date_order="month_first").messages[0].timestamp
    assert (day_first.month, day_first.day) == (4, 3)
    assert (month_first.month, month_first.day) == (3, 4)


def test_messages_keep_file_order():
    text = (
        "20/06/2021, 14:31 - Alice: second by time\n"
        "20/06/2021, 14:30 - Bob: first by time\n"
    )
    result = parse_text(text)
    assert [m.line_number for m in result.messages] == [1, 2]
    assert result.messages[0].content == "second by time"


# ---------------------------------------------------------------------------
# Warnings and detection
# ---------------------------------------------------------------------------

def test_orphan_line_before_first_message():
    text = "hello\n20/06/2021, 14:30 - Alice: Hi\n"
    result = parse_text(text)

    assert len(result.messages) == 1
    assert len(result.warnings) == 1
    warning = result.warnings[0]
    assert warning.kind == "orphaned_line"
    assert warning.line_number == 1
    assert result.messages[0].content == "Hi"


def test_lone_orphan_line_gives_one_warning_and_no_messages():
    result = parse_text("hello\n")
    assert result.messages == []
    assert len(result.warnings) == 1
    assert not result.recognized


def test_blank_lines_before_first_message_are_ignored():
    result = parse_text("\n\n20/06/2021, 14:30 - Alice: Hi\n")
    assert result.warnings == []
    assert len(result.messages) == 1


def test_invalid_timestamp_warns_and_keeps_message():
    text = "31/02/2021, 10:00 - Alice: Impossible date\n"
    result = parse_text(text)

    assert len(result.messages) == 1
    assert result.messages[0].content == "Impossible date"
    assert [w.kind for w in result.warnings] == ["invalid_timestamp"]


def test_detection_gives_up_after_limit():
    lines = [f"not a chat line {i}" for i in range(60)]
    lines.append("20/06/2021, 14:30 - Alice: too late")
    result = parse_text("\n".join(lines))

    assert result.messages == []
    assert result.chat.source_platform == "unknown"
    assert len(result.warnings) == 1
    assert result.warnings[0].kind == "unrecognized_format"
    assert "line 50" in result.warnings[0].message
    with pytest.raises(FormatNotRecognizedError):
        result.raise_for_status()


def test_detection_within_limit_succeeds():
    lines = [f"preamble {i}" for i in range(49)]
    lines.append("20/06/2021, 14:30 - Alice: just in time")
    result = parse_text("\n".join(lines))

    assert result.recognized
    assert len(result.messages) == 1
    assert len(result.warnings) == 49


def test_unrecognized_at_end_of_input():
    result = parse_text("just some notes\nnothing else\n")
    assert not result.recognized
    assert result.warnings[-1].message == "format not recognized by end of input (line 2)"


def test_empty_input():
    result = parse_text("")
    assert result.messages == []
    assert not result.recognized


def test_feed_after_finish_raises():
    parser = ChatParser("Chat")
    parser.feed("20/06/2021, 14:30 - Alice: Hi")
    parser.finish()
    with pytest.raises(RuntimeError):
        parser.feed("20/06/2021, 14:31 - Bob: Hi")


def test_finish_is_idempotent():
    parser = ChatParser("Chat")
    parser.feed("20/06/2021, 14:30 - Alice: Hi")
    first = parser.finish()
    second = parser.finish()
    assert len(first.messages) == len(second.messages) == 1
    assert first.warnings == second.warnings


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------

def test_display_name_from_filename():
    assert display_name_from_filename("WhatsApp Chat with Alice.txt") == "Alice"
    assert display_name_from_filename("WhatsApp Chat - Family.zip") == "Family"
    assert display_name_from_filename("notes.txt") == "notes"


def test_parse_file(tmp_path):
    path = tmp_path / "WhatsApp Chat with Alice.txt"
    path.write_text(ANDROID_EXPORT, encoding="utf-8")
    progress = []

    result = parse_file(path, on_progress=progress.append)

    assert result.chat.name == "Alice"
    assert result.chat.file_path == str(path)
    assert len(result.messages) == 2
    assert progress[-1] == 1.0


def test_parse_file_small_chunks_matches_whole_text(tmp_path):
    text = (
        "\ufeff20/06/2021, 14:30 - Zoë: Grüße\r\n"
        "zweite Zeile\r\n"
        "20/06/2021, 14:31 - Bob: 👍\r\n"
    )
    path = tmp_path / "chat.txt"
    path.write_bytes(text.encode("utf-8"))

    chunked = parse_file(path, chunk_size=3)
    whole = parse_text(text.lstrip("\ufeff"))

    assert [m.content for m in chunked.messages] == ["Grüße\nzweite Zeile", "👍"]
    assert [m.content for m in chunked.messages] == [m.content for m in whole.messages]
    assert chunked.senders == {"Zoë", "Bob"}


def test_parse_file_missing(tmp_path):
    with pytest.raises(ExportFileError):
        parse_file(tmp_path / "nope.txt")


def test_parse_file_async(tmp_path):
    path = tmp_path / "chat.txt"
    path.write_text(IOS_EXPORT, encoding="utf-8")

    result = asyncio.run(parse_file_async(path, chat_name="Friends", chunk_size=16))

    assert result.chat.name == "Friends"
    assert len(result.messages) == 3


def test_parse_stream():
    stream = io.BytesIO(ANDROID_EXPORT.encode("utf-8"))
    result = parse_stream(stream, chat_name="Stream", chunk_size=7)
    assert result.chat.name == "Stream"
    assert [m.sender_name for m in result.messages] == ["Alice", "Bob"]


def test_custom_detection_limit():
    result = parse_text("a\nb\nc\n20/06/2021, 14:30 - Alice: Hi\n", detection_limit=2)
    assert not result.recognized
    assert result.warnings[0].message == "format not recognized by line 2"


def test_summary_logged(caplog):
    with caplog.at_level("INFO", logger=orchestrator.__name__):
        parse_text(ANDROID_EXPORT, chat_name="Logged")
    assert "Logged" in caplog.text


def test_exact_two_line_stream_without_trailing_newline():
    result = parse_text("20/06/2021, 14:30 - Alice: Hi\n20/06/2021, 14:31 - Bob: Hey there")

    assert result.chat.source_platform == "android"
    assert [(m.sender_name, m.content) for m in result.messages] == [
        ("Alice", "Hi"),
        ("Bob", "Hey there"),
    ]
    assert result.senders == {"Alice", "Bob"}
    assert result.warnings == []


def test_text_with_leading_bom_keeps_first_message():
    result = parse_text("\ufeff20/06/2021, 14:30 - Alice: Hi\n20/06/2021, 14:31 - Bob: Hey there")

    assert [m.sender_name for m in result.messages] == ["Alice", "Bob"]
    assert result.warnings == []


def test_three_digit_year_is_an_invalid_timestamp():
    result = parse_text("20/06/202, 14:30 - Alice: Hi\n")

    assert len(result.messages) == 1
    assert result.messages[0].timestamp.year != 202
    assert [w.kind for w in result.warnings] == ["invalid_timestamp"]


def test_parse_file_async_reads_off_the_event_loop_thread(tmp_path):
    path = tmp_path / "chat.txt"
    path.write_text(ANDROID_EXPORT, encoding="utf-8")
    reader_threads = []

    def on_progress(fraction):
        reader_threads.append(threading.get_ident())

    result = asyncio.run(parse_file_async(path, chunk_size=8, on_progress=on_progress))

    assert len(result.messages) == 2
    assert reader_threads
    assert threading.get_ident() not in reader_threads


def test_parse_file_async_missing(tmp_path):
    with pytest.raises(ExportFileError):
        asyncio.run(parse_file_async(tmp_path / "missing.txt"))
