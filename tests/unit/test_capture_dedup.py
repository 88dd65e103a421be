"""Unit tests for the capture deduplicator."""

import threading
from datetime import datetime

import pytest

from wa_summarizer.capture.dedup import Deduplicator, build_message, compute_identity_key
from wa_summarizer.capture.models import RawObservation, SourceKind

FIXED_NOW = datetime(2026, 1, 15, 10, 30, 0)


def _obs(
    body="hello",
    title="Alice",
    subtext="",
    kind=SourceKind.NOTIFICATION,
):
    """Create a RawObservation for testing."""
    return RawObservation(
        source_kind=kind,
        title=title,
        body=body,
        subtext=subtext,
        package_id="com.whatsapp",
    )


def _make_dedup(**kwargs):
    return Deduplicator(clock=lambda: FIXED_NOW, **kwargs)


class TestIdentityKey:
    """Tests for compute_identity_key."""

    def test_key_is_stable(self):
        assert compute_identity_key(_obs()) == compute_identity_key(_obs())

    def test_tree_key_uses_content_description(self):
        """Tree observations are keyed on (content description, text)."""
        a = _obs(kind=SourceKind.ACCESSIBILITY_TREE, title="You", subtext="desc-1")
        b = _obs(kind=SourceKind.ACCESSIBILITY_TREE, title="Alice", subtext="desc-1")
        c = _obs(kind=SourceKind.ACCESSIBILITY_TREE, title="You", subtext="desc-2")
        assert compute_identity_key(a) == compute_identity_key(b)
        assert compute_identity_key(a) != compute_identity_key(c)

    def test_notification_key_uses_title(self):
        a = _obs(title="Alice", subtext="x")
        b = _obs(title="Alice", subtext="y")
        c = _obs(title="Bob", subtext="x")
        assert compute_identity_key(a) == compute_identity_key(b)
        assert compute_identity_key(a) != compute_identity_key(c)

    def test_text_is_part_of_key(self):
        assert compute_identity_key(_obs(body="a")) != compute_identity_key(_obs(body="b"))

    def test_channels_are_keyed_separately(self):
        """The same text seen as a notification and as a tree node gives two keys."""
        notification = _obs(title="Alice", subtext="", body="hi")
        tree = _obs(
            kind=SourceKind.ACCESSIBILITY_TREE, title="Alice", subtext="bubble-1", body="hi"
        )
        assert compute_identity_key(notification) != compute_identity_key(tree)


class TestBuildMessage:
    """Tests for build_message."""

    def test_notification_uses_title_as_sender_and_chat(self):
        message = build_message(_obs(title="Family", body="dinner?"), FIXED_NOW)
        assert message.sender == "Family"
        assert message.chat_name == "Family"
        assert message.text == "dinner?"
        assert message.timestamp == FIXED_NOW

    def test_tree_uses_fixed_chat_name(self):
        message = build_message(
            _obs(kind=SourceKind.ACCESSIBILITY_TREE, title="You", body="ok"), FIXED_NOW
        )
        assert message.sender == "You"
        assert message.chat_name == "WhatsApp Chat"


class TestDeduplicator:
    """Tests for Deduplicator.accept."""

    def test_second_sighting_is_suppressed(self):
        """Feeding the same observation twice yields a Message then None."""
        dedup = _make_dedup()
        first = dedup.accept(_obs())
        second = dedup.accept(_obs())

        assert first is not None
        assert first.text == "hello"
        assert second is None

    def test_distinct_observations_pass(self):
        dedup = _make_dedup()
        assert dedup.accept(_obs(body="one")) is not None
        assert dedup.accept(_obs(body="two")) is not None
        assert dedup.seen_count == 2

    def test_unbounded_by_default(self):
        dedup = _make_dedup()
        for i in range(1000):
            dedup.accept(_obs(body=str(i)))
        assert dedup.seen_count == 1000
        assert dedup.accept(_obs(body="0")) is None

    def test_bounded_set_evicts_least_recent(self):
        dedup = _make_dedup(max_keys=2)
        dedup.accept(_obs(body="a"))
        dedup.accept(_obs(body="b"))
        dedup.accept(_obs(body="c"))

        assert dedup.seen_count == 2
        # "a" was evicted so it is accepted again
        assert dedup.accept(_obs(body="a")) is not None

    def test_repeat_refreshes_recency(self):
        dedup = _make_dedup(max_keys=2)
        dedup.accept(_obs(body="a"))
        dedup.accept(_obs(body="b"))
        dedup.accept(_obs(body="a"))  # refresh "a"
        dedup.accept(_obs(body="c"))  # evicts "b"

        assert dedup.accept(_obs(body="a")) is None
        assert dedup.accept(_obs(body="b")) is not None

    def test_invalid_bound_rejected(self):
        with pytest.raises(ValueError):
            Deduplicator(max_keys=0)

    def test_reset_forgets_keys(self):
        dedup = _make_dedup()
        dedup.accept(_obs())
        dedup.reset()
        assert dedup.seen_count == 0
        assert dedup.accept(_obs()) is not None

    def test_concurrent_sources_accept_each_key_once(self):
        """Two sources racing on the same observations produce one message each."""
        dedup = _make_dedup()
        accepted: list = []
        lock = threading.Lock()
        barrier = threading.Barrier(2)

        def worker():
            barrier.wait()
            for i in range(500):
                message = dedup.accept(_obs(body=str(i)))
                if message is not None:
                    with lock:
                        accepted.append(message.text)

        threads = [threading.Thread(target=worker) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(accepted, key=int) == [str(i) for i in range(500)]
