"""Tests for the in-memory registry, click tracker and store facade."""

import random
from datetime import timedelta

import pytest

from registry import (
    ClickTracker,
    InvalidShortcodeFormat,
    ShortcodeAlreadyExists,
    ShortcodeError,
    ShortcodeGenerator,
    ShortUrlStore,
    UrlRegistry,
)


class ScriptedRandom:
    """Stands in for random.Random, returning a fixed sequence of picks."""

    def __init__(self, codes):
        self._chars = iter("".join(codes))

    def choice(self, seq):
        return next(self._chars)


class TestShortcodeGenerator:
    def test_default_length_and_alphabet(self):
        gen = ShortcodeGenerator(random.Random(1))
        for _ in range(50):
            code = gen.generate()
            assert len(code) == 6
            assert code.isalnum() and code.isascii()

    def test_custom_length(self):
        assert len(ShortcodeGenerator().generate(11)) == 11

    def test_retries_until_free(self):
        gen = ShortcodeGenerator(ScriptedRandom(["aaaaaa", "aaaaaa", "bbbbbb"]))
        taken = {"aaaaaa"}
        assert gen.generate_unique(lambda c: c in taken) == "bbbbbb"

    def test_falls_back_to_longer_codes_and_stays_unique(self):
        codes = ["aaaaaa"] * 100 + ["cccccccc", "dddddddd"]
        gen = ShortcodeGenerator(ScriptedRandom(codes))
        taken = {"aaaaaa", "cccccccc"}
        assert gen.generate_unique(lambda c: c in taken) == "dddddddd"


class TestValidShortcode:
    @pytest.mark.parametrize("code", ["abc", "validCode123", "A1b2C3", "x" * 20])
    def test_accepts(self, code):
        assert UrlRegistry.is_valid_shortcode(code)

    @pytest.mark.parametrize("code", ["", "ab", "x" * 21, "has-dash", "under_score", "sp ace", "abc\n", None, 123])
    def test_rejects(self, code):
        assert not UrlRegistry.is_valid_shortcode(code)


class TestCreateAndResolve:
    def test_create_then_resolve(self, store, clock):
        record = store.create_short_url("https://example.com", 30)
        assert len(record.shortcode) == 6
        assert record.created_at == clock.now
        assert record.expires_at == record.created_at + timedelta(minutes=30)
        assert record.validity_minutes == 30
        assert record.is_active is True
        assert store.get_url_data(record.shortcode) == record

    def test_default_validity_is_thirty_minutes(self, store):
        record = store.create_short_url("https://example.com")
        assert record.expires_at - record.created_at == timedelta(minutes=30)

    @pytest.mark.parametrize("validity", [1, 60, 1440, 525600])
    def test_expiry_matches_validity(self, store, validity):
        record = store.create_short_url("https://example.com/x", validity)
        assert store.get_url_data(record.shortcode).original_url == "https://example.com/x"
        assert record.expires_at == record.created_at + timedelta(minutes=validity)

    def test_generated_codes_are_unique(self, store):
        codes = {store.create_short_url(f"https://example.com/{i}").shortcode for i in range(500)}
        assert len(codes) == 500

    def test_ids_are_unique(self, store):
        a = store.create_short_url("https://example.com/a")
        b = store.create_short_url("https://example.com/b")
        assert a.id != b.id

    def test_custom_shortcode_too_short(self, store):
        with pytest.raises(InvalidShortcodeFormat):
            store.create_short_url("https://example.com", 30, "ab")

    def test_custom_shortcode_duplicate(self, store):
        record = store.create_short_url("https://example.com", 30, "validCode123")
        assert record.shortcode == "validCode123"
        with pytest.raises(ShortcodeAlreadyExists) as exc:
            store.create_short_url("https://other.example.com", 30, "validCode123")
        assert "already exists" in str(exc.value)
        assert store.get_url_data("validCode123").original_url == "https://example.com"

    def test_errors_share_a_base(self):
        assert issubclass(InvalidShortcodeFormat, ShortcodeError)
        assert issubclass(ShortcodeAlreadyExists, ShortcodeError)

    def test_resolve_unknown(self, store):
        assert store.get_url_data("nothere") is None

    def test_resolve_at_exact_expiry_is_live(self, store, clock):
        record = store.create_short_url("https://example.com", 5)
        clock.advance(minutes=5)
        assert store.get_url_data(record.shortcode) == record

    def test_expired_is_hidden_but_still_listed(self, store, clock):
        record = store.create_short_url("https://example.com", 1)
        store.record_click(record.shortcode, ip="1.2.3.4")
        clock.advance(minutes=1, seconds=1)

        assert store.get_url_data(record.shortcode) is None
        stats = store.get_statistics(record.shortcode)
        assert stats is not None and stats.total_clicks == 1
        assert [s.record.shortcode for s in store.get_all_urls()] == [record.shortcode]

        assert store.get_statistics(record.shortcode, include_expired=False) is None
        assert store.get_all_urls(include_expired=False) == []

    def test_duplicate_check_applies_to_expired_records(self, store, clock):
        store.create_short_url("https://example.com", 1, "keepme")
        clock.advance(minutes=2)
        with pytest.raises(ShortcodeAlreadyExists):
            store.create_short_url("https://example.com", 1, "keepme")
        store.cleanup_expired_urls()
        assert store.create_short_url("https://example.com", 1, "keepme").shortcode == "keepme"


class TestCleanup:
    def test_removes_only_expired(self, store, clock):
        short = store.create_short_url("https://example.com/short", 1)
        long = store.create_short_url("https://example.com/long", 60)
        store.record_click(short.shortcode)
        clock.advance(minutes=10)

        assert store.cleanup_expired_urls() == 1
        assert store.get_statistics(short.shortcode) is None
        assert [s.record.shortcode for s in store.get_all_urls()] == [long.shortcode]
        assert short.shortcode not in store.tracker.clicks

    def test_second_pass_returns_zero(self, store, clock):
        store.create_short_url("https://example.com", 1)
        clock.advance(minutes=2)
        assert store.cleanup_expired_urls() == 1
        assert store.cleanup_expired_urls() == 0

    def test_nothing_expired(self, store):
        store.create_short_url("https://example.com")
        assert store.cleanup_expired_urls() == 0
        assert len(store) == 1


class TestClicks:
    def test_accumulate_in_call_order(self, store, clock):
        record = store.create_short_url("https://example.com")
        for ref in ("https://a.example", "https://b.example", "https://c.example"):
            store.record_click(record.shortcode, ip="8.8.8.8", user_agent="ua", referrer=ref, location="X")
            clock.advance(seconds=1)

        stats = store.get_statistics(record.shortcode)
        assert stats.total_clicks == 3
        assert [c.referrer for c in stats.clicks] == [
            "https://a.example", "https://b.example", "https://c.example",
        ]
        assert stats.clicks[0].timestamp < stats.clicks[1].timestamp < stats.clicks[2].timestamp

    def test_defaults_for_missing_metadata(self, store):
        record = store.create_short_url("https://example.com")
        click = store.record_click(record.shortcode, ip="1.2.3.4", user_agent="ua", referrer=None, location=None)
        assert click.referrer == "Direct"
        assert click.location == "Unknown"

    def test_statistics_do_not_expose_ip(self, store):
        record = store.create_short_url("https://example.com")
        store.record_click(record.shortcode, ip="1.2.3.4", user_agent="ua")
        click = store.get_statistics(record.shortcode).clicks[0]
        assert not hasattr(click, "ip")
        assert click.user_agent == "ua"

    def test_recording_for_unknown_code_creates_list(self, clock):
        tracker = ClickTracker({}, {}, clock)
        tracker.record("ghost", ip="1.1.1.1")
        assert len(tracker.clicks["ghost"]) == 1
        assert tracker.statistics_for("ghost") is None

    def test_list_all_counts(self, store):
        a = store.create_short_url("https://example.com/a")
        b = store.create_short_url("https://example.com/b")
        store.record_click(a.shortcode)
        store.record_click(a.shortcode)
        counts = {s.record.shortcode: s.total_clicks for s in store.get_all_urls()}
        assert counts == {a.shortcode: 2, b.shortcode: 0}


def test_end_to_end_example(store, clock):
    record = store.create_short_url("https://example.com", 30)
    assert len(record.shortcode) == 6
    assert record.expires_at == clock.now + timedelta(minutes=30)
    assert store.get_url_data(record.shortcode) == record

    click = store.record_click(record.shortcode, ip="1.2.3.4", user_agent="ua", referrer=None, location="X")
    assert click.referrer == "Direct"
    assert click.location == "X"
    assert store.get_statistics(record.shortcode).total_clicks == 1


def test_stores_are_isolated(clock):
    first, second = ShortUrlStore(clock=clock), ShortUrlStore(clock=clock)
    first.create_short_url("https://example.com", 30, "onlyhere")
    assert second.get_url_data("onlyhere") is None


def test_concurrent_creates_and_cleanups(clock):
    from concurrent.futures import ThreadPoolExecutor

    store = ShortUrlStore(clock=clock)
    for _ in range(20):
        store.create_short_url("https://example.com/old", 1)
    clock.advance(minutes=5)

    def work(i):
        if i % 10 == 0:
            return store.cleanup_expired_urls()
        return store.create_short_url(f"https://example.com/{i}", 30).shortcode

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(work, range(400)))

    removed = sum(r for r in results if isinstance(r, int))
    codes = [r for r in results if isinstance(r, str)]
    assert removed == 20
    assert len(codes) == 360
    assert len(set(codes)) == len(codes)
    assert len(store) == len(codes)
    assert len(store.get_all_urls()) == len(codes)
