"""Tests for political_news_digest.urls module."""

from political_news_digest.types import Article
from political_news_digest.urls import (
    canonicalize_url,
    domain_of,
    is_absolute_url,
    item_signature,
    topic_signature,
)


def _article(link: str) -> Article:
    return Article(title="t", link=link, source="x")


class TestCanonicalizeUrl:
    def test_strips_fragment_and_tracking_params(self) -> None:
        url = "https://www.digi24.ro/stiri/a?id=5&utm_source=fb&x=1#top"
        assert canonicalize_url(url) == "https://www.digi24.ro/stiri/a?id=5&x=1"

    def test_tracking_prefix_is_case_insensitive(self) -> None:
        url = "https://hotnews.ro/a?UTM_Medium=x&FBCLID=1&gclid=2&page=3"
        assert canonicalize_url(url) == "https://hotnews.ro/a?page=3"

    def test_removes_question_mark_when_only_tracking(self) -> None:
        assert canonicalize_url("https://g4media.ro/a?utm_campaign=z") == "https://g4media.ro/a"

    def test_keeps_param_order_and_encoding(self) -> None:
        url = "https://news.ro/cauta?q=gr%C4%83dini&b=2&a=1"
        assert canonicalize_url(url) == url

    def test_idempotent(self) -> None:
        urls = [
            "https://www.digi24.ro/stiri/a?id=5&utm_source=fb#x",
            "https://news.ro/?a=1&&b=2",
            "https://news.ro/a?mc_cid=1&mc_eid=2",
            "not a url",
            "",
            "/relative/path",
        ]
        for u in urls:
            once = canonicalize_url(u)
            assert canonicalize_url(once) == once

    def test_non_absolute_input_unchanged(self) -> None:
        assert canonicalize_url("not a url") == "not a url"
        assert canonicalize_url("/relative/path?utm_source=x") == "/relative/path?utm_source=x"
        assert canonicalize_url("") == ""


class TestDomainHelpers:
    def test_is_absolute_url(self) -> None:
        assert is_absolute_url("https://digi24.ro/a")
        assert not is_absolute_url("ftp://digi24.ro/a")
        assert not is_absolute_url("digi24.ro/a")

    def test_domain_of_strips_www(self) -> None:
        assert domain_of("https://WWW.Digi24.ro/stiri") == "digi24.ro"
        assert domain_of("garbage") == ""


class TestSignatures:
    def test_item_signature_ignores_query_and_fragment(self) -> None:
        a = _article("https://Example.ro/a/b?x=1#frag")
        assert item_signature(a) == "https://example.ro/a/b"

    def test_item_signature_root_path(self) -> None:
        assert item_signature(_article("https://example.ro")) == "https://example.ro/"

    def test_topic_signature_is_order_independent(self) -> None:
        items = [_article(f"https://example.ro/{i}") for i in range(4)]
        assert topic_signature(items) == topic_signature(list(reversed(items)))

    def test_topic_signature_is_16_hex_chars(self) -> None:
        sig = topic_signature([_article("https://example.ro/1")])
        assert len(sig) == 16
        assert all(c in "0123456789abcdef" for c in sig)

    def test_topic_signature_ignores_tracking_noise(self) -> None:
        a = [_article("https://example.ro/1?utm_source=x")]
        b = [_article("https://example.ro/1")]
        assert topic_signature(a) == topic_signature(b)
