"""URL allow-list and HTML/CSS formatting helpers."""
from __future__ import annotations

import pytest

from newsletter_engine.utils import escape_html, fmt_px, is_valid_url


class TestIsValidUrl:
    @pytest.mark.parametrize(
        "url,expected",
        [
            ("javascript:alert(1)", False),
            ("ftp://x", False),
            ("https://example.com", True),
            ("mailto:a@b.com", True),
            ("http://example.com/path?q=1", True),
            ("HTTPS://EXAMPLE.COM", True),
            ("https://", False),
            ("mailto:", False),
            ("/relative/path", False),
            ("", False),
            ("   ", False),
            (None, False),
        ],
    )
    def test_allow_list(self, url, expected):
        assert is_valid_url(url) is expected


class TestFormatting:
    def test_escape_html(self):
        assert escape_html('<a href="x">&</a>') == "&lt;a href=&quot;x&quot;&gt;&amp;&lt;/a&gt;"

    @pytest.mark.parametrize("value,expected", [(10.0, "10"), (12.346, "12.35"), (0.5, "0.5"), (-0.001, "0")])
    def test_fmt_px(self, value, expected):
        assert fmt_px(value) == expected
