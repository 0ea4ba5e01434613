"""Region segmenter: text grouping, gap classification, link embedding."""
from __future__ import annotations

from PIL import Image, ImageDraw

from newsletter_engine.errors import RegionExtractionError
from newsletter_engine.segmenter import (
    PlacedText,
    RegionSegmenter,
    TextRegion,
    group_regions,
    place_text_items,
    region_html,
)
from newsletter_engine.types import LinkInfo, RasterPage, TextItem, Viewport

PAGE_W, PAGE_H = 400, 300


def _text(text: str, x: float, baseline_px: float, size: float = 12, width: float = 60) -> TextItem:
    """TextItem in PDF space for a scale-1 viewport of a 400x300 page."""
    return TextItem(text=text, x=x, y=PAGE_H - baseline_px, width=width, font_size=size)


def _page(draw_box: bool = True, links=(), fill=(0, 0, 0)) -> RasterPage:
    img = Image.new("RGB", (PAGE_W, PAGE_H), (255, 255, 255))
    if draw_box:
        ImageDraw.Draw(img).rectangle([50, 100, 350, 150], fill=fill)
    return RasterPage(
        bitmap=img,
        width=PAGE_W,
        height=PAGE_H,
        links=tuple(links),
        viewport=Viewport.for_page(PAGE_W, PAGE_H, 1.0),
    )


def _placed(top: float, bottom: float, x: float = 0, text: str = "t") -> PlacedText:
    return PlacedText(html=text, raw=text, x=x, top=top, bottom=bottom, width=10)


class TestSegment:
    def test_text_image_text_sequence(self):
        page = _page()
        items = [_text("Title", 50, 40), _text("Footer", 50, 220)]

        blocks = RegionSegmenter().segment(page, items)

        assert [b.type for b in blocks] == ["text", "image", "text"]
        title, box, footer = blocks
        assert "Title" in title.content
        assert title.y == 28 and title.height == 12
        assert box.y == 40
        assert box.height == 168
        assert box.content.size == (PAGE_W, 168)
        assert "Footer" in footer.content

    def test_blank_gaps_are_dropped(self):
        blocks = RegionSegmenter().segment(_page(draw_box=False), [_text("A", 10, 40), _text("B", 10, 220)])
        assert [b.type for b in blocks] == ["text", "text"]

    def test_page_without_text_becomes_one_image(self):
        blocks = RegionSegmenter().segment(_page(), [])
        assert len(blocks) == 1
        assert blocks[0].type == "image"
        assert (blocks[0].y, blocks[0].height) == (0, PAGE_H)

    def test_uses_page_text_items_by_default(self):
        page = _page(draw_box=False)
        page = RasterPage(
            bitmap=page.bitmap, width=page.width, height=page.height,
            viewport=page.viewport, text_items=(_text("Hi", 10, 40),),
        )
        blocks = RegionSegmenter().segment(page)
        assert [b.type for b in blocks] == ["text"]

    def test_text_is_escaped(self):
        blocks = RegionSegmenter().segment(_page(draw_box=False), [_text("A < B & C", 10, 40)])
        assert "A &lt; B &amp; C" in blocks[0].content

    def test_overlapping_link_becomes_anchor(self):
        link = LinkInfo("https://example.com/more", x=40, y=200, width=100, height=30)
        blocks = RegionSegmenter().segment(_page(draw_box=False, links=[link]), [_text("More", 50, 220)])
        assert '<a href="https://example.com/more"' in blocks[0].content
        assert ">More</a>" in blocks[0].content

    def test_disallowed_link_is_not_embedded(self):
        link = LinkInfo("javascript:alert(1)", x=40, y=200, width=100, height=30)
        blocks = RegionSegmenter().segment(_page(draw_box=False, links=[link]), [_text("More", 50, 220)])
        assert "javascript:" not in blocks[0].content
        assert "<a " not in blocks[0].content

    def test_link_outside_text_center_ignored(self):
        link = LinkInfo("https://example.com", x=300, y=200, width=50, height=30)
        blocks = RegionSegmenter().segment(_page(draw_box=False, links=[link]), [_text("More", 50, 220)])
        assert "<a " not in blocks[0].content


class TestGapClassification:
    def test_near_white_band_is_blank_at_default_threshold(self):
        page = _page(fill=(252, 252, 252))
        blocks = RegionSegmenter().segment(page, [_text("A", 10, 40), _text("B", 10, 220)])
        assert [b.type for b in blocks] == ["text", "text"]

    def test_threshold_is_configurable(self):
        page = _page(fill=(252, 252, 252))
        seg = RegionSegmenter(segment_cfg={"white_threshold": 255})
        blocks = seg.segment(page, [_text("A", 10, 40), _text("B", 10, 220)])
        assert [b.type for b in blocks] == ["text", "image", "text"]

    def test_transparent_pixels_do_not_count(self):
        band = Image.new("RGBA", (100, 20), (0, 0, 0, 0))
        assert RegionSegmenter().is_blank(band, 0, 20)

    def test_small_gap_is_ignored(self):
        page = _page(draw_box=False)
        ImageDraw.Draw(page.bitmap).rectangle([0, 41, 399, 44], fill=(0, 0, 0))
        seg = RegionSegmenter(segment_cfg={"region_gap_px": 0})
        # Regions end at 40 and start at 45: a 5px band is not above the minimum.
        blocks = seg.segment(page, [_text("A", 10, 40), _text("B", 10, 57)])
        assert [b.type for b in blocks] == ["text", "text"]

    def test_gap_just_above_minimum_is_classified(self):
        page = _page(draw_box=False)
        ImageDraw.Draw(page.bitmap).rectangle([0, 41, 399, 45], fill=(0, 0, 0))
        seg = RegionSegmenter(segment_cfg={"region_gap_px": 0})
        blocks = seg.segment(page, [_text("A", 10, 40), _text("B", 10, 58)])
        assert [b.type for b in blocks] == ["text", "image", "text"]
        assert (blocks[1].y, blocks[1].height) == (40, 6)

    def test_extraction_failure_drops_only_that_gap(self):
        class Exploding(RegionSegmenter):
            def is_blank(self, bitmap, y, height):
                raise RuntimeError("boom")

        seen = []
        seg = Exploding(on_error=seen.append)
        blocks = seg.segment(_page(), [_text("A", 10, 40), _text("B", 10, 220)])

        assert [b.type for b in blocks] == ["text", "text"]
        assert seen and all(isinstance(e, RegionExtractionError) for e in seen)


class TestTextRegions:
    def test_gap_equal_to_threshold_extends_region(self):
        regions = group_regions([_placed(0, 10), _placed(20, 30)], gap_px=10)
        assert len(regions) == 1
        assert (regions[0].top, regions[0].bottom) == (0, 30)

    def test_gap_above_threshold_starts_new_region(self):
        regions = group_regions([_placed(0, 10), _placed(20.5, 30)], gap_px=10)
        assert len(regions) == 2

    def test_unsorted_input_is_grouped_top_down(self):
        regions = group_regions([_placed(100, 110), _placed(0, 10)], gap_px=10)
        assert [r.top for r in regions] == [0, 100]

    def test_whitespace_items_skipped(self):
        regions = group_regions([_placed(0, 10, text="  "), _placed(50, 60)], gap_px=10)
        assert len(regions) == 1
        assert regions[0].top == 50

    def test_same_line_items_joined_left_to_right(self):
        region = TextRegion(top=0, bottom=12, items=[_placed(2, 12, x=80, text="World"), _placed(0, 12, x=10, text="Hello")])
        html = region_html(region, sort_px=5, join_px=8)
        assert html.count("<p") == 1
        assert "Hello World" in html

    def test_line_break_at_join_threshold(self):
        close = TextRegion(top=0, bottom=20, items=[_placed(0, 10, text="a"), _placed(7.9, 20, text="b")])
        far = TextRegion(top=0, bottom=20, items=[_placed(0, 10, text="a"), _placed(8, 20, text="b")])
        assert region_html(close, sort_px=5, join_px=8).count("<p") == 1
        assert region_html(far, sort_px=5, join_px=8).count("<p") == 2

    def test_place_text_items_uses_font_height(self):
        vp = Viewport.for_page(PAGE_W, PAGE_H, 2.0)
        (p,) = place_text_items([TextItem("x", 10, 260, 30, 12)], vp)
        assert p.bottom == 80
        assert p.top == 56
        assert (p.x, p.width) == (20, 60)
