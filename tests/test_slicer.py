"""Image slicer: canonical-width resize, strip cutting and link redistribution."""
from __future__ import annotations

import math

import pytest
from PIL import Image

from newsletter_engine.slicer import links_for_slice, resize_to_width, slice_image
from newsletter_engine.types import LinkInfo


def _img(w: int, h: int, color=(255, 255, 255)) -> Image.Image:
    return Image.new("RGB", (w, h), color)


class TestSliceCoverage:
    def test_tall_image_cut_into_equal_strips(self):
        slices = slice_image(_img(1600, 2000, (255, 0, 0)), 500)

        assert len(slices) == 4
        assert [s.height for s in slices] == [500, 500, 500, 500]
        assert all(s.width == 1600 for s in slices)
        assert all(s.bitmap.size == (1600, 500) for s in slices)
        assert all(s.links == () for s in slices)

    def test_heights_sum_to_resized_height(self):
        slices = slice_image(_img(1000, 1234), 300)
        resized_h = round(1234 * 1600 / 1000)

        assert sum(s.height for s in slices) == resized_h
        assert len(slices) == math.ceil(resized_h / 300)
        assert slices[-1].height == resized_h - 300 * (len(slices) - 1)

    def test_offsets_are_contiguous_and_ordered(self):
        slices = slice_image(_img(1600, 1100), 400)
        assert [s.y_offset for s in slices] == [0, 400, 800]
        assert [s.height for s in slices] == [400, 400, 300]

    @pytest.mark.parametrize("target", [0, -1, -500])
    def test_non_positive_height_means_single_strip(self, target):
        slices = slice_image(_img(800, 900), target)
        assert len(slices) == 1
        assert slices[0].height == 1800
        assert slices[0].width == 1600

    def test_target_taller_than_image(self):
        slices = slice_image(_img(1600, 2000), 3000)
        assert len(slices) == 1
        assert slices[0].height == 2000

    def test_resize_keeps_aspect_ratio(self):
        assert resize_to_width(_img(400, 100)).size == (1600, 400)
        same = _img(1600, 10)
        assert resize_to_width(same) is same


class TestLinkRedistribution:
    def test_links_rescaled_to_target_width(self):
        link = LinkInfo("https://example.com", x=10, y=10, width=20, height=20)
        slices = slice_image(_img(100, 100), 0, [link], width=800)

        (out,) = slices[0].links
        assert (out.x, out.y, out.width, out.height) == (80, 80, 160, 160)

    def test_merged_second_page_link_rescaled(self):
        # Second of two 100px pages: y=20 on its page, 120 after merging.
        link = LinkInfo("https://example.com", x=10, y=120, width=20, height=20, page_index=1)
        slices = slice_image(_img(100, 200), 0, [link], width=800)

        (out,) = slices[0].links
        assert out.y == 960
        assert out.page_index == 1

    def test_partial_overlap_at_top_is_kept(self):
        link = LinkInfo("https://a", x=0, y=495, width=10, height=10)
        (kept,) = links_for_slice([link], 500, 500)
        assert kept.y == -5
        assert kept.height == 10

    def test_link_touching_bottom_edge_is_excluded(self):
        link = LinkInfo("https://a", x=0, y=500, width=10, height=10)
        assert links_for_slice([link], 0, 500) == []

    def test_link_ending_exactly_at_top_edge_is_excluded(self):
        link = LinkInfo("https://a", x=0, y=490, width=10, height=10)
        assert links_for_slice([link], 500, 500) == []

    def test_boundary_link_copied_whole_into_both_strips(self):
        link = LinkInfo("https://a", x=100, y=450, width=200, height=100)
        first, second = slice_image(_img(1600, 1000), 500, [link])

        (a,) = first.links
        (b,) = second.links
        assert (a.y, a.height) == (450, 100)
        assert (b.y, b.height) == (-50, 100)
        assert a.width == b.width == 200

    def test_every_strip_link_intersects_its_strip(self):
        links = [LinkInfo("https://a", 0, y, 50, 70) for y in range(0, 2000, 130)]
        for s in slice_image(_img(1600, 2000), 333, links):
            for ln in s.links:
                assert ln.y + ln.height > 0
                assert ln.y < s.height
