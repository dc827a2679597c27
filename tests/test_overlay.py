from __future__ import annotations

from fleet.overlay import FixedRegions, Rect, default_regions, place_overlay

VIEWPORT = (1000.0, 800.0)


def test_default_regions_anchor_to_corners() -> None:
    regions = default_regions(*VIEWPORT)
    assert regions.filter_panel == Rect(720.0, 0.0, 280.0, 350.0)
    assert regions.legend == Rect(0.0, 550.0, 280.0, 250.0)


def test_point_under_filter_panel_opens_left() -> None:
    placement = place_overlay((900.0, 100.0), VIEWPORT)
    assert placement.side == "left"
    assert placement.offset == (-330.0, -10.0)


def test_point_over_legend_opens_right() -> None:
    placement = place_overlay((100.0, 700.0), VIEWPORT)
    assert placement.side == "right"
    assert placement.offset == (30.0, -10.0)


def test_other_points_open_above() -> None:
    for point in ((500.0, 400.0), (100.0, 100.0), (900.0, 700.0)):
        placement = place_overlay(point, VIEWPORT)
        assert placement.side == "above"
        assert placement.offset == (0.0, -10.0)


def test_inner_panel_edges_count_as_outside() -> None:
    # filter panel: left and bottom edges are open
    assert place_overlay((720.0, 100.0), VIEWPORT).side == "above"
    assert place_overlay((720.1, 0.0), VIEWPORT).side == "left"
    assert place_overlay((900.0, 350.0), VIEWPORT).side == "above"
    assert place_overlay((900.0, 349.9), VIEWPORT).side == "left"
    # legend: top and right edges are open
    assert place_overlay((100.0, 550.0), VIEWPORT).side == "above"
    assert place_overlay((100.0, 550.1), VIEWPORT).side == "right"
    assert place_overlay((280.0, 700.0), VIEWPORT).side == "above"
    assert place_overlay((0.0, 800.0), VIEWPORT).side == "right"


def test_filter_panel_wins_when_regions_overlap() -> None:
    shared = Rect(0.0, 0.0, 500.0, 500.0)
    placement = place_overlay((10.0, 10.0), VIEWPORT, FixedRegions(filter_panel=shared, legend=shared))
    assert placement.side == "left"


def test_missing_regions_fall_back_to_above() -> None:
    placement = place_overlay((900.0, 100.0), VIEWPORT, FixedRegions())
    assert placement.side == "above"


def test_custom_popup_geometry() -> None:
    placement = place_overlay((900.0, 100.0), VIEWPORT, popup_width=200.0, gap=10.0, lift=5.0)
    assert placement.to_dict() == {"offset": [-210.0, -5.0], "side": "left"}


def test_rect_from_dict() -> None:
    rect = Rect.from_dict({"x": "1", "y": 2, "width": 3, "height": 4.5})
    assert rect.to_dict() == {"x": 1.0, "y": 2.0, "width": 3.0, "height": 4.5}
    assert rect.right == 4.0
    assert rect.bottom == 6.5
