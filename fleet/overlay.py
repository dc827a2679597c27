#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
fleet/overlay.py — popup placement that keeps node popups clear of the map's
fixed panels.

Two screen regions are known: the filter panel anchored top-right and the
legend anchored bottom-left. A point under the filter panel gets its popup on
the left, a point under the legend gets it on the right, everything else gets
the popup directly above the point. The filter panel wins when both match.
This is a piecewise decision over those two regions only.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Tuple

FILTER_PANEL_WIDTH = 280.0
FILTER_PANEL_HEIGHT = 350.0
LEGEND_WIDTH = 280.0
LEGEND_HEIGHT = 250.0
POPUP_WIDTH = 300.0
SIDE_GAP = 30.0
LIFT = 10.0


@dataclass(frozen=True)
class Rect:
    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    # Corner-anchored panels only bound the sides facing the map interior;
    # points on those inner edges count as outside.

    def covers_top_right(self, px: float, py: float) -> bool:
        return px > self.x and py < self.bottom

    def covers_bottom_left(self, px: float, py: float) -> bool:
        return px < self.right and py > self.y

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "Rect":
        return cls(float(d["x"]), float(d["y"]), float(d["width"]), float(d["height"]))

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


@dataclass(frozen=True)
class FixedRegions:
    filter_panel: Optional[Rect] = None
    legend: Optional[Rect] = None


@dataclass(frozen=True)
class Placement:
    dx: float
    dy: float
    side: str  # "left" | "right" | "above"

    @property
    def offset(self) -> Tuple[float, float]:
        return (self.dx, self.dy)

    def to_dict(self) -> Dict[str, Any]:
        return {"offset": [self.dx, self.dy], "side": self.side}


def default_regions(
    viewport_width: float,
    viewport_height: float,
    *,
    filter_size: Tuple[float, float] = (FILTER_PANEL_WIDTH, FILTER_PANEL_HEIGHT),
    legend_size: Tuple[float, float] = (LEGEND_WIDTH, LEGEND_HEIGHT),
) -> FixedRegions:
    fw, fh = filter_size
    lw, lh = legend_size
    return FixedRegions(
        filter_panel=Rect(viewport_width - fw, 0.0, fw, fh),
        legend=Rect(0.0, viewport_height - lh, lw, lh),
    )


def place_overlay(
    point: Tuple[float, float],
    viewport: Tuple[float, float],
    fixed_regions: Optional[FixedRegions] = None,
    *,
    popup_width: float = POPUP_WIDTH,
    gap: float = SIDE_GAP,
    lift: float = LIFT,
) -> Placement:
    """
    Offset for a popup anchored at `point` (container pixels) inside a map of
    size `viewport` (width, height). Without explicit regions the standard
    filter-panel/legend layout for that viewport is used.
    """
    px, py = point
    regions = fixed_regions if fixed_regions is not None else default_regions(*viewport)
    if regions.filter_panel is not None and regions.filter_panel.covers_top_right(px, py):
        return Placement(-popup_width - gap, -lift, "left")
    if regions.legend is not None and regions.legend.covers_bottom_left(px, py):
        return Placement(gap, -lift, "right")
    return Placement(0.0, -lift, "above")
