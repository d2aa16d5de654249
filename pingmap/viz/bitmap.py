# pingmap/viz/bitmap.py

from __future__ import annotations

from typing import Optional

import plotly.graph_objects as go

from pingmap.sweep.canvas import Canvas
from pingmap.utils.logging import get_logger

log = get_logger(__name__)

REACHABLE_COLOR = "rgb(255,255,255)"
UNREACHABLE_COLOR = "rgb(100,200,200)"


def two_color_scale(reachable: str = REACHABLE_COLOR, unreachable: str = UNREACHABLE_COLOR) -> list:
    """Discrete colorscale: 0 -> unreachable, 1 -> reachable, nothing in between."""
    return [
        [0.0, unreachable],
        [0.5, unreachable],
        [0.5, reachable],
        [1.0, reachable],
    ]


def build_bitmap_figure(
        canvas: Canvas,
        title: Optional[str] = None,
        pixel_size: int = 1,
        reachable_color: str = REACHABLE_COLOR,
        unreachable_color: str = UNREACHABLE_COLOR,
) -> go.Figure:
    """
    Render the canvas as a square heatmap, one cell per pixel.

    (0, 0) sits in the top-left corner like in a raster image. Margins and
    axes are removed so a PNG export is just the bitmap scaled by
    ``pixel_size``.
    """
    side = canvas.side
    fig = go.Figure(
        data=go.Heatmap(
            z=canvas.to_lists(),
            zmin=0,
            zmax=1,
            colorscale=two_color_scale(reachable_color, unreachable_color),
            showscale=False,
            xgap=0,
            ygap=0,
            hovertemplate="x=%{x}, y=%{y}<extra></extra>",
        )
    )

    edge = max(side * pixel_size, 10)
    top = 40 if title else 0
    fig.update_layout(
        title=title,
        width=edge,
        height=edge + top,
        margin=dict(l=0, r=0, t=top, b=0),
        plot_bgcolor=unreachable_color,
    )
    fig.update_xaxes(visible=False, range=[-0.5, side - 0.5], constrain="domain")
    fig.update_yaxes(
        visible=False,
        range=[side - 0.5, -0.5],
        scaleanchor="x",
        scaleratio=1,
        constrain="domain",
    )
    log.debug("Built %dx%d bitmap figure (%dpx per cell)", side, side, pixel_size)
    return fig
