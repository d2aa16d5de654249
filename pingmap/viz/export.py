# pingmap/viz/export.py

from __future__ import annotations
from pathlib import Path
from typing import Optional, Union

import plotly.graph_objects as go
import plotly.io as pio
from plotly.graph_objs import Figure

from pingmap.utils.logging import get_logger

log = get_logger(__name__)


PathLike = Union[str, Path]


def save_html(
        fig: Figure,
        path: PathLike,
        caption: Optional[str] = None,
        include_plotlyjs: str = "cdn",
) -> None:
    """
    Write the bitmap as a zoomable page.

    ``caption`` (e.g. the reachable count) is drawn under the bitmap; the
    camera button in the modebar saves a PNG named after ``path``.
    """
    out_path = Path(path)
    log.info("Saving HTML bitmap to %s", out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)

    page = go.Figure(fig)
    if caption:
        page.add_annotation(
            text=caption,
            xref="paper",
            yref="paper",
            x=0.5,
            y=0,
            yshift=-8,
            yanchor="top",
            showarrow=False,
        )
        page.update_layout(margin_b=(page.layout.margin.b or 0) + 30)
        if page.layout.height is not None:
            page.update_layout(height=page.layout.height + 30)

    pio.write_html(
        page,
        file=str(out_path),
        include_plotlyjs=include_plotlyjs,
        div_id="pingmap-bitmap",
        config={
            "scrollZoom": True,
            "displaylogo": False,
            "toImageButtonOptions": {"format": "png", "filename": out_path.stem},
        },
    )


def save_png(fig: Figure, path: PathLike, scale: float = 1.0) -> None:
    """
    Encode the sweep bitmap as a PNG (requires kaleido).

    The figure already carries its pixel width/height, so ``scale`` only
    multiplies that size.
    """
    out_path = Path(path)
    log.info("Saving PNG bitmap to %s", out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)

    try:
        pio.write_image(fig, file=str(out_path), format="png", scale=scale)
    except Exception as e:
        log.error(
            "Failed to write PNG to %s; ensure 'kaleido' is installed. Error: %s",
            out_path,
            e,
        )
        raise
    else:
        log.debug("PNG written successfully to %s", out_path)
