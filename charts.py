"""
plotly figures and display formatting for the dashboards.
"""
from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
import plotly.graph_objects as go

from aggregation import bucket_series
from models import UserSeries, WeightSample

GAIN_COLOR = "#d62728"  # red: gained
LOSS_COLOR = "#2ca02c"  # green: lost

# x-axis tick format per window
_TICK_FORMATS = {"week": "%a %d", "month": "%b %d", "year": "%b %Y", "all": "%b %Y"}


# Formatting helpers

def format_weight(x: Optional[float]) -> str:
    if x is None or not np.isfinite(x):
        return "--"
    return f"{x:.1f} lbs"


def format_change(x: Optional[float]) -> str:
    """
    >>> format_change(-2.0), format_change(0.4), format_change(0.0), format_change(None)
    ('-2.0 lbs', '+0.4 lbs', 'No change', '--')
    """
    if x is None or not np.isfinite(x):
        return "--"
    if x == 0:
        return "No change"
    sign = "+" if x > 0 else ""
    return f"{sign}{x:.1f} lbs"


def format_progress(x: Optional[float]) -> str:
    if x is None or not np.isfinite(x):
        return "--"
    return f"{x:.0f}%"


def change_color(x: Optional[float]) -> str:
    """Gains are styled as attention-worthy, losses as favourable."""
    if x is None or x >= 0:
        return GAIN_COLOR
    return LOSS_COLOR


# Figures

def compute_rolling(values: pd.Series, window: int = 7) -> pd.Series:
    """
    Centered rolling average over logged days.

    >>> compute_rolling(pd.Series([1, 2, 3, 4, 5, 6, 7]), 3).round(2).tolist()
    [1.5, 2.0, 3.0, 4.0, 5.0, 6.0, 6.5]
    """
    if values.empty:
        return pd.Series(dtype=float)
    s = values.rolling(window=window, center=True, min_periods=max(1, window // 2)).mean()
    # Edges where the centered window cannot be applied fall back to a trailing mean
    return s.combine_first(values.rolling(window=window, center=False, min_periods=1).mean())


def autoscale_y(y_arrays: List[np.ndarray]) -> Tuple[float, float]:
    arrays = [np.asarray(a, dtype=float) for a in y_arrays if a is not None and len(a) > 0]
    vals = np.concatenate([a[~np.isnan(a)] for a in arrays]) if arrays else np.array([])
    if vals.size == 0:
        return 0.0, 1.0
    y_min = float(np.min(vals))
    y_max = float(np.max(vals))
    rng = y_max - y_min
    pad = 2.0 if rng <= 0.0 else max(1.0, 0.05 * rng)
    y0 = max(0.0, y_min - pad)
    y1 = y_max + pad
    return y0, y1


def make_weight_chart(samples: Sequence[WeightSample], window: str, now=None,
                      show_roll7: bool = True) -> go.Figure:
    fig = go.Figure()
    points = bucket_series(samples, window, now)
    if not points:
        fig.update_layout(title="Weight", template="plotly_white")
        return fig

    x = [p.timestamp for p in points]
    y = pd.Series([p.value for p in points], dtype=float)
    fig.add_trace(go.Scatter(x=x, y=y, mode="lines+markers", name="Weight",
                             hovertemplate="%{x|%b %d, %Y}: %{y:.1f} lbs"))
    arrays = [y.to_numpy()]
    if show_roll7 and len(y) >= 3:
        roll7 = compute_rolling(y, 7)
        fig.add_trace(go.Scatter(x=x, y=roll7, mode="lines", name="7-entry avg"))
        arrays.append(roll7.to_numpy())

    y0, y1 = autoscale_y(arrays)
    fig.update_layout(
        title="Weight",
        yaxis_title="Weight (lbs)",
        yaxis=dict(range=[y0, y1]),
        xaxis=dict(tickformat=_TICK_FORMATS.get(window, "%b %d")),
        hovermode="x unified",
        template="plotly_white",
    )
    return fig


def make_comparison_chart(series: Sequence[UserSeries], window: str) -> go.Figure:
    fig = go.Figure()
    arrays = []
    for s in series:
        y = np.array([p.value for p in s.points], dtype=float)
        arrays.append(y)
        fig.add_trace(go.Scatter(
            x=[p.timestamp for p in s.points],
            y=y,
            mode="lines",
            name=f"{s.label} (lbs)",
            line=dict(color=s.color, width=3, shape="spline", smoothing=0.2),
            hovertemplate="%{y:.1f} lbs",
        ))
    y0, y1 = autoscale_y(arrays)
    fig.update_layout(
        title="Weight Comparison",
        yaxis=dict(range=[y0, y1], ticksuffix=" lbs", nticks=6),
        xaxis=dict(tickformat=_TICK_FORMATS.get(window, "%b %Y")),
        hovermode="x unified",
        template="plotly_white",
        showlegend=True,
    )
    return fig
