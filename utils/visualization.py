"""
Visualization utilities for search traces and batch results.
"""

from typing import List, Dict, Any

import plotly.graph_objects as go

from compression.target_search import SearchStep
from .image_utils import format_bytes


SCALE_COLORS = ["#e94560", "#3498db", "#2ecc71", "#f1c40f", "#9b59b6", "#e67e22", "#1abc9c"]


def plot_search_trace(trace: List[SearchStep],
                      target_bytes: int,
                      title: str = "Quality Search") -> go.Figure:
    """
    Create interactive Plotly chart of every encode tried.

    Args:
        trace: Encodes in the order they ran
        target_bytes: Byte budget, drawn as a horizontal line
        title: Chart title

    Returns:
        Plotly figure
    """
    fig = go.Figure()

    # One trace per scale, in the order scales were visited
    scales = []
    for step in trace:
        if step.scale not in scales:
            scales.append(step.scale)

    for i, scale in enumerate(scales):
        steps = [s for s in trace if s.scale == scale]
        color = SCALE_COLORS[i % len(SCALE_COLORS)]
        fig.add_trace(
            go.Scatter(
                x=[s.quality for s in steps],
                y=[s.size / 1024 for s in steps],
                name=f"scale {scale:.2f} ({steps[0].width}x{steps[0].height})",
                mode="markers+text",
                text=[str(n + 1) for n in range(len(steps))],
                textposition="top center",
                marker=dict(size=10, color=color),
                hovertemplate="Quality: %{x}<br>Size: %{y:.1f} KB<extra></extra>"
            )
        )

    fig.add_hline(
        y=target_bytes / 1024,
        line_dash="dash",
        line_color="#e74c3c",
        annotation_text=f"Target {format_bytes(target_bytes)}",
        annotation_position="top left",
    )

    fig.update_layout(
        title=dict(
            text=title,
            font=dict(size=20, color="#2c3e50")
        ),
        xaxis_title="Quality",
        yaxis_title="File Size (KB)",
        template="plotly_white",
        legend=dict(
            yanchor="top",
            y=0.99,
            xanchor="left",
            x=0.01,
            bgcolor="rgba(255,255,255,0.8)"
        ),
        margin=dict(l=60, r=60, t=80, b=60),
    )
    fig.update_xaxes(gridcolor="#ecf0f1", range=[0, 101])
    fig.update_yaxes(gridcolor="#ecf0f1")

    return fig


def create_outcome_cards(results: List[Any]) -> List[Dict]:
    """
    Create data for result cards.

    Args:
        results: BatchResult objects

    Returns:
        List of card data dictionaries
    """
    cards = []

    for result in results:
        if not result.ok:
            cards.append({
                "name": result.name,
                "status": "Error",
                "color": "#e74c3c",
                "detail": f"{result.stage}: {result.error}",
            })
            continue

        outcome = result.outcome
        if outcome.success:
            status, color = "OK", "#2ecc71"
        else:
            status, color = "Partial fit", "#f1c40f"

        cards.append({
            "name": result.download_name,
            "status": status,
            "color": color,
            "detail": (f"{format_bytes(outcome.final_bytes)} · quality {outcome.quality}"
                       f" · scale {outcome.scale:.2f}"),
            "width": outcome.width,
            "height": outcome.height,
            "encode_calls": outcome.encode_calls,
        })

    return cards
