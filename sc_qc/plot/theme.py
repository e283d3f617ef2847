from __future__ import annotations

import plotly.graph_objects as go

from sc_qc.plot.colours import colour


def apply_theme_bw(
    fig: go.Figure,
    base_size: int = 8,
    text_colour: str = "gray35",
    legend_inside: bool = True,
) -> go.Figure:
    """
    Black-and-white theme: white panel, light grey grid, framed axes.

    With legend_inside the legend sits in the bottom-right corner of the panel.
    """
    text = colour(text_colour)

    fig.update_layout(
        template="simple_white",
        plot_bgcolor="white",
        paper_bgcolor="white",
        font=dict(size=base_size, color=text),
        title_font=dict(size=round(base_size * 1.2), color=text),
    )

    axis_style = dict(
        showgrid=True,
        gridcolor="#EBEBEB",
        showline=True,
        linecolor=colour("grey30"),
        mirror=True,
        ticks="outside",
        tickfont=dict(color=text),
        title_font=dict(color=text),
    )
    fig.update_xaxes(**axis_style)
    fig.update_yaxes(**axis_style)

    if legend_inside:
        fig.update_layout(
            legend=dict(
                x=1,
                y=0,
                xanchor="right",
                yanchor="bottom",
                bgcolor="rgba(255,255,255,0.8)",
                bordercolor=colour("grey80"),
                borderwidth=1,
            )
        )

    return fig
