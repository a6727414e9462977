import numpy as np
import pandas as pd
import plotly.graph_objects as go

from ..domain.models import MaturityBucket
from ..domain.services import RED_BELOW, YELLOW_BELOW

BUCKET_COLORS: dict[str, str] = {
    MaturityBucket.RED.value: "#D73027",
    MaturityBucket.YELLOW.value: "#FEE08B",
    MaturityBucket.GREEN.value: "#1A9850",
}

FRAME_COLUMNS = ["CategoryID", "Category", "Score", "Level", "Label", "Answered", "Questions"]


def report_frame(report) -> pd.DataFrame:
    """One row per category of an ``AssessmentReport``, in report order."""
    rows = [
        {
            "CategoryID": c.category.id,
            "Category": c.category.text,
            "Score": c.score,
            "Level": c.bucket.value,
            "Label": c.maturity_level,
            "Answered": len(c.answered),
            "Questions": c.question_count,
        }
        for c in report.categories
    ]
    return pd.DataFrame(rows, columns=FRAME_COLUMNS)


def make_results_bar_chart(df: pd.DataFrame, title: str | None = None) -> go.Figure:
    """Horizontal bars of category scores (0-100) coloured by maturity bucket."""
    fig = go.Figure()
    if df.empty:
        fig.update_layout(title=dict(text=title or "Tulemused kategooriate kaupa"))
        return fig

    # Lowest score at the top
    data = df.sort_values("Score", kind="stable")
    fig.add_trace(
        go.Bar(
            x=data["Score"],
            y=data["Category"],
            orientation="h",
            marker=dict(color=[BUCKET_COLORS[level] for level in data["Level"]]),
            text=[f"{s}%" for s in data["Score"]],
            textposition="outside",
            hovertemplate="<b>%{customdata[0]}</b><br>%{x}% (%{customdata[1]})<extra></extra>",
            customdata=np.stack([data["Category"], data["Label"]], axis=1),
            name="Skoor",
        )
    )

    for threshold in (RED_BELOW, YELLOW_BELOW):
        fig.add_vline(x=threshold, line=dict(color="#999999", width=1, dash="dot"))

    fig.update_layout(
        title=dict(
            text=title or "Tulemused kategooriate kaupa",
            x=0.5,
            xanchor="center",
            font=dict(family="Helvetica, Arial, sans-serif", size=18),
        ),
        xaxis=dict(range=[0, 110], ticksuffix="%", gridcolor="#E5E5E5"),
        yaxis=dict(automargin=True),
        showlegend=False,
        margin=dict(l=40, r=40, t=80, b=40),
        template="plotly_white",
        height=max(240, 60 * len(data) + 120),
    )
    return fig


def make_results_radar(df: pd.DataFrame) -> go.Figure | None:
    """Closed radar of category scores; None when there are fewer than three categories."""
    if len(df) < 3:
        return None

    r_vals = df["Score"].tolist()
    theta_vals = df["Category"].tolist()
    colors = [BUCKET_COLORS[level] for level in df["Level"]]
    fig = go.Figure()
    fig.add_trace(
        go.Scatterpolar(
            r=r_vals + [r_vals[0]],
            theta=theta_vals + [theta_vals[0]],
            mode="lines+markers",
            line=dict(color="#666666", width=1.5),
            marker=dict(size=9, color=colors + [colors[0]]),
            fill="toself",
            fillcolor="rgba(0,0,0,0.08)",
            name="Skoor",
        )
    )
    fig.update_layout(
        polar=dict(radialaxis=dict(range=[0, 100], tickvals=[0, RED_BELOW, YELLOW_BELOW, 100])),
        showlegend=False,
        template="plotly_white",
        height=480,
    )
    return fig


def figure_json(fig: go.Figure | None) -> str | None:
    """Plotly JSON for embedding in a template, or None."""
    return fig.to_json() if fig is not None else None
