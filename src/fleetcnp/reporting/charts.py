"""Chart generation using Plotly."""

from typing import List, Sequence

import numpy as np
import plotly.graph_objects as go

from ..engine.records import Agent, AgentKind, SimulationRun, Task, TaskStatus

THEME = {
    "text": "#e8eaed",
    "text_secondary": "#9aa0a6",
    "grid": "rgba(30, 33, 36, 0.8)",
    "cyan": "#00d4ff",
    "amber": "#ffab00",
    "red": "#ff5252",
    "green": "#00e676",
    "slate": "#5f6368",
}

STATUS_COLORS = {
    TaskStatus.PENDING: THEME["amber"],
    TaskStatus.BIDDING: THEME["cyan"],
    TaskStatus.ASSIGNED: THEME["red"],
    TaskStatus.IN_PROGRESS: THEME["red"],
    TaskStatus.COMPLETED: THEME["green"],
}


def apply_dark_layout(fig: go.Figure, title: str, x_title: str, y_title: str, showlegend: bool = True) -> None:
    """Apply the dark workbench layout."""
    fig.update_layout(
        title={
            "text": title,
            "x": 0,
            "xanchor": "left",
            "font": {"size": 11, "color": THEME["text_secondary"]}
        },
        xaxis_title=x_title,
        yaxis_title=y_title,
        template="plotly_dark",
        height=380,
        margin=dict(l=50, r=20, t=40, b=40),
        showlegend=showlegend,
        legend=dict(orientation="h", yanchor="bottom", y=1.02, xanchor="left", x=0, bgcolor="rgba(0,0,0,0)"),
        plot_bgcolor="rgba(8, 9, 10, 1)",
        paper_bgcolor="rgba(8, 9, 10, 1)",
        font={"color": THEME["text"], "size": 11},
        xaxis=dict(gridcolor=THEME["grid"], zerolinecolor=THEME["grid"]),
        yaxis=dict(gridcolor=THEME["grid"], zerolinecolor=THEME["grid"]),
    )


def create_field_map(tasks: Sequence[Task], agents: Sequence[Agent], field_size: int = 100) -> go.Figure:
    """Field map: tasks colored by status (sized by infestation), agents by kind."""
    fig = go.Figure()

    for status in TaskStatus:
        group = [t for t in tasks if t.status == status]
        if not group:
            continue
        density = np.array([t.infestation_density for t in group], dtype=float)
        fig.add_trace(go.Scatter(
            x=[t.area_x for t in group],
            y=[t.area_y for t in group],
            mode="markers",
            name=f"Task: {status.value}",
            marker=dict(
                size=6 + density / 10.0,
                color=STATUS_COLORS[status],
                opacity=0.75,
                symbol="square",
            ),
            text=[f"Task {t.id} | density {t.infestation_density} | priority {t.priority}" for t in group],
            hoverinfo="text",
        ))

    for kind, symbol, color in ((AgentKind.WORKER, "triangle-up", THEME["cyan"]), (AgentKind.SCOUT, "circle", THEME["slate"])):
        group = [a for a in agents if a.kind == kind]
        if not group:
            continue
        fig.add_trace(go.Scatter(
            x=[a.position_x for a in group],
            y=[a.position_y for a in group],
            mode="markers+text",
            name=f"Agent: {kind.value}",
            marker=dict(size=14, color=color, symbol=symbol, line=dict(width=1, color=THEME["text"])),
            text=[a.name for a in group],
            textposition="top center",
            hovertext=[
                f"{a.name} | energy {a.energy_level} | payload {a.current_payload}/{a.payload_capacity} ml"
                for a in group
            ],
            hoverinfo="text",
        ))

    apply_dark_layout(fig, "FIELD MAP", "x", "y")
    fig.update_xaxes(range=[-2, field_size + 2])
    fig.update_yaxes(range=[-2, field_size + 2], scaleanchor="x", scaleratio=1)
    return fig


def create_progress_chart(snapshots: List[SimulationRun]) -> go.Figure:
    """Completed tasks and cumulative resource use per step."""
    steps = list(range(len(snapshots)))

    fig = go.Figure()
    fig.add_trace(go.Scatter(
        x=steps,
        y=[s.completed_tasks for s in snapshots],
        name="Completed tasks",
        line=dict(color=THEME["green"], width=2),
    ))
    fig.add_trace(go.Scatter(
        x=steps,
        y=[s.total_energy_used for s in snapshots],
        name="Energy used",
        line=dict(color=THEME["cyan"], width=2),
    ))
    fig.add_trace(go.Scatter(
        x=steps,
        y=[s.total_pesticide_used / 1000.0 for s in snapshots],
        name="Pesticide used (L)",
        line=dict(color=THEME["amber"], width=2, dash="dot"),
        yaxis="y2",
    ))

    apply_dark_layout(fig, "RUN PROGRESS", "Step", "Tasks / energy")
    fig.update_layout(
        hovermode="x unified",
        yaxis2=dict(title="Pesticide (L)", overlaying="y", side="right", showgrid=False),
    )
    return fig


def create_fleet_resources_chart(agents: Sequence[Agent]) -> go.Figure:
    """Energy and payload fill per agent."""
    names = [a.name for a in agents]
    payload_fill = [
        100.0 * a.current_payload / a.payload_capacity if a.payload_capacity > 0 else 0.0
        for a in agents
    ]

    fig = go.Figure()
    fig.add_trace(go.Bar(x=names, y=[a.energy_level for a in agents], name="Energy (%)", marker_color=THEME["cyan"]))
    fig.add_trace(go.Bar(x=names, y=payload_fill, name="Payload (%)", marker_color=THEME["amber"]))
    apply_dark_layout(fig, "FLEET RESOURCES", "Agent", "Percent")
    fig.update_layout(barmode="group", yaxis=dict(range=[0, 100]))
    return fig
