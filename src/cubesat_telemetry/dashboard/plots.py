"""
Plot components for the telemetry dashboard.
"""

import math
from datetime import datetime
from typing import List, Sequence, Tuple

import plotly.graph_objects as go  # type: ignore

Point = Tuple[float, float]
Vector = Tuple[float, float, float]

# Half-size of the satellite body drawn in the orientation view (1U-ish box)
BODY_HALF_EXTENTS: Vector = (1.0, 1.0, 1.5)


def _empty_figure(title: str, yaxis_title: str) -> go.Figure:
    fig = go.Figure()
    fig.add_annotation(
        x=0.5,
        y=0.5,
        text="No data available",
        showarrow=False,
        xref="paper",
        yref="paper",
        font=dict(size=16, color="gray"),
    )
    fig.update_layout(
        title=title,
        xaxis_title="Time",
        yaxis_title=yaxis_title,
        height=300,
    )
    return fig


def create_line_chart(
    points: Sequence[Point],
    title: str,
    yaxis_title: str,
    color: str = "royalblue",
) -> go.Figure:
    """Create a rolling time-series chart from (unix time, value) points."""
    if not points:
        return _empty_figure(title, yaxis_title)

    timestamps = [datetime.fromtimestamp(t) for t, _ in points]
    values = [v for _, v in points]

    fig = go.Figure()
    fig.add_trace(
        go.Scatter(
            x=timestamps,
            y=values,
            mode="lines+markers",
            name=title,
            line=dict(color=color, width=2),
            marker=dict(size=4),
        )
    )
    fig.update_layout(
        title=title,
        xaxis_title="Time",
        yaxis_title=yaxis_title,
        showlegend=False,
        height=300,
        margin=dict(l=50, r=20, t=50, b=50),
    )
    fig.update_xaxes(tickformat="%H:%M:%S")
    return fig


def create_temperature_chart(points: Sequence[Point]) -> go.Figure:
    return create_line_chart(points, "Temperature", "Temperature (°C)", color="orangered")


def create_wifi_rssi_chart(points: Sequence[Point]) -> go.Figure:
    return create_line_chart(points, "WiFi Signal", "RSSI (dBm)", color="seagreen")


def rotation_matrix(rotation: Vector) -> List[List[float]]:
    """Matrix for Euler angles (x, y, z) in radians applied in X, Y, Z order."""
    x, y, z = rotation
    cx, sx = math.cos(x), math.sin(x)
    cy, sy = math.cos(y), math.sin(y)
    cz, sz = math.cos(z), math.sin(z)
    # Rx @ Ry @ Rz
    return [
        [cy * cz, -cy * sz, sy],
        [cx * sz + sx * sy * cz, cx * cz - sx * sy * sz, -sx * cy],
        [sx * sz - cx * sy * cz, sx * cz + cx * sy * sz, cx * cy],
    ]


def _apply(matrix: List[List[float]], v: Vector) -> Vector:
    return (
        matrix[0][0] * v[0] + matrix[0][1] * v[1] + matrix[0][2] * v[2],
        matrix[1][0] * v[0] + matrix[1][1] * v[1] + matrix[1][2] * v[2],
        matrix[2][0] * v[0] + matrix[2][1] * v[1] + matrix[2][2] * v[2],
    )


def body_corners(rotation: Vector, half_extents: Vector = BODY_HALF_EXTENTS) -> List[Vector]:
    """Eight rotated corners of the body box, in itertools.product order."""
    hx, hy, hz = half_extents
    matrix = rotation_matrix(rotation)
    return [
        _apply(matrix, (sx * hx, sy * hy, sz * hz))
        for sx in (-1, 1)
        for sy in (-1, 1)
        for sz in (-1, 1)
    ]


# Triangles over the corner indices produced by body_corners
_FACES_I = [0, 0, 4, 4, 0, 0, 2, 2, 0, 0, 1, 1]
_FACES_J = [1, 3, 5, 7, 1, 5, 3, 7, 2, 6, 3, 7]
_FACES_K = [3, 2, 7, 6, 5, 4, 7, 6, 6, 4, 7, 5]


def create_orientation_figure(
    rotation: Vector, roll: float, pitch: float, yaw: float
) -> go.Figure:
    """3D attitude view of the satellite body for a target rotation."""
    corners = body_corners(rotation)
    xs, ys, zs = zip(*corners)

    fig = go.Figure()
    fig.add_trace(
        go.Mesh3d(
            x=xs,
            y=ys,
            z=zs,
            i=_FACES_I,
            j=_FACES_J,
            k=_FACES_K,
            color="lightsteelblue",
            opacity=0.8,
            flatshading=True,
            name="CubeSat",
        )
    )

    matrix = rotation_matrix(rotation)
    for axis, color in (((2.0, 0.0, 0.0), "red"), ((0.0, 2.0, 0.0), "green"), ((0.0, 0.0, 2.5), "blue")):
        tip = _apply(matrix, axis)
        fig.add_trace(
            go.Scatter3d(
                x=[0.0, tip[0]],
                y=[0.0, tip[1]],
                z=[0.0, tip[2]],
                mode="lines",
                line=dict(color=color, width=6),
                showlegend=False,
            )
        )

    axis_range = [-3, 3]
    fig.update_layout(
        title=f"Orientation  roll {roll:.1f}°  pitch {pitch:.1f}°  yaw {yaw:.1f}°",
        height=350,
        margin=dict(l=0, r=0, t=50, b=0),
        scene=dict(
            xaxis=dict(range=axis_range, visible=False),
            yaxis=dict(range=axis_range, visible=False),
            zaxis=dict(range=axis_range, visible=False),
            aspectmode="cube",
        ),
        uirevision="orientation",
    )
    return fig
