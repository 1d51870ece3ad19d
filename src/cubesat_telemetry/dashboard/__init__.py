"""Dash/Plotly dashboard for live telemetry."""

from .app import TelemetryDashboard, create_dashboard

__all__ = ["TelemetryDashboard", "create_dashboard"]
