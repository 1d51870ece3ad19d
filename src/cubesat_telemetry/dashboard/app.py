"""
Dash application for the CubeSat ground-station dashboard.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

import dash  # type: ignore
from dash import Input, Output, dcc, html

from ..audit_log import export_filename
from ..errors import TransportConnectError
from ..service import ServiceStatus, TelemetryService
from ..transports import TransportConfig
from .plots import (
    create_orientation_figure,
    create_temperature_chart,
    create_wifi_rssi_chart,
)

logger = logging.getLogger(__name__)

PANEL_STYLE = {
    "display": "inline-block",
    "verticalAlign": "top",
    "padding": "10px",
    "border": "1px solid #ddd",
    "borderRadius": "5px",
    "margin": "5px",
}

BUTTON_STYLE = {
    "marginRight": "10px",
    "padding": "8px 16px",
    "color": "white",
    "border": "none",
    "borderRadius": "4px",
    "cursor": "pointer",
}

# (field, label, unit, format spec) shown in the readout grid
READOUTS: Tuple[Tuple[str, str, str, str], ...] = (
    ("temperature", "Temperature", "°C", ".1f"),
    ("humidity", "Humidity", "%", ".1f"),
    ("pressure", "Pressure", "hPa", ".2f"),
    ("altitude", "Altitude", "m", ".0f"),
    ("co2", "CO2", "ppm", ".0f"),
    ("lightLevel", "Light", "%", ".0f"),
    ("accelX", "Accel X", "m/s²", ".2f"),
    ("accelY", "Accel Y", "m/s²", ".2f"),
    ("accelZ", "Accel Z", "m/s²", ".2f"),
    ("gyroX", "Gyro X", "°/s", ".1f"),
    ("gyroY", "Gyro Y", "°/s", ".1f"),
    ("gyroZ", "Gyro Z", "°/s", ".1f"),
    ("rssi", "RSSI", "dBm", ".0f"),
    ("snr", "SNR", "dB", ".1f"),
    ("ber", "BER", "", ".1e"),
    ("wifiRSSI", "WiFi RSSI", "dBm", ".0f"),
    ("bleRSSI", "BLE RSSI", "dBm", ".0f"),
    ("cpuUsage", "CPU", "%", ".0f"),
    ("cpuTemp", "CPU Temp", "°C", ".0f"),
    ("freeHeap", "Free Heap", "KB", ".0f"),
    ("power", "Battery", "V", ".2f"),
)


def _button(label: str, button_id: str, color: str) -> html.Button:
    return html.Button(
        label, id=button_id, style={**BUTTON_STYLE, "backgroundColor": color}
    )


class TelemetryDashboard:
    """Web dashboard over a :class:`TelemetryService`.

    The dashboard never touches transports directly: button callbacks call
    the service's thread-safe operations, and a ``dcc.Interval`` polls the
    display sinks and the audit log.

    Attributes:
        service: Service providing data and operations.
        transport_config: Link used by the Connect button. When None, only the
            simulated stream is available.
        update_interval: UI refresh interval in milliseconds.
        app: Dash application instance.
    """

    def __init__(
        self,
        service: TelemetryService,
        transport_config: Optional[TransportConfig] = None,
        update_interval_ms: int = 1000,
    ):
        self.service = service
        self.transport_config = transport_config
        self.update_interval = update_interval_ms

        self.app = dash.Dash(__name__, title="CubeSat Ground Station")
        self._setup_layout()
        self._setup_callbacks()

    def _setup_layout(self) -> None:
        target = (
            type(self.transport_config).__name__.replace("Config", "")
            if self.transport_config is not None
            else "none (simulation only)"
        )
        self.app.layout = html.Div(
            [
                html.H1("CubeSat Ground Station", style={"textAlign": "center"}),
                html.Div(
                    [
                        html.Div(
                            [
                                html.H3("Connection"),
                                html.Div(f"Transport: {target}", style={"fontSize": "14px"}),
                                html.Div(
                                    [
                                        _button("🔗 Connect", "connect-btn", "#007bff"),
                                        _button("⛔ Disconnect", "disconnect-btn", "#6c757d"),
                                    ],
                                    style={"margin": "10px 0"},
                                ),
                                html.Div(id="connection-status", children="Initializing..."),
                                html.Div(id="action-message", style={"fontSize": "13px"}),
                            ],
                            style={**PANEL_STYLE, "width": "30%"},
                        ),
                        html.Div(
                            [
                                html.H3("Data Stream"),
                                html.Div(
                                    [
                                        _button("▶️ Start", "start-stream-btn", "#28a745"),
                                        _button("⏸️ Stop", "stop-stream-btn", "#6c757d"),
                                        _button("🧹 Clear", "clear-btn", "#ffc107"),
                                        _button("💾 Export CSV", "export-btn", "#17a2b8"),
                                    ],
                                    style={"margin": "10px 0"},
                                ),
                                html.Div(id="stream-status", children="⏹️ Stream stopped"),
                                html.Div(id="packet-stats", children=""),
                            ],
                            style={**PANEL_STYLE, "width": "35%"},
                        ),
                        html.Div(
                            [
                                html.H3("Status"),
                                html.Div(id="derived-status", children=""),
                            ],
                            style={**PANEL_STYLE, "width": "30%"},
                        ),
                    ],
                    style={"margin": "20px", "display": "flex", "gap": "10px"},
                ),
                html.Div(
                    id="readouts",
                    style={
                        "margin": "20px",
                        "display": "grid",
                        "gridTemplateColumns": "repeat(7, 1fr)",
                        "gap": "8px",
                    },
                ),
                html.Div(
                    [
                        dcc.Graph(id="temperature-chart", style={"width": "33%"}),
                        dcc.Graph(id="wifi-chart", style={"width": "33%"}),
                        dcc.Graph(id="orientation-view", style={"width": "33%"}),
                    ],
                    style={"display": "flex"},
                ),
                html.Div(
                    [
                        html.H3("Telemetry Log"),
                        html.Ul(id="audit-log", style={"fontFamily": "monospace"}),
                    ],
                    style={"margin": "20px"},
                ),
                dcc.Download(id="csv-download"),
                dcc.Interval(
                    id="interval-component",
                    interval=self.update_interval,
                    n_intervals=0,
                ),
            ]
        )

    def _setup_callbacks(self) -> None:
        @self.app.callback(  # type: ignore
            [
                Output("connection-status", "children"),
                Output("stream-status", "children"),
                Output("packet-stats", "children"),
                Output("derived-status", "children"),
                Output("readouts", "children"),
                Output("temperature-chart", "figure"),
                Output("wifi-chart", "figure"),
                Output("orientation-view", "figure"),
                Output("audit-log", "children"),
            ],
            [Input("interval-component", "n_intervals")],
        )
        def refresh(n_intervals: int) -> Tuple[Any, ...]:
            status = self.service.status()
            if n_intervals % 30 == 0:
                logger.debug(
                    f"🔍 UI refresh: packets={status.packet_count}, "
                    f"rate={status.data_rate:.2f}Hz, state={status.session_state.value}"
                )
            orientation = self.service.orientation
            return (
                render_connection_status(status),
                render_stream_status(status),
                f"📦 Packets: {status.packet_count}   ⏱️ Rate: {status.data_rate:.1f} Hz",
                self._render_derived(),
                self._render_readouts(),
                create_temperature_chart(self.service.charts.series("temperature")),
                create_wifi_rssi_chart(self.service.charts.series("wifiRSSI")),
                create_orientation_figure(
                    orientation.target_rotation,
                    orientation.roll,
                    orientation.pitch,
                    orientation.yaw,
                ),
                [
                    html.Li(f"[{entry.time_label}] {entry.text}")
                    for entry in self.service.audit_log.snapshot()
                ],
            )

        @self.app.callback(  # type: ignore
            Output("action-message", "children"),
            [
                Input("connect-btn", "n_clicks"),
                Input("disconnect-btn", "n_clicks"),
                Input("start-stream-btn", "n_clicks"),
                Input("stop-stream-btn", "n_clicks"),
                Input("clear-btn", "n_clicks"),
            ],
            prevent_initial_call=True,
        )
        def on_action(*_clicks: Optional[int]) -> str:
            return self.handle_action(dash.ctx.triggered_id)

        @self.app.callback(  # type: ignore
            Output("csv-download", "data"),
            [Input("export-btn", "n_clicks")],
            prevent_initial_call=True,
        )
        def on_export(n_clicks: Optional[int]) -> Optional[Dict[str, str]]:
            if not n_clicks:
                return None
            logger.info("💾 Exporting telemetry log")
            return dict(content=self.service.audit_log.to_csv(), filename=export_filename())

    def handle_action(self, button_id: Optional[str]) -> str:
        """Run the operation behind a control button and describe the outcome."""
        try:
            if button_id == "connect-btn":
                if self.transport_config is None:
                    return "⚠️ No transport configured; start the stream to simulate"
                self.service.connect(self.transport_config)
                return "✅ Connected"
            if button_id == "disconnect-btn":
                self.service.disconnect()
                return "🔌 Disconnected"
            if button_id == "start-stream-btn":
                self.service.start_stream()
                return "▶️ Stream started"
            if button_id == "stop-stream-btn":
                self.service.stop_stream()
                return "⏸️ Stream stopped"
            if button_id == "clear-btn":
                self.service.clear_data()
                return "🧹 Data cleared"
        except TransportConnectError as e:
            return f"❌ Connection failed: {e}"
        logger.debug(f"Ignoring unknown action: {button_id}")
        return ""

    def _render_readouts(self) -> List[html.Div]:
        values = self.service.numeric.values()
        cells = []
        for name, label, unit, spec in READOUTS:
            cells.append(
                html.Div(
                    [
                        html.Div(label, style={"fontSize": "12px", "color": "#666"}),
                        html.Div(
                            f"{values[name]:{spec}} {unit}".strip(),
                            style={"fontSize": "18px", "fontWeight": "bold"},
                        ),
                    ],
                    style={"border": "1px solid #eee", "padding": "6px", "borderRadius": "4px"},
                )
            )
        return cells

    def _render_derived(self) -> html.Div:
        numeric = self.service.numeric
        return html.Div(
            [
                html.P(f"📡 Signal: {numeric.signal_quality}", style={"margin": "5px 0"}),
                html.P(f"🌿 Air quality: {numeric.air_quality}", style={"margin": "5px 0"}),
                html.P(f"🔋 Battery: {numeric.battery_percent}%", style={"margin": "5px 0"}),
            ]
        )


def render_connection_status(status: ServiceStatus) -> html.Div:
    if status.connected:
        text, color = f"🟢 Connected via {status.transport}", "green"
    elif status.last_error:
        text, color = "🔴 Connection lost", "red"
    else:
        text, color = "⚪ Disconnected", "gray"

    children = [html.Div(text, style={"color": color, "fontWeight": "bold", "fontSize": "16px"})]
    if status.target:
        children.append(html.P(f"🔵 {status.target}", style={"margin": "5px 0", "fontSize": "14px"}))
    if status.last_error:
        children.append(
            html.P(f"⚠️ {status.last_error}", style={"margin": "5px 0", "fontSize": "13px", "color": "red"})
        )
    return html.Div(children)


def render_stream_status(status: ServiceStatus) -> str:
    if not status.stream_active:
        return "⏹️ Stream stopped"
    if status.generator_running:
        return "▶️ Streaming (simulated data)"
    return "▶️ Streaming"


def create_dashboard(
    service: TelemetryService, **kwargs: Any
) -> TelemetryDashboard:
    """Factory function to create a dashboard.

    Args:
        service: Telemetry service the dashboard drives.
        **kwargs: Additional arguments for TelemetryDashboard

    Returns:
        TelemetryDashboard instance
    """
    return TelemetryDashboard(service=service, **kwargs)
