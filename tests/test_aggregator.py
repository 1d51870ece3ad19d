from fakes import FakeClock

from cubesat_telemetry.aggregator import PacketAggregator
from cubesat_telemetry.packet import SEED_DEFAULTS, CanonicalPacket
from cubesat_telemetry.sinks import SinkHub, TelemetrySink
from cubesat_telemetry.state import TelemetryState


class RecordingSink(TelemetrySink):
    def __init__(self, fields=None):
        self.fields = fields
        self.updates = []
        self.orientations = []

    def on_field_update(self, name, value):
        self.updates.append((name, value))

    def on_orientation_update(self, roll, pitch, yaw):
        self.orientations.append((roll, pitch, yaw))


class BrokenSink(TelemetrySink):
    def on_field_update(self, name, value):
        raise RuntimeError("display crashed")


def make_aggregator(*sinks):
    clock = FakeClock()
    hub = SinkHub()
    for sink in sinks:
        hub.subscribe(sink)
    state = TelemetryState()
    return PacketAggregator(state, hub, clock), state, clock


def test_first_packet_counts_without_a_rate():
    aggregator, state, _ = make_aggregator()
    delta = aggregator.apply(CanonicalPacket({"temperature": 25.0}))
    assert delta.packet_count == 1
    assert delta.data_rate is None
    assert state.data_rate == 0.0
    assert state.value("temperature") == 25.0
    assert state.value("humidity") == SEED_DEFAULTS["humidity"]


def test_rate_is_inverse_of_inter_arrival_time():
    aggregator, state, clock = make_aggregator()
    aggregator.apply(CanonicalPacket({"temperature": 25.0}))
    clock.advance(0.5)
    delta = aggregator.apply(CanonicalPacket({"temperature": 25.5}))
    assert delta.data_rate == 2.0
    assert state.data_rate == 2.0
    assert state.packet_count == 2


def test_zero_elapsed_time_keeps_previous_rate():
    aggregator, state, clock = make_aggregator()
    aggregator.apply(CanonicalPacket({}))
    clock.advance(0.25)
    aggregator.apply(CanonicalPacket({}))
    delta = aggregator.apply(CanonicalPacket({}))
    assert delta.data_rate is None
    assert state.data_rate == 4.0
    assert state.packet_count == 3


def test_reset_starts_a_fresh_rate_window_and_keeps_values():
    aggregator, state, clock = make_aggregator()
    aggregator.apply(CanonicalPacket({"co2": 800.0}))
    clock.advance(1.0)
    aggregator.apply(CanonicalPacket({"co2": 810.0}))

    aggregator.reset()
    assert state.packet_count == 0
    assert state.data_rate == 0.0
    assert state.last_packet_time is None
    assert state.value("co2") == 810.0

    clock.advance(0.1)
    delta = aggregator.apply(CanonicalPacket({"co2": 820.0}))
    assert delta.packet_count == 1
    assert delta.data_rate is None


def test_field_updates_respect_sink_interest():
    everything = RecordingSink()
    charts = RecordingSink(fields=frozenset({"temperature"}))
    aggregator, _, _ = make_aggregator(everything, charts)

    aggregator.apply(CanonicalPacket({"temperature": 20.0, "humidity": 45.0}))

    assert sorted(everything.updates) == [("humidity", 45.0), ("temperature", 20.0)]
    assert charts.updates == [("temperature", 20.0)]


def test_orientation_only_when_all_three_axes_present():
    sink = RecordingSink()
    aggregator, state, _ = make_aggregator(sink)

    aggregator.apply(CanonicalPacket({"roll": 5.0, "pitch": 3.0}))
    assert sink.orientations == []
    assert state.value("roll") == 5.0

    delta = aggregator.apply(CanonicalPacket({"roll": 5.0, "pitch": 3.0, "yaw": 45.0}))
    assert delta.orientation == (5.0, 3.0, 45.0)
    assert sink.orientations == [(5.0, 3.0, 45.0)]


def test_failing_sink_does_not_stop_fan_out(caplog):
    good = RecordingSink()
    aggregator, state, _ = make_aggregator(BrokenSink(), good)

    aggregator.apply(CanonicalPacket({"temperature": 30.0}))

    assert good.updates == [("temperature", 30.0)]
    assert state.packet_count == 1
    assert "display crashed" in caplog.text


def test_empty_packet_counts_and_advances_the_clock():
    sink = RecordingSink()
    aggregator, state, clock = make_aggregator(sink)
    aggregator.apply(CanonicalPacket({}))
    clock.advance(2.0)
    delta = aggregator.apply(CanonicalPacket({}))
    assert delta.changed == {}
    assert delta.data_rate == 0.5
    assert state.packet_count == 2
    assert sink.updates == []
