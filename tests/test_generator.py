import asyncio
import random

from cubesat_telemetry.generator import JITTER, GeneratorState
from cubesat_telemetry.packet import FIELDS, ORIENTATION_FIELDS, SEED_DEFAULTS
from cubesat_telemetry.service import TelemetryService


def make_service(interval=1.0):
    return TelemetryService(generator_interval=interval, rng=random.Random(7))


def test_packets_stay_within_jitter_bounds():
    generator = make_service().generator
    for _ in range(200):
        packet = generator.make_packet()
        assert set(packet) == set(FIELDS)
        for name in FIELDS:
            center = 0.0 if name in ORIENTATION_FIELDS else SEED_DEFAULTS[name]
            assert abs(packet[name] - center) <= JITTER[name] * (1 + 1e-9)


def test_tick_goes_through_the_pipeline():
    service = make_service()
    delta = service.generator.tick()

    assert delta.packet_count == 1
    assert delta.orientation is not None
    assert service.orientation.updates == 1
    assert service.audit_log.snapshot()[0].text.startswith("T=")
    assert service.state.value("roll") == delta.changed["roll"]


def test_wire_rendering_carries_orientation():
    wire = make_service().generator.make_packet().to_wire()
    assert wire.startswith("T=")
    assert "ROLL=" in wire


def test_runs_periodically_until_stopped():
    service = make_service(interval=0.01)
    generator = service.generator

    async def scenario():
        generator.start()
        assert generator.state is GeneratorState.RUNNING
        await asyncio.sleep(0.1)
        generator.stop()
        produced = generator.ticks
        await asyncio.sleep(0.05)
        return produced

    produced = asyncio.run(scenario())

    assert produced >= 1
    assert generator.ticks == produced
    assert service.state.packet_count == produced
    assert generator.state is GeneratorState.IDLE


def test_stop_before_first_tick_emits_nothing():
    service = make_service(interval=0.02)
    generator = service.generator

    async def scenario():
        generator.start()
        generator.stop()
        await asyncio.sleep(0.06)

    asyncio.run(scenario())
    assert generator.ticks == 0
    assert service.state.packet_count == 0


def test_start_twice_keeps_one_task():
    service = make_service(interval=0.01)
    generator = service.generator

    async def scenario():
        generator.start()
        first = generator._task
        generator.start()
        assert generator._task is first
        generator.stop()

    asyncio.run(scenario())
