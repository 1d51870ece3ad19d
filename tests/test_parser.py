import pytest

from cubesat_telemetry.errors import DecodeError, RecordError, UnrecognizedRecord
from cubesat_telemetry.packet import FIELDS, SEED_DEFAULTS, CanonicalPacket
from cubesat_telemetry.parser import parse_kv_record, parse_record


def test_kv_record_carries_only_present_fields():
    packet = parse_record("T=23.5,H=50.0,RSSI=-65")
    assert packet == {"temperature": 23.5, "humidity": 50.0, "rssi": -65.0}


def test_kv_keys_are_case_insensitive_and_accept_aliases():
    packet = parse_record("temp=21,Hum=40,wifi_rssi=-50,Voltage=3.9,gx=1.5")
    assert packet == {
        "temperature": 21.0,
        "humidity": 40.0,
        "wifiRSSI": -50.0,
        "power": 3.9,
        "gyroX": 1.5,
    }


def test_kv_unknown_keys_give_an_empty_packet():
    packet = parse_record("FOO=1,BAR=2")
    assert len(packet) == 0


def test_kv_skips_non_numeric_and_malformed_pairs():
    packet = parse_kv_record("T=abc,H=55,=3,P=,garbage,CO2=420")
    assert packet == {"humidity": 55.0, "co2": 420.0}


def test_kv_orientation_short_keys():
    packet = parse_record("R=10,PITCH=-5,Y=180")
    assert packet == {"roll": 10.0, "pitch": -5.0, "yaw": 180.0}
    assert packet.has_orientation


def test_json_record_fills_missing_fields_with_seed_defaults():
    packet = parse_record('{"temp": 24.1, "roll": 1.5, "pitch": -0.4, "yaw": 90}')
    assert len(packet) == len(FIELDS)
    assert packet["temperature"] == 24.1
    assert packet["humidity"] == SEED_DEFAULTS["humidity"]
    assert packet["yaw"] == 90.0
    assert packet.has_orientation


def test_json_zero_is_a_reading_not_a_missing_value():
    packet = parse_record('{"t": 0, "alt": 0}')
    assert packet["temperature"] == 0.0
    assert packet["altitude"] == 0.0


def test_json_uppercase_p_is_pressure():
    packet = parse_record('{"P": 990.5}')
    assert packet["pressure"] == 990.5
    assert packet["pitch"] == SEED_DEFAULTS["pitch"]


def test_json_first_numeric_alias_wins():
    packet = parse_record('{"t": "n/a", "temp": 19.5, "temperature": 30}')
    assert packet["temperature"] == 19.5


def test_json_booleans_are_not_numbers():
    packet = parse_record('{"temp": true}')
    assert packet["temperature"] == SEED_DEFAULTS["temperature"]


def test_malformed_json_raises_decode_error():
    with pytest.raises(DecodeError) as exc_info:
        parse_record('{"temp": }')
    assert exc_info.value.record == '{"temp": }'
    assert isinstance(exc_info.value, ValueError)


def test_text_without_json_or_equals_is_unrecognized():
    with pytest.raises(UnrecognizedRecord) as exc_info:
        parse_record("hello ground station")
    assert isinstance(exc_info.value, RecordError)
    assert exc_info.value.record == "hello ground station"


def test_json_array_is_unrecognized():
    with pytest.raises(UnrecognizedRecord):
        parse_record("[1, 2, 3]")


def test_wire_rendering_parses_back_to_the_same_fields():
    packet = CanonicalPacket(
        {"temperature": 23.5, "rssi": -65.0, "power": 3.62, "roll": 12.5, "ber": 1.2e-6}
    )
    assert parse_kv_record(packet.to_wire()) == packet


def test_packet_rejects_unknown_field_names():
    with pytest.raises(ValueError):
        CanonicalPacket({"bogus": 1.0})


def test_json_integer_beyond_float_range_falls_back_to_seed():
    packet = parse_record('{"temp": 1' + "0" * 320 + ', "hum": 40}')
    assert packet["temperature"] == SEED_DEFAULTS["temperature"]
    assert packet["humidity"] == 40.0
