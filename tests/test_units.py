"""Tests for wire/natural unit conversion."""

from __future__ import annotations

import pytest

from rtlsdr_control.protocol.units import (
    decode_if_gain,
    encode_if_gain,
    from_wire,
    from_wire_value,
    if_gain_stage,
    round_half_up,
    to_wire,
)


class TestRoundHalfUp:
    """Tests for round_half_up."""

    @pytest.mark.parametrize(
        "value,expected",
        [(0.4, 0), (0.5, 1), (1.5, 2), (2.5, 3), (-0.5, 0), (-1.5, -1), (-1.6, -2)],
    )
    def test_halves_round_up(self, value: float, expected: int) -> None:
        """Halves go towards positive infinity, unlike round()."""
        assert round_half_up(value) == expected


class TestToWire:
    """Tests for natural -> wire conversion."""

    def test_frequency_mhz_to_hz(self) -> None:
        """Frequency is given in MHz and sent in Hz."""
        assert to_wire("frequency", 166.376) == 166_376_000

    def test_frequency_rounds(self) -> None:
        """Sub-Hz fractions are rounded."""
        assert to_wire("frequency", 100.0000004) == 100_000_000
        assert to_wire("frequency", 100.0000006) == 100_000_001

    def test_tuner_gain_tenths(self) -> None:
        """Tuner gain is sent in tenths of a dB."""
        assert to_wire("tuner_gain", 10.5) == 105
        assert to_wire("tuner_gain", 49.6) == 496

    def test_if_gain_packs_stage(self) -> None:
        """IF gain carries the stage in the upper 16 bits."""
        assert to_wire("if_gain3", 6.0) == (3 << 16) | 60

    def test_negative_if_gain(self) -> None:
        """Negative IF gains use 16-bit two's complement."""
        assert to_wire("if_gain1", -3.0) == (1 << 16) | 0xFFE2

    def test_unitless_passthrough(self) -> None:
        """Parameters without units are rounded integers."""
        assert to_wire("gain_mode", 1) == 1
        assert to_wire("freq_correction", 2.5) == 3
        assert to_wire("streaming", 0) == 0


class TestIfGain:
    """Tests for IF gain stage packing."""

    def test_stage_from_name(self) -> None:
        """Stage number comes from the parameter name."""
        assert if_gain_stage("if_gain1") == 1
        assert if_gain_stage("if_gain6") == 6

    def test_encode(self) -> None:
        """Stage and tenths of a dB are OR-ed together."""
        assert encode_if_gain(2, 1.5) == 0x0002000F

    def test_decode_signed(self) -> None:
        """Lower half is decoded as signed."""
        assert decode_if_gain((4 << 16) | 0xFFE2) == (4, -3.0)
        assert decode_if_gain((5 << 16) | 90) == (5, 9.0)


class TestFromWire:
    """Tests for wire -> natural conversion of settings replies."""

    def test_frequency_hz_to_mhz(self) -> None:
        """Frequency is reported in Hz and published in MHz."""
        assert from_wire_value("frequency", 166_376_000) == pytest.approx(166.376)

    def test_gain_tenths_to_db(self) -> None:
        """Tuner gain is reported in tenths of a dB."""
        assert from_wire_value("tuner_gain", 105) == pytest.approx(10.5)

    def test_non_numeric_passthrough(self) -> None:
        """Strings, booleans and None are left alone."""
        assert from_wire_value("frequency", "n/a") == "n/a"
        assert from_wire_value("tuner_gain", True) is True
        assert from_wire_value("frequency", None) is None

    def test_full_snapshot(self) -> None:
        """Every field of a reply is converted by name."""
        snapshot = from_wire(
            {"frequency": 166_376_000, "tuner_gain": 105, "rate": 240_000, "tuner": "R820T"}
        )

        assert snapshot["frequency"] == pytest.approx(166.376)
        assert snapshot["tuner_gain"] == pytest.approx(10.5)
        assert snapshot["rate"] == 240_000
        assert snapshot["tuner"] == "R820T"

    def test_round_trip_frequency(self) -> None:
        """A frequency survives conversion to wire units and back."""
        assert from_wire_value("frequency", to_wire("frequency", 433.92)) == pytest.approx(433.92)

    @pytest.mark.parametrize("gain_db", [0.0, 0.04, 9.96, 10.5, 28.0, 49.6])
    def test_round_trip_tuner_gain(self, gain_db: float) -> None:
        """Tuner gain comes back within the 0.1 dB wire resolution."""
        wire = to_wire("tuner_gain", gain_db)
        assert abs(from_wire_value("tuner_gain", wire) - gain_db) <= 0.05 + 1e-9

    @pytest.mark.parametrize("stage", [1, 2, 3, 4, 5, 6])
    @pytest.mark.parametrize("gain_db", [-4.7, -0.1, 0.0, 3.0, 12.5])
    def test_round_trip_if_gain(self, stage: int, gain_db: float) -> None:
        """Every IF stage keeps its number and signed gain."""
        decoded_stage, decoded_gain = decode_if_gain(encode_if_gain(stage, gain_db))

        assert decoded_stage == stage
        assert decoded_gain == pytest.approx(gain_db)
