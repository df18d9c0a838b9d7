"""
Unit tests for sparksub.utils.misc module.
"""

import pytest
import typer

from sparksub.utils.misc import build_jobs, format_elapsed, parse_weights


class TestParseWeights:

    @pytest.mark.unit
    def test_repeated_and_comma_separated(self):
        assert parse_weights(["storage=2", "compute=1,etl=0.5"]) == {
            "storage": 2.0,
            "compute": 1.0,
            "etl": 0.5,
        }

    @pytest.mark.unit
    def test_empty(self):
        assert parse_weights([]) == {}

    @pytest.mark.unit
    @pytest.mark.parametrize("value", ["storage", "=2", "storage=heavy", "storage=-1"])
    def test_invalid(self, value):
        with pytest.raises(typer.BadParameter):
            parse_weights([value])


class TestBuildJobs:

    @pytest.mark.unit
    def test_pairs_by_position(self):
        jobs = build_jobs(["compute", "storage"], ["pi.py 100", "wc.py /mnt/in"])

        assert [(j.tag, j.program_uri, j.arguments) for j in jobs] == [
            ("compute", "pi.py", ("100",)),
            ("storage", "wc.py", ("/mnt/in",)),
        ]

    @pytest.mark.unit
    def test_default_tag(self):
        jobs = build_jobs([], ["a.py", "b.py"])

        assert [j.tag for j in jobs] == ["compute", "compute"]

    @pytest.mark.unit
    def test_length_mismatch(self):
        with pytest.raises(typer.BadParameter):
            build_jobs(["compute"], ["a.py", "b.py"])

    @pytest.mark.unit
    def test_weights(self):
        jobs = build_jobs(["A", "B"], ["a.py", "b.py"], weights=[2.0, 0.5])

        assert [j.weight for j in jobs] == [2.0, 0.5]

    @pytest.mark.unit
    def test_empty_program(self):
        with pytest.raises(typer.BadParameter, match="Job 1"):
            build_jobs([], ["a.py", "  "])


class TestFormatElapsed:

    @pytest.mark.unit
    def test_ranges(self):
        assert format_elapsed(0.25) == "250 ms"
        assert format_elapsed(12.34) == "12.3s"
        assert format_elapsed(125) == "2m05s"
