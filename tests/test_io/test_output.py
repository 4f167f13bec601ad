"""
Tests for the periodic run outputs.
"""

import pytest

from ibpm.grid import Grid
from ibpm.io import OutputManager, ForceHistoryWriter, RestartWriter
from ibpm.solvers import State


@pytest.fixture
def state():
    x = State(Grid(8, 8, 1.0, -0.5, -0.5), 2)
    x.f[...] = [1.0, 2.0, 0.5, -0.25]
    return x


def _step(x, n):
    x.timestep = n
    x.time = 0.1 * n


class TestForceHistoryWriter:

    def test_lines(self, state, tmp_path):
        writer = ForceHistoryWriter(tmp_path / "run.force", period=2)
        writer.init(state)
        for n in range(5):
            _step(state, n)
            if writer.is_due(state):
                writer.write(state)
        writer.cleanup()
        lines = (tmp_path / "run.force").read_text().splitlines()
        assert lines == [
            "    0 0.00000e+00 3.00000e+00 2.50000e-01",
            "    2 2.00000e-01 3.00000e+00 2.50000e-01",
            "    4 4.00000e-01 3.00000e+00 2.50000e-01",
        ]

    def test_restarted_run_appends(self, state, tmp_path):
        path = tmp_path / "run.force"
        path.write_text("earlier\n")
        _step(state, 3)
        writer = ForceHistoryWriter(path)
        writer.init(state)
        writer.write(state)
        writer.cleanup()
        assert path.read_text().splitlines()[0] == "earlier"
        assert len(path.read_text().splitlines()) == 2

    def test_write_before_init(self, state, tmp_path):
        with pytest.raises(RuntimeError):
            ForceHistoryWriter(tmp_path / "run.force").write(state)


class TestRestartWriter:

    def test_filename(self, tmp_path):
        writer = RestartWriter(tmp_path / "cyl", period=10, digits=5)
        assert writer.filename(250).name == "cyl00250.bin"
        assert RestartWriter("flow", digits=3).filename(7).name == "flow007.bin"

    def test_callback_and_period(self, state, tmp_path):
        calls = []
        outputs = OutputManager()
        outputs.add_output(RestartWriter(tmp_path / "cyl", period=3, on_write=lambda: calls.append(1)))
        outputs.add_output(ForceHistoryWriter(tmp_path / "cyl.force", period=0))
        outputs.init(state)
        for n in range(7):
            _step(state, n)
            outputs.do_output(state)
        outputs.cleanup()
        assert sorted(p.name for p in tmp_path.glob("cyl*.bin")) == ["cyl00000.bin", "cyl00003.bin", "cyl00006.bin"]
        assert len(calls) == 3
        assert not (tmp_path / "cyl.force").read_text()

    def test_negative_period(self, tmp_path):
        with pytest.raises(ValueError):
            RestartWriter(tmp_path / "cyl", period=-1)
