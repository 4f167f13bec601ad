"""
Tests for immersed-boundary geometry: file parsing, bodies and motions.
"""

import pytest
import numpy as np
from numpy.testing import assert_allclose

from ibpm.grid import (
    Geometry, GeometryError, RigidBody, FixedPosition, TranslatingMotion, PitchPlunge,
)


class TestGeometryFile:

    def test_parse_bodies(self, tmp_path):
        (tmp_path / "plate.pts").write_text("2\n0.0 0.1\n0.0 0.2\n")
        text = """
        # two bodies
        body Cylinder
            circle 0 0 0.5 8    # eight points
        end
        body Plate
            line -0.5 0 0.5 0 5
            point 1 1
            raw plate.pts
            motion translation -1 0
        end
        """
        path = tmp_path / "two.geom"
        path.write_text(text)
        geom = Geometry.load(path)

        assert [b.name for b in geom.bodies] == ["Cylinder", "Plate"]
        assert geom.num_points == 8 + 5 + 1 + 2
        assert not geom.is_stationary
        x, y = geom.points()
        assert x.shape == (16,)
        assert_allclose([x[0], y[0]], [0.5, 0.0], atol=1e-15)
        assert_allclose([x[-1], y[-1]], [0.0, 0.2])

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            Geometry.load(tmp_path / "nope.geom")

    @pytest.mark.parametrize("text,message", [
        ("circle 0 0 1 4", "outside of a body"),
        ("body A\n circle 0 0 1\nend", "expected 4 values"),
        ("body A\n line 0 0 1 1 2.5\nend", "integer"),
        ("body A\n spiral 1\nend", "unknown command"),
        ("body A\n motion wobble 1\nend", "unknown motion"),
        ("body A\n point 0 0\n", "missing 'end'"),
        ("body A\nbody B\nend", "missing 'end'"),
        ("body A\n raw missing.pts\nend", "not found"),
    ])
    def test_syntax_errors(self, text, message):
        with pytest.raises(GeometryError, match=message):
            Geometry.from_text(text)

    def test_error_reports_line(self):
        with pytest.raises(GeometryError, match=r"<string>:3"):
            Geometry.from_text("body A\n point 0 0\n point x 0\nend")


class TestBodies:

    def test_velocity_vector_layout(self):
        body = RigidBody("Moving", motion=TranslatingMotion(2.0, -1.0))
        body.add_line(0.0, 0.0, 1.0, 0.0, 3)
        geom = Geometry([body])
        geom.move_bodies(0.5)
        assert_allclose(geom.velocities(), [2.0, 2.0, 2.0, -1.0, -1.0, -1.0])
        x, y = geom.points()
        assert_allclose(x, [1.0, 1.5, 2.0])
        assert_allclose(y, [-0.5, -0.5, -0.5])

    def test_revision_increases_on_move(self):
        geom = Geometry([RigidBody(points=np.array([[0.0, 0.0]]))])
        r0 = geom.revision
        geom.move_bodies(1.0)
        assert geom.revision > r0
        assert geom.time == 1.0

    def test_fixed_rotation(self):
        body = RigidBody(points=np.array([[1.0, 0.0]]), motion=FixedPosition(0.0, 0.0, np.pi / 2))
        body.move(3.0)
        assert_allclose(body.points, [[0.0, 1.0]], atol=1e-15)
        assert_allclose(body.velocities, [[0.0, 0.0]])

    def test_pitching_velocity_is_rigid_rotation(self):
        motion = PitchPlunge(0.2, 0.5, 0.0, 0.0)
        body = RigidBody(points=np.array([[1.0, 0.0], [-1.0, 0.0]]), motion=motion)
        body.move(0.0)
        thetadot = 0.2 * 2.0 * np.pi * 0.5
        assert_allclose(body.velocities, [[0.0, thetadot], [0.0, -thetadot]], atol=1e-15)

    def test_pitch_plunge_stationary_only_without_amplitude(self):
        assert PitchPlunge(0.0, 1.0, 0.0, 1.0).is_stationary
        assert not PitchPlunge(0.0, 1.0, 0.1, 1.0).is_stationary

    def test_invalid_shapes(self):
        body = RigidBody()
        with pytest.raises(GeometryError):
            body.add_line(0, 0, 1, 1, 1)
        with pytest.raises(GeometryError):
            body.add_circle(0, 0, -1.0, 10)

    def test_empty_geometry(self):
        geom = Geometry()
        assert geom.num_points == 0
        assert geom.is_stationary
        assert geom.velocities().shape == (0,)

    def test_digest_tracks_point_positions(self):
        def plate(y, motion=None):
            body = RigidBody("Plate", motion=motion)
            body.add_line(-0.5, y, 0.5, y, 5)
            return Geometry([body])

        reference = plate(0.0)
        assert plate(0.0).digest() == reference.digest()
        assert plate(0.1).digest() != reference.digest()
        assert plate(0.0, FixedPosition(0.0, 0.2, 0.0)).digest() != reference.digest()
        # Moving the bodies does not change what they are
        moved = plate(0.0, TranslatingMotion(1.0, 0.0))
        before = moved.digest()
        moved.move_bodies(2.0)
        assert moved.digest() == before
