"""
Immersed-boundary geometry: rigid bodies described by Lagrangian points.

Geometry files use a small line-oriented syntax (``#`` starts a comment):

    body Cylinder
        circle 0 0 0.5 100          # xc yc radius npoints
        center 0 0                  # reference point for rotation
        motion fixed 0 0 0          # x y theta
    end
    body Plate
        line -0.5 0 0.5 0 40        # x1 y1 x2 y2 npoints
        point 1 1                   # single point
        raw plate.pts               # file: count, then "x y" per line
        motion translation -1 0     # vx vy
        motion pitchplunge 0.1 0.5 0.2 0.5   # pitch amp, pitch freq, plunge amp, plunge freq
    end
"""

import hashlib
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional, Tuple, Union

import numpy as np
import numpy.typing as npt
from loguru import logger

NDArrayFloat = npt.NDArray[np.floating]


class GeometryError(ValueError):
    """Raised for malformed geometry input."""


# =============================================================================
# Motions
# =============================================================================

class Motion(ABC):
    """Rigid-body motion: displacement (x, y, theta) and its rate."""

    @property
    @abstractmethod
    def is_stationary(self) -> bool: ...

    @abstractmethod
    def transformation(self, time: float) -> Tuple[float, float, float]:
        """Displacement (x, y, theta) at `time`."""

    @abstractmethod
    def velocity(self, time: float) -> Tuple[float, float, float]:
        """Rate of displacement (xdot, ydot, thetadot) at `time`."""


class FixedPosition(Motion):
    """Body held at a constant offset and angle."""

    def __init__(self, x: float = 0.0, y: float = 0.0, theta: float = 0.0):
        self.x, self.y, self.theta = float(x), float(y), float(theta)

    @property
    def is_stationary(self) -> bool:
        return True

    def transformation(self, time: float) -> Tuple[float, float, float]:
        return self.x, self.y, self.theta

    def velocity(self, time: float) -> Tuple[float, float, float]:
        return 0.0, 0.0, 0.0


class TranslatingMotion(Motion):
    """Translation at constant velocity, starting from the reference position at t = 0."""

    def __init__(self, vx: float, vy: float):
        self.vx, self.vy = float(vx), float(vy)

    @property
    def is_stationary(self) -> bool:
        return self.vx == 0.0 and self.vy == 0.0

    def transformation(self, time: float) -> Tuple[float, float, float]:
        return self.vx * time, self.vy * time, 0.0

    def velocity(self, time: float) -> Tuple[float, float, float]:
        return self.vx, self.vy, 0.0


class PitchPlunge(Motion):
    """
    Sinusoidal pitching about the body center combined with vertical plunging.

        theta(t) = A_p sin(2 pi f_p t),   y(t) = A_h sin(2 pi f_h t)
    """

    def __init__(self, pitch_amplitude: float, pitch_frequency: float,
                 plunge_amplitude: float, plunge_frequency: float):
        self.pitch_amplitude = float(pitch_amplitude)
        self.pitch_frequency = float(pitch_frequency)
        self.plunge_amplitude = float(plunge_amplitude)
        self.plunge_frequency = float(plunge_frequency)

    @property
    def is_stationary(self) -> bool:
        return self.pitch_amplitude == 0.0 and self.plunge_amplitude == 0.0

    def transformation(self, time: float) -> Tuple[float, float, float]:
        wp = 2.0 * np.pi * self.pitch_frequency
        wh = 2.0 * np.pi * self.plunge_frequency
        return (0.0,
                self.plunge_amplitude * np.sin(wh * time),
                self.pitch_amplitude * np.sin(wp * time))

    def velocity(self, time: float) -> Tuple[float, float, float]:
        wp = 2.0 * np.pi * self.pitch_frequency
        wh = 2.0 * np.pi * self.plunge_frequency
        return (0.0,
                self.plunge_amplitude * wh * np.cos(wh * time),
                self.pitch_amplitude * wp * np.cos(wp * time))


# =============================================================================
# Bodies
# =============================================================================

class RigidBody:
    """Set of points moving together; reference coordinates are those at zero displacement."""

    def __init__(self, name: str = "body",
                 points: Optional[NDArrayFloat] = None,
                 center: Tuple[float, float] = (0.0, 0.0),
                 motion: Optional[Motion] = None):
        self.name = name
        self._ref = np.zeros((0, 2)) if points is None else np.asarray(points, dtype=float).reshape(-1, 2)
        self.center = (float(center[0]), float(center[1]))
        self.motion = motion if motion is not None else FixedPosition()
        self._points = self._ref.copy()
        self._velocities = np.zeros_like(self._ref)

    @property
    def num_points(self) -> int:
        return self._ref.shape[0]

    @property
    def is_stationary(self) -> bool:
        return self.motion.is_stationary

    @property
    def reference_points(self) -> NDArrayFloat:
        return self._ref

    @property
    def points(self) -> NDArrayFloat:
        return self._points

    @property
    def velocities(self) -> NDArrayFloat:
        return self._velocities

    def add_point(self, x: float, y: float) -> None:
        self.add_points(np.array([[x, y]]))

    def add_points(self, points: NDArrayFloat) -> None:
        points = np.asarray(points, dtype=float).reshape(-1, 2)
        self._ref = np.vstack([self._ref, points])
        self._points = self._ref.copy()
        self._velocities = np.zeros_like(self._ref)

    def add_line(self, x1: float, y1: float, x2: float, y2: float, n: int) -> None:
        if n < 2:
            raise GeometryError(f"A line needs at least 2 points, got {n}")
        s = np.linspace(0.0, 1.0, n)
        self.add_points(np.column_stack([x1 + s * (x2 - x1), y1 + s * (y2 - y1)]))

    def add_circle(self, xc: float, yc: float, radius: float, n: int) -> None:
        if n < 1 or radius <= 0:
            raise GeometryError(f"Invalid circle: radius={radius}, points={n}")
        theta = 2.0 * np.pi * np.arange(n) / n
        self.add_points(np.column_stack([xc + radius * np.cos(theta), yc + radius * np.sin(theta)]))

    def move(self, time: float) -> None:
        """Place the points at their position at `time` and store their velocities."""
        dx, dy, theta = self.motion.transformation(time)
        vx, vy, omega = self.motion.velocity(time)
        xc, yc = self.center
        c, s = np.cos(theta), np.sin(theta)
        rx = self._ref[:, 0] - xc
        ry = self._ref[:, 1] - yc
        # Rotated offsets from the (displaced) center
        ox = c * rx - s * ry
        oy = s * rx + c * ry
        self._points = np.column_stack([xc + dx + ox, yc + dy + oy])
        self._velocities = np.column_stack([vx - omega * oy, vy + omega * ox])


# =============================================================================
# Geometry
# =============================================================================

class Geometry:
    """
    Collection of rigid bodies.

    Boundary vectors (velocities, forces) are laid out as all x-components
    followed by all y-components. `revision` increases every time the bodies
    move so that cached operators know when to refresh.
    """

    def __init__(self, bodies: Optional[List[RigidBody]] = None):
        self.bodies: List[RigidBody] = list(bodies) if bodies is not None else []
        self._revision = 0
        self._time: Optional[float] = None

    def __repr__(self) -> str:
        return f"Geometry({len(self.bodies)} bodies, {self.num_points} points)"

    @property
    def revision(self) -> int:
        return self._revision

    @property
    def time(self) -> Optional[float]:
        """Time the bodies were last moved to (None if never moved)."""
        return self._time

    @property
    def num_points(self) -> int:
        return sum(b.num_points for b in self.bodies)

    @property
    def is_stationary(self) -> bool:
        return all(b.is_stationary for b in self.bodies)

    def add_body(self, body: RigidBody) -> None:
        self.bodies.append(body)
        self._revision += 1

    def digest(self) -> str:
        """SHA-1 of the body points, rotation centers and initial displacements."""
        sha = hashlib.sha1()
        for body in self.bodies:
            sha.update(np.ascontiguousarray(body.reference_points, dtype="<f8").tobytes())
            sha.update(np.array(body.center, dtype="<f8").tobytes())
            sha.update(np.array(body.motion.transformation(0.0), dtype="<f8").tobytes())
        return sha.hexdigest()

    def points(self) -> Tuple[NDArrayFloat, NDArrayFloat]:
        """Current point coordinates (x, y)."""
        if not self.bodies:
            return np.zeros(0), np.zeros(0)
        pts = np.vstack([b.points for b in self.bodies])
        return pts[:, 0].copy(), pts[:, 1].copy()

    def velocities(self) -> NDArrayFloat:
        """Current point velocities as a boundary vector of length 2 * num_points."""
        if not self.bodies:
            return np.zeros(0)
        vel = np.vstack([b.velocities for b in self.bodies])
        return np.concatenate([vel[:, 0], vel[:, 1]])

    def move_bodies(self, time: float) -> None:
        """Move every body to its position at `time`."""
        for body in self.bodies:
            body.move(time)
        self._time = float(time)
        self._revision += 1

    # ------------------------------------------------------------------
    # File input
    # ------------------------------------------------------------------

    @classmethod
    def load(cls, path: Union[str, Path]) -> "Geometry":
        """
        Read a geometry file.

        Raises
        ------
        FileNotFoundError
            If the file does not exist.
        GeometryError
            On any syntax error.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Geometry file not found: {path}")
        geom = cls.from_text(path.read_text(), base_dir=path.parent, source=str(path))
        logger.info(f"Read geometry from {path}: {len(geom.bodies)} bodies, {geom.num_points} points")
        return geom

    @classmethod
    def from_text(cls, text: str, base_dir: Union[str, Path] = ".", source: str = "<string>") -> "Geometry":
        geom = cls()
        body: Optional[RigidBody] = None

        for lineno, raw in enumerate(text.splitlines(), start=1):
            tokens = raw.split('#', 1)[0].split()
            if not tokens:
                continue
            cmd, args = tokens[0].lower(), tokens[1:]
            where = f"{source}:{lineno}"

            if cmd == 'body':
                if body is not None:
                    raise GeometryError(f"{where}: 'body' inside body '{body.name}' (missing 'end')")
                body = RigidBody(name=" ".join(args) or f"body{len(geom.bodies)}")
                continue
            if body is None:
                raise GeometryError(f"{where}: '{cmd}' outside of a body block")

            try:
                if cmd == 'end':
                    geom.add_body(body)
                    body = None
                elif cmd == 'point':
                    x, y = _floats(args, 2)
                    body.add_point(x, y)
                elif cmd == 'line':
                    x1, y1, x2, y2, n = _floats(args, 5)
                    body.add_line(x1, y1, x2, y2, _int(n))
                elif cmd == 'circle':
                    xc, yc, r, n = _floats(args, 4)
                    body.add_circle(xc, yc, r, _int(n))
                elif cmd == 'raw':
                    if len(args) != 1:
                        raise GeometryError("expected a single file name")
                    body.add_points(_read_raw_points(Path(base_dir) / args[0]))
                elif cmd == 'center':
                    body.center = tuple(_floats(args, 2))
                elif cmd == 'motion':
                    body.motion = _parse_motion(args)
                else:
                    raise GeometryError(f"unknown command '{cmd}'")
            except GeometryError as exc:
                raise GeometryError(f"{where}: {exc}") from None

        if body is not None:
            raise GeometryError(f"{source}: body '{body.name}' is missing 'end'")

        # Initial placement
        geom.move_bodies(0.0)
        return geom


def _floats(args: List[str], count: int) -> List[float]:
    if len(args) != count:
        raise GeometryError(f"expected {count} values, got {len(args)}")
    try:
        return [float(a) for a in args]
    except ValueError as exc:
        raise GeometryError(str(exc)) from None


def _int(value: float) -> int:
    if value != int(value):
        raise GeometryError(f"expected an integer, got {value}")
    return int(value)


def _parse_motion(args: List[str]) -> Motion:
    if not args:
        raise GeometryError("motion type missing")
    kind, params = args[0].lower(), args[1:]
    if kind == 'fixed':
        return FixedPosition(*_floats(params, 3))
    if kind == 'translation':
        return TranslatingMotion(*_floats(params, 2))
    if kind == 'pitchplunge':
        return PitchPlunge(*_floats(params, 4))
    raise GeometryError(f"unknown motion '{kind}'")


def _read_raw_points(path: Path) -> NDArrayFloat:
    if not path.exists():
        raise GeometryError(f"raw point file not found: {path}")
    tokens = path.read_text().split()
    try:
        n = int(tokens[0])
        values = np.array([float(t) for t in tokens[1:1 + 2 * n]])
    except (IndexError, ValueError) as exc:
        raise GeometryError(f"malformed raw point file {path}: {exc}") from None
    if values.size != 2 * n:
        raise GeometryError(f"raw point file {path} declares {n} points but holds {values.size // 2}")
    return values.reshape(n, 2)
