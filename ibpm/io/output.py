"""
Periodic run output: force history and restart snapshots.

Example
-------
>>> outputs = OutputManager()
>>> outputs.add_output(ForceHistoryWriter("out/cylinder.force", period=1))
>>> outputs.add_output(RestartWriter("out/cylinder", period=100))
>>> outputs.init(state)
>>> for n in range(nsteps):
>>>     stepper.advance(state)
>>>     outputs.do_output(state)
>>> outputs.cleanup()
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import IO, Callable, List, Optional, Union

from loguru import logger


class Output(ABC):
    """
    An output written every `period` steps (period 0 disables it).
    """

    def __init__(self, period: int = 1):
        if period < 0:
            raise ValueError(f"Output period must be non-negative, got {period}")
        self.period = int(period)

    def is_due(self, state) -> bool:
        return self.period > 0 and state.timestep % self.period == 0

    def init(self, state) -> None:
        pass

    @abstractmethod
    def write(self, state) -> None: ...

    def cleanup(self) -> None:
        pass


class ForceHistoryWriter(Output):
    """
    Net force on the bodies, one line per output step:

        step  time  fx  fy
    """

    def __init__(self, path: Union[str, Path], period: int = 1):
        super().__init__(period)
        self.path = Path(path)
        self._fh: Optional[IO[str]] = None

    def init(self, state) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        # Continue the history of a restarted run
        mode = 'a' if state.timestep > 0 else 'w'
        self._fh = open(self.path, mode)

    def write(self, state) -> None:
        if self._fh is None:
            raise RuntimeError("ForceHistoryWriter.write() called before init()")
        fx, fy = state.compute_net_force()
        self._fh.write(f"{state.timestep:5d} {state.time:.5e} {fx:.5e} {fy:.5e}\n")
        self._fh.flush()

    def cleanup(self) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None


class RestartWriter(Output):
    """
    State snapshots named `<basename><step>.bin`, the step zero-padded to
    `digits`; `on_write` is called after each snapshot (used to save the
    timestepper history alongside).
    """

    def __init__(self, basename: Union[str, Path], period: int = 100, digits: int = 5,
                 on_write: Optional[Callable[[], None]] = None):
        super().__init__(period)
        self.basename = str(basename)
        self.digits = int(digits)
        self.on_write = on_write

    def filename(self, timestep: int) -> Path:
        return Path(f"{self.basename}{timestep:0{self.digits}d}.bin")

    def write(self, state) -> None:
        path = state.save(self.filename(state.timestep))
        logger.info(f"Wrote restart file {path}")
        if self.on_write is not None:
            self.on_write()


class OutputManager:
    """Dispatches every registered output that is due at the current step."""

    def __init__(self):
        self.outputs: List[Output] = []

    def add_output(self, output: Output) -> None:
        self.outputs.append(output)

    def init(self, state) -> None:
        for output in self.outputs:
            output.init(state)

    def do_output(self, state) -> None:
        for output in self.outputs:
            if output.is_due(state):
                output.write(state)

    def cleanup(self) -> None:
        for output in self.outputs:
            output.cleanup()
