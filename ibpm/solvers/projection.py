"""
Projection solvers for the immersed-boundary saddle-point system.

    (I - alpha L) gamma + beta B f = a
    C gamma                        = b

With A = I - alpha L (diagonal in the sine basis) the force solves the Schur
complement system

    M f = C A^{-1} a - b,      M = beta C A^{-1} B

and the circulation follows as gamma = A^{-1} (a - beta B f). M is symmetric
positive semi-definite; it is singular when boundary points coincide.

Reference: Taira & Colonius (2007), J. Comput. Phys. 225, 2118-2137.
"""

from abc import ABC, abstractmethod
from typing import Dict, Optional, Tuple

import numpy as np
import numpy.typing as npt
from loguru import logger
from scipy import linalg
from scipy.sparse.linalg import LinearOperator, cg

NDArrayFloat = npt.NDArray[np.floating]

PROJECTION_KINDS = ("auto", "cholesky", "cg")


class SolverError(RuntimeError):
    """Fatal failure of a projection solve (singular system, no convergence)."""


class ProjectionSolver(ABC):
    """
    Base class: diffusion solve, Schur complement product and the solve
    sequence. Subclasses provide the force solve.

    Parameters
    ----------
    model : NavierStokesModel
    alpha : float
        Implicit diffusion coefficient.
    beta : float
        Force coefficient.
    """

    kind: str = ""

    def __init__(self, model, alpha: float, beta: float):
        self.model = model
        self.alpha = float(alpha)
        self.beta = float(beta)
        inv = 1.0 / (1.0 - self.alpha * model.eigenvalues)
        inv.flags.writeable = False
        self._inv_diffusion = inv
        self._initialized = False

    def __repr__(self) -> str:
        return f"{type(self).__name__}(alpha={self.alpha:g}, beta={self.beta:g})"

    @property
    def num_forces(self) -> int:
        return 2 * self.model.num_points

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def apply_inverse_diffusion(self, a: NDArrayFloat) -> NDArrayFloat:
        """A^{-1} a = (I - alpha L)^{-1} a."""
        model = self.model
        return model.Sinv(model.S(a) * self._inv_diffusion)

    def schur_matvec(self, f: NDArrayFloat) -> NDArrayFloat:
        """M f = beta C A^{-1} B f."""
        model = self.model
        return self.beta * model.C(self.apply_inverse_diffusion(model.B(f)))

    def init(self) -> None:
        """Precompute whatever the force solve needs."""
        self._initialized = True

    def solve(self, a: NDArrayFloat, b: NDArrayFloat,
              f0: Optional[NDArrayFloat] = None) -> Tuple[NDArrayFloat, NDArrayFloat]:
        """
        Solve the saddle-point system.

        Parameters
        ----------
        a : ndarray, shape (nx-1, ny-1)
            Right-hand side of the momentum equation.
        b : ndarray, shape (2 * num_points,)
            Boundary velocities to enforce.
        f0 : ndarray, optional
            Starting guess for the force (used by iterative solvers).

        Returns
        -------
        gamma, f
        """
        if not self._initialized:
            raise RuntimeError(f"{type(self).__name__}.solve() called before init()")
        ainv_a = self.apply_inverse_diffusion(a)
        if self.num_forces == 0:
            return ainv_a, np.zeros(0)
        if b.shape != (self.num_forces,):
            raise ValueError(f"Constraint vector has shape {b.shape}, expected ({self.num_forces},)")

        rhs = self.model.C(ainv_a) - b
        f = self._solve_force(rhs, f0)
        gamma = ainv_a - self.beta * self.apply_inverse_diffusion(self.model.B(f))
        return gamma, f

    @abstractmethod
    def _solve_force(self, rhs: NDArrayFloat, f0: Optional[NDArrayFloat]) -> NDArrayFloat:
        """Solve M f = rhs."""

    # ------------------------------------------------------------------
    # Persistence of the precomputed data (through the timestepper snapshot)
    # ------------------------------------------------------------------

    def state_arrays(self) -> Dict[str, NDArrayFloat]:
        return {}

    def restore_arrays(self, arrays: Dict[str, NDArrayFloat]) -> bool:
        """Restore precomputed data; False means the caller must call init()."""
        return False


class CholeskySolver(ProjectionSolver):
    """
    Direct solver: M is formed column by column and Cholesky-factored once.

    Only valid while the bodies do not move, since M depends on the point
    positions.
    """

    kind = "cholesky"

    # Smallest allowed pivot relative to the largest (squared diagonal of the factor)
    PIVOT_TOLERANCE = 1e-12

    def __init__(self, model, alpha: float, beta: float):
        super().__init__(model, alpha, beta)
        self._factor: Optional[Tuple[NDArrayFloat, bool]] = None

    def init(self) -> None:
        if not self.model.geometry.is_stationary:
            raise SolverError("Cholesky projection requires stationary bodies; use 'cg'")
        nf = self.num_forces
        if nf > 0:
            logger.info(f"Forming Schur complement ({nf} x {nf}) for Cholesky factorization...")
            M = np.empty((nf, nf))
            e = np.zeros(nf)
            for j in range(nf):
                e[j] = 1.0
                M[:, j] = self.schur_matvec(e)
                e[j] = 0.0
            self._factor = self._factorize(0.5 * (M + M.T))
            logger.debug("Cholesky factorization complete")
        super().init()

    def _factorize(self, M: NDArrayFloat) -> Tuple[NDArrayFloat, bool]:
        try:
            c, lower = linalg.cho_factor(M)
        except linalg.LinAlgError as exc:
            raise SolverError(f"Schur complement is not positive definite: {exc}") from exc
        pivots = np.diag(c) ** 2
        if pivots.min() <= self.PIVOT_TOLERANCE * pivots.max():
            raise SolverError(
                f"Schur complement is singular (pivot ratio {pivots.min() / pivots.max():.3e}); "
                "check for coincident boundary points"
            )
        return c, lower

    def _solve_force(self, rhs: NDArrayFloat, f0: Optional[NDArrayFloat]) -> NDArrayFloat:
        return linalg.cho_solve(self._factor, rhs)

    def state_arrays(self) -> Dict[str, NDArrayFloat]:
        if self._factor is None:
            return {}
        return {"cholesky_factor": self._factor[0]}

    def restore_arrays(self, arrays: Dict[str, NDArrayFloat]) -> bool:
        nf = self.num_forces
        if nf == 0:
            self._initialized = True
            return True
        factor = arrays.get("cholesky_factor")
        if factor is None or factor.shape != (nf, nf):
            return False
        # cho_factor returns the upper factor by default
        self._factor = (np.array(factor, dtype=float), False)
        self._initialized = True
        return True


class ConjugateGradientSolver(ProjectionSolver):
    """
    Matrix-free conjugate gradients on M, warm-started from the previous force.

    Parameters
    ----------
    tol : float
        Relative residual tolerance.
    maxiter : int
        Iteration limit; reaching it is a SolverError.
    """

    kind = "cg"

    def __init__(self, model, alpha: float, beta: float,
                 tol: float = 1e-7, maxiter: int = 1000):
        super().__init__(model, alpha, beta)
        if tol <= 0:
            raise ValueError(f"CG tolerance must be positive, got {tol}")
        if maxiter < 1:
            raise ValueError(f"CG maxiter must be at least 1, got {maxiter}")
        self.tol = float(tol)
        self.maxiter = int(maxiter)
        self.last_iterations = 0

    def _solve_force(self, rhs: NDArrayFloat, f0: Optional[NDArrayFloat]) -> NDArrayFloat:
        nf = self.num_forces
        operator = LinearOperator((nf, nf), matvec=self.schur_matvec, dtype=np.float64)
        x0 = f0 if f0 is not None and f0.shape == (nf,) else None

        iterations = 0

        def count(_):
            nonlocal iterations
            iterations += 1

        f, info = cg(operator, rhs, x0=x0, rtol=self.tol, atol=0.0,
                     maxiter=self.maxiter, callback=count)
        self.last_iterations = iterations
        if info > 0:
            raise SolverError(f"CG did not converge in {self.maxiter} iterations (tol={self.tol:g})")
        if info < 0:
            raise SolverError(f"CG breakdown (info={info})")
        logger.trace(f"CG converged in {iterations} iterations")
        return f

    def restore_arrays(self, arrays: Dict[str, NDArrayFloat]) -> bool:
        self._initialized = True
        return True


def resolve_projection_kind(kind: str, geometry) -> str:
    """Map 'auto' to 'cholesky' or 'cg' depending on whether the bodies move."""
    kind = kind.lower()
    if kind not in PROJECTION_KINDS:
        raise ValueError(f"Unknown projection solver: {kind}")
    if kind == "auto":
        return "cholesky" if geometry.is_stationary else "cg"
    return kind


def create_projection_solver(model, alpha: float, beta: float, kind: str = "auto",
                             cg_tol: float = 1e-7, cg_maxiter: int = 1000) -> ProjectionSolver:
    """Construct (but do not initialize) a projection solver."""
    kind = resolve_projection_kind(kind, model.geometry)
    if kind == "cholesky":
        return CholeskySolver(model, alpha, beta)
    return ConjugateGradientSolver(model, alpha, beta, tol=cg_tol, maxiter=cg_maxiter)
