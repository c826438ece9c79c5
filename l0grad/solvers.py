from dataclasses import dataclass
from typing import Optional, Protocol
import numpy as np
import scipy.sparse as sp
from scipy.sparse.linalg import cg, splu


@dataclass
class SolveResult:
    x: Optional[np.ndarray]
    success: bool
    info: int = 0
    message: str = ""


class LinearSolver(Protocol):
    name: str

    def solve(self, A, b: np.ndarray) -> SolveResult:
        pass


def build_system(beta: float, A0, E, Gx, Gy, I_vec, H_vec, V_vec):
    """Assemble A = beta * A0 + E and b = I + beta * (Gx^T H + Gy^T V)."""
    A = (beta * A0 + E).tocsc()
    b = I_vec + beta * (Gx.T @ H_vec + Gy.T @ V_vec)
    return A, b


class CholeskySolver(LinearSolver):
    """
    Exact sparse solve for symmetric positive definite systems.

    SuperLU is run with a symmetric fill-reducing ordering and without
    off-diagonal pivoting, which makes the factorization the LDL^T form of the
    Cholesky decomposition. A non-positive pivot means A is not numerically
    positive definite and the result is flagged as failed.
    """

    name = "cholesky"

    def solve(self, A, b):
        try:
            factor = splu(
                sp.csc_matrix(A),
                permc_spec="MMD_AT_PLUS_A",
                diag_pivot_thresh=0.0,
                options={"SymmetricMode": True},
            )
        except RuntimeError as e:
            return SolveResult(None, False, -1, f"decomposition failed: {e}")

        x = factor.solve(b)
        pivots = factor.U.diagonal()
        if not np.all(pivots > 0) or not np.all(np.isfinite(x)):
            return SolveResult(x, False, -1, "decomposition failed: matrix is not positive definite")
        return SolveResult(x, True)


class ConjugateGradientSolver(LinearSolver):
    """Conjugate gradient with the library default tolerance and iteration cap."""

    name = "cg"

    def solve(self, A, b):
        x, info = cg(A, b)
        message = "" if info == 0 else f"cg stopped with info={info}"
        return SolveResult(x, info >= 0, info, message)


def get_solver(exact: bool) -> LinearSolver:
    return CholeskySolver() if exact else ConjugateGradientSolver()
