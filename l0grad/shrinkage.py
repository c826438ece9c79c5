import numpy as np
from l0grad.utils import BOUNDARY_POLICIES


def compute_gradient(S: np.ndarray, gx: np.ndarray, gy: np.ndarray, boundary="dropped"):
    """
    Forward differences of S written in place into gx and gy.

    With the "dropped" and "wrapped" policies only entries with j < rows-1 and i < cols-1 are
    written, the last row and column of both buffers keep their previous values.
    With "neumann" the full fields are recomputed and the gradient across the
    boundary (last column of gx, last row of gy) is zero.
    """
    if boundary in ("dropped", "wrapped"):
        gx[:-1, :-1] = S[:-1, :-1] - S[:-1, 1:]
        gy[:-1, :-1] = S[:-1, :-1] - S[1:, :-1]
    elif boundary == "neumann":
        gx[:, :-1] = S[:, :-1] - S[:, 1:]
        gx[:, -1] = 0
        gy[:-1, :] = S[:-1, :] - S[1:, :]
        gy[-1, :] = 0
    else:
        raise ValueError(f"Unknown boundary policy: {boundary}, expected one of {BOUNDARY_POLICIES}")
    return gx, gy


def shrink_gradient(gx, gy, lam: float, beta: float, H: np.ndarray, V: np.ndarray):
    """
    Closed form minimizer of the decoupled per-pixel L0 subproblem.

    Pixels with gx^2 + gy^2 < lam / beta are suppressed (H = V = 0), the rest
    pass through unchanged (H = gx, V = gy). H and V are overwritten in place.
    """
    small = gx**2 + gy**2 < lam / beta
    np.copyto(H, np.where(small, 0.0, gx))
    np.copyto(V, np.where(small, 0.0, gy))
    return H, V
