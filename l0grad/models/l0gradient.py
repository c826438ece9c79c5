from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np
from rich import print
from rich.markup import escape

from l0grad.config import L0Config
from l0grad.dataset import merge_channels, quantize, split_channels
from l0grad.errors import FactorizationError
from l0grad.schedule import ContinuationSchedule
from l0grad.shrinkage import compute_gradient, shrink_gradient
from l0grad.solvers import (
    ConjugateGradientSolver,
    LinearSolver,
    SolveResult,
    build_system,
    get_solver,
)
from l0grad.utils import (
    assemble_system,
    build_gradient_matrices,
    field_to_vector,
    vector_to_field,
)


@dataclass(frozen=True)
class SolverContext:
    """Operators shared read-only by every channel of an image of a given size."""

    rows: int
    cols: int
    Gx: object
    Gy: object
    A0: object
    E: object

    @classmethod
    def build(cls, rows: int, cols: int, boundary: str = "dropped"):
        Gx, Gy = build_gradient_matrices(rows, cols, boundary)
        A0, E = assemble_system(Gx, Gy)
        return cls(rows, cols, Gx, Gy, A0, E)


@dataclass
class ChannelState:
    """Buffers owned by a single channel: intensity I, estimate S, auxiliary H, V and the gradient fields."""

    I: np.ndarray
    S: np.ndarray = None
    H: np.ndarray = None
    V: np.ndarray = None
    gx: np.ndarray = None
    gy: np.ndarray = None

    def __post_init__(self):
        self.I = np.asarray(self.I, dtype=np.float64)
        if self.S is None:
            self.S = self.I.copy()
        for name in ("H", "V", "gx", "gy"):
            if getattr(self, name) is None:
                setattr(self, name, np.zeros_like(self.I))

    def reset(self):
        self.S[...] = self.I
        for buffer in (self.H, self.V, self.gx, self.gy):
            buffer.fill(0)


@dataclass
class SolveFailure:
    iteration: int
    channel: int
    beta: float
    message: str


class L0GradientModel:
    def __init__(
        self,
        image: np.ndarray,
        config: L0Config,
        solver: Optional[LinearSolver] = None,
        fallback_solver: Optional[LinearSolver] = None,
    ):
        self.config = config
        self.channels = [ChannelState(c) for c in split_channels(image)]
        rows, cols = self.channels[0].I.shape
        self.context = SolverContext.build(rows, cols, config.boundary)
        self.solver = solver if solver is not None else get_solver(config.exact)
        self.fallback_solver = (
            fallback_solver if fallback_solver is not None else ConjugateGradientSolver()
        )
        self.schedule = ContinuationSchedule.from_config(config)
        self.results: List[np.ndarray] = []
        self.betas: List[float] = []
        self.failures: List[SolveFailure] = []

    @property
    def num_iterations(self) -> int:
        return len(self.results)

    def update_channel(self, channel: ChannelState, beta: float, iteration: int = 0, index: int = 0):
        """One alternating minimization step for a channel: gradient shrinkage followed by the linear solve."""
        ctx = self.context
        compute_gradient(channel.S, channel.gx, channel.gy, self.config.boundary)
        shrink_gradient(channel.gx, channel.gy, self.config.lam, beta, channel.H, channel.V)

        A, b = build_system(
            beta,
            ctx.A0,
            ctx.E,
            ctx.Gx,
            ctx.Gy,
            field_to_vector(channel.I),
            field_to_vector(channel.H),
            field_to_vector(channel.V),
        )
        result = self.solver.solve(A, b)
        if not result.success:
            result = self._handle_failure(result, A, b, beta, iteration, index)
        if result.x is not None:
            channel.S[...] = vector_to_field(result.x, ctx.rows, ctx.cols)
        return result

    def _handle_failure(self, result: SolveResult, A, b, beta, iteration, index) -> SolveResult:
        policy = self.config.on_failure
        message = result.message or f"{self.solver.name} solve failed"
        if policy == "raise":
            raise FactorizationError(
                f"{message} (iteration {iteration}, channel {index}, beta {beta})",
                iteration=iteration,
                channel=index,
                beta=beta,
            )
        self.failures.append(SolveFailure(iteration, index, beta, message))
        print(
            f"[yellow]{escape(message)}[/yellow] (iteration {iteration}, channel {index}, beta {beta}), on_failure={policy}"
        )
        if policy == "fallback":
            fallback = self.fallback_solver.solve(A, b)
            if fallback.success:
                return fallback
            message = fallback.message or f"{self.fallback_solver.name} solve failed"
            self.failures.append(SolveFailure(iteration, index, beta, message))
            print(
                f"[yellow]{escape(message)}[/yellow] (iteration {iteration}, channel {index}, beta {beta}), keeping the previous estimate"
            )
            return SolveResult(None, False, fallback.info, message)
        if policy == "skip":
            return SolveResult(None, False, result.info, message)
        return result

    def snapshot(self) -> np.ndarray:
        return merge_channels([quantize(c.S) for c in self.channels])

    def solve(self, verbose: bool = False) -> List[np.ndarray]:
        """
        Runs the continuation loop and returns one 8-bit snapshot per outer iteration.

        Snapshots of completed iterations stay available in self.results when a
        FactorizationError interrupts the run.
        """
        self.results = []
        self.betas = []
        self.failures = []
        for channel in self.channels:
            channel.reset()
        for count, beta in enumerate(self.schedule):
            for index, channel in enumerate(self.channels):
                self.update_channel(channel, beta, count, index)
            self.betas.append(beta)
            if verbose:
                print(f"iteration #{count} beta: {beta * self.config.kappa}")
            self.results.append(self.snapshot())
        return self.results

    def estimates(self) -> List[np.ndarray]:
        """Current floating point estimates, one per channel."""
        return [c.S.copy() for c in self.channels]


def minimize_l0_gradient(image: np.ndarray, config: L0Config, verbose: bool = False) -> Tuple[List[np.ndarray], L0GradientModel]:
    model = L0GradientModel(image, config)
    return model.solve(verbose=verbose), model
