from .l0gradient import (
    ChannelState,
    L0GradientModel,
    SolveFailure,
    SolverContext,
    minimize_l0_gradient,
)
