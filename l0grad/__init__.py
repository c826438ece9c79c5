"""
L0 gradient minimization (l0grad) package.

This package provides an edge-preserving smoothing solver that minimizes the L0 norm
of the image gradient by alternating minimization under a continuation schedule.
"""

__version__ = "0.1.0"
__all__ = ["utils", "shrinkage", "solvers", "schedule", "config", "dataset", "models"]
