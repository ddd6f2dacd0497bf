"""Best-arm identification strategies."""

from .kl_lucb import KLLUCB, compute_beta

__all__ = ["KLLUCB", "compute_beta"]
