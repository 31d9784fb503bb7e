"""Lending policy: borrow cap, loan period, renewal rules, fine rate."""

from .models import Policy
from .schemas import DEFAULT_POLICY, PolicyResponse, PolicyUpdate, PolicyValues
from .store import PolicyStore, load_policy

__all__ = [
    "DEFAULT_POLICY",
    "Policy",
    "PolicyResponse",
    "PolicyStore",
    "PolicyUpdate",
    "PolicyValues",
    "load_policy",
]
