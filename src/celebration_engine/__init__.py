"""
Celebration Engine - Event-sourced donation compliance and pledge lifecycle

Enforces per-donation, annual and per-election contribution limits and the
annual PAC tip ceiling, and tracks each escrowed donation ("celebration")
through an append-only status ledger until its bill sees action or its
congressional session ends.

Fun fact: Federal contribution limits are counted per election, so a
primary and a general election against the same candidate are two
separate buckets of headroom.
"""

__version__ = "0.1.0"

from celebration_engine.engine import CelebrationEngine  # noqa: E402

__all__ = ["CelebrationEngine", "__version__"]
