"""
Error taxonomy shared by the keyfreq modules.

Only conditions the caller must act on are exceptions. A stale lock is
healed in place and a missing store reads as empty, so neither is raised.
"""


class KeyfreqError(Exception):
    """Base class for every keyfreq failure surfaced to callers."""
    pass
