"""Data Access Layer for Passgate.

Thin repositories over the challenge and credential tables. They flush
but never commit.
"""

from passgate.dal.challenges import ChallengeRepository
from passgate.dal.credentials import CredentialRepository

__all__ = [
    "ChallengeRepository",
    "CredentialRepository",
]
