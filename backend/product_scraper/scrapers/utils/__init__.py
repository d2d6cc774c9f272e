"""Scraper utilities for pacing, identity rotation, and data normalization.

SessionPool and RetryController live in their own modules
(session_pool, retry) and are imported from there.
"""

from .rate_limiter import DomainPacer
from .user_agents import (
    IDENTITY_PROFILES,
    USER_AGENTS,
    IdentityProfile,
    IdentityRotator,
    get_random_user_agent,
)
from .normalizer import (
    PriceNormalizer,
    last_path_segment,
    normalize_url,
)


__all__ = [
    # Pacing
    "DomainPacer",
    # Identities
    "IDENTITY_PROFILES",
    "USER_AGENTS",
    "IdentityProfile",
    "IdentityRotator",
    "get_random_user_agent",
    # Normalization
    "PriceNormalizer",
    "last_path_segment",
    "normalize_url",
]
