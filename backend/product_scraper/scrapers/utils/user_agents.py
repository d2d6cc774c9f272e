"""Browser identity profiles rotated across new sessions."""

import itertools
import random
from dataclasses import dataclass
from typing import Dict, List


@dataclass(frozen=True)
class IdentityProfile:
    """User agent plus the viewport/locale that plausibly goes with it."""

    user_agent: str
    viewport_width: int = 1366
    viewport_height: int = 768
    locale: str = "en-IN"
    timezone_id: str = "Asia/Kolkata"

    @property
    def viewport(self) -> Dict[str, int]:
        return {"width": self.viewport_width, "height": self.viewport_height}


# Realistic desktop identities: Chrome, Firefox, Safari and Edge on Windows and macOS
IDENTITY_PROFILES: List[IdentityProfile] = [
    # Chrome on Windows
    IdentityProfile(
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
        1920, 1080,
    ),
    IdentityProfile(
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/130.0.0.0 Safari/537.36",
        1366, 768,
    ),
    # Chrome on macOS
    IdentityProfile(
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
        1440, 900,
    ),
    # Firefox on Windows
    IdentityProfile(
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:133.0) Gecko/20100101 Firefox/133.0",
        1536, 864,
    ),
    # Firefox on macOS
    IdentityProfile(
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10.15; rv:133.0) Gecko/20100101 Firefox/133.0",
        1680, 1050,
    ),
    # Safari on macOS
    IdentityProfile(
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/18.1 Safari/605.1.15",
        1440, 900,
    ),
    # Edge on Windows
    IdentityProfile(
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36 Edg/131.0.0.0",
        1920, 1080,
    ),
    # Chrome on Linux (less common but realistic)
    IdentityProfile(
        "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
        1366, 768,
    ),
]

USER_AGENTS: List[str] = [p.user_agent for p in IDENTITY_PROFILES]


class IdentityRotator:
    """Round-robin over a fixed pool of identity profiles.

    The starting position is randomized so separate processes do not
    all open with the same identity.
    """

    def __init__(self, profiles: List[IdentityProfile] = None):
        self._profiles = list(IDENTITY_PROFILES if profiles is None else profiles)
        if not self._profiles:
            raise ValueError("At least one identity profile is required")
        start = random.randrange(len(self._profiles))
        self._cycle = itertools.islice(itertools.cycle(self._profiles), start, None)

    def next(self) -> IdentityProfile:
        return next(self._cycle)


def get_random_user_agent() -> str:
    """Get a random user-agent string from the pool.

    Returns:
        Random user-agent string
    """
    return random.choice(USER_AGENTS)
