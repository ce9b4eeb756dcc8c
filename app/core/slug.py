"""
Short public slugs for SmartLinks.

Format: [a-z0-9]{6}, one extra character for every 10 collisions
(attempts 0-9 → 6 chars, 10-19 → 7 chars, ...). Bounded: after
`max_attempts` collisions we give up with SlugSpaceExhausted.
"""

import secrets
import string
from collections.abc import Awaitable, Callable

from app.core.exceptions import SlugSpaceExhausted

import structlog

logger = structlog.get_logger()

SLUG_ALPHABET = string.ascii_lowercase + string.digits


class SlugGenerator:
    def __init__(
        self,
        base_length: int = 6,
        max_attempts: int = 50,
        choice: Callable[[str], str] = secrets.choice,
    ) -> None:
        self.base_length = base_length
        self.max_attempts = max_attempts
        self._choice = choice

    def candidate(self, attempt: int) -> str:
        length = self.base_length + attempt // 10
        return "".join(self._choice(SLUG_ALPHABET) for _ in range(length))

    async def generate(self, exists: Callable[[str], Awaitable[bool]]) -> str:
        """Return a slug for which ``exists`` answered False."""
        for attempt in range(self.max_attempts):
            slug = self.candidate(attempt)
            if not await exists(slug):
                if attempt:
                    logger.info("slug_collisions", attempts=attempt, slug_length=len(slug))
                return slug

        logger.error("slug_space_exhausted", attempts=self.max_attempts)
        raise SlugSpaceExhausted(self.max_attempts)
