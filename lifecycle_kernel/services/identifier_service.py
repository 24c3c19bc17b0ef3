"""
IdentifierService -- collision-free, human-readable identifiers.

Responsibility:
    Mints ``<PREFIX>-<epochMillis>-<n>`` identifiers for activity logs,
    stage ids, return requests, archive records and notifications, and
    random ``R-XXXXXX`` admin removal tokens.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.  Called by every
    service that creates a document.

Invariants enforced:
    - ``n`` comes from a locked counter row per prefix
      (``SELECT ... FOR UPDATE``).  Two identifiers with the same prefix
      never share ``n``, so identifiers are unique even when minted in the
      same millisecond.  Aggregate max+1 is never used.
    - Transactional: a rolled-back transaction returns its counter values.
    - ``R-`` tokens are re-drawn until no admin archive carries them.

Failure modes:
    - IntegrityError: concurrent counter creation race (handled via
      savepoint rollback and re-read).
    - RuntimeError: no free ``R-`` token after MAX_TOKEN_DRAWS draws.
"""

import secrets
from typing import Callable

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from lifecycle_kernel.domain.clock import Clock, SystemClock
from lifecycle_kernel.logging_config import get_logger
from lifecycle_kernel.models.identifier_counter import IdentifierCounter
from lifecycle_kernel.services.base import BaseService

logger = get_logger("services.identifier")


class IdentifierService(BaseService):
    """
    Service for minting identifiers.

    Contract:
        ``next_id(prefix)`` returns a new identifier whose counter part is
        strictly greater than any previously returned for that prefix.

    Non-goals:
        - Does NOT call ``session.commit()``.
    """

    # Well-known prefixes
    ACTIVITY_LOG = "LOG"
    TO_SHIP = "TS"
    TO_RECEIVE = "TR"
    RETURN_REQUEST = "RR"
    ARCHIVE = "ARC"

    MAX_TOKEN_DRAWS = 64

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        token_source: Callable[[int], int] | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._token_source = token_source or secrets.randbits

    def next_value(self, counter_name: str) -> int:
        """
        Allocate the next value of a named counter.

        Postconditions:
            - Returns an integer > 0, strictly greater than any value
              previously returned for ``counter_name``.
            - The counter row stays locked until the transaction ends.
        """
        counter = self._lock_counter(counter_name)

        if counter is None:
            # First use of this counter.  Another worker may create it
            # concurrently; a savepoint keeps the caller's work intact.
            savepoint = self.session.begin_nested()
            try:
                counter = IdentifierCounter(name=counter_name, current_value=1)
                self.session.add(counter)
                self.session.flush()
                savepoint.commit()
                logger.debug(
                    "identifier_allocated",
                    extra={"counter_name": counter_name, "value": 1},
                )
                return 1
            except IntegrityError:
                logger.debug(
                    "identifier_counter_race_retry",
                    extra={"counter_name": counter_name},
                )
                savepoint.rollback()
                counter = self._lock_counter(counter_name)
                if counter is None:
                    raise

        counter.current_value += 1
        self.session.flush()
        logger.debug(
            "identifier_allocated",
            extra={"counter_name": counter_name, "value": counter.current_value},
        )
        return counter.current_value

    def _lock_counter(self, counter_name: str) -> IdentifierCounter | None:
        return self.session.execute(
            select(IdentifierCounter)
            .where(IdentifierCounter.name == counter_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_id(self, prefix: str) -> str:
        """Mint ``<prefix>-<epochMillis>-<n>``."""
        value = self.next_value(prefix)
        return f"{prefix}-{self._clock.epoch_millis()}-{value}"

    def current_value(self, counter_name: str) -> int | None:
        """Current value of a counter without incrementing it."""
        counter = self.session.execute(
            select(IdentifierCounter).where(IdentifierCounter.name == counter_name)
        ).scalar_one_or_none()
        return counter.current_value if counter else None

    def new_remove_token(self, is_taken: Callable[[str], bool]) -> str:
        """
        Draw a random ``R-XXXXXX`` token (six upper-case hex digits).

        ``is_taken`` reports whether a candidate is already in use; taken
        candidates are re-drawn.
        """
        for _ in range(self.MAX_TOKEN_DRAWS):
            candidate = f"R-{self._token_source(24):06X}"
            if not is_taken(candidate):
                return candidate
            logger.info("remove_token_collision", extra={"token": candidate})
        raise RuntimeError(
            f"No free removal token after {self.MAX_TOKEN_DRAWS} draws"
        )
