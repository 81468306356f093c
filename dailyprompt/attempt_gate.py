from __future__ import annotations
import uuid
from dataclasses import dataclass

from .ledger import GuessLedger

MAX_ATTEMPTS = 3


@dataclass(frozen=True)
class AttemptStatus:
    count: int
    next_attempt_number: int

    @property
    def exhausted(self) -> bool:
        return self.next_attempt_number > MAX_ATTEMPTS


class AttemptGate:
    """
    Reports how many guesses a user has made on a challenge.

    It never enforces the ceiling itself; the orchestrator decides, so the
    check stays a side-effect-free query that can run before any costly
    generation or embedding call. CountUnavailable from the ledger is
    propagated unchanged, never read as zero.
    """

    def __init__(self, ledger: GuessLedger):
        self._ledger = ledger

    async def check(self, user_id: str, challenge_id: uuid.UUID) -> AttemptStatus:
        count = await self._ledger.count(user_id, challenge_id)
        return AttemptStatus(count=count, next_attempt_number=count + 1)
