# OTP challenges
# Codes themselves are generated, stored and expired by Supabase Auth; the
# challenge below is local bookkeeping of where a flow stands. It is
# process-local like the rate limiter, so another instance (or a restart)
# simply sees a freshly sent challenge.

import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Optional, Tuple

from authbridge.modules.otp.identifiers import Identifier, IdentifierKind


class OtpChannel(str, Enum):
    EMAIL = "email"
    SMS = "sms"

    @classmethod
    def for_identifier(cls, identifier: Identifier) -> "OtpChannel":
        return cls.EMAIL if identifier.kind == IdentifierKind.EMAIL else cls.SMS


class OtpState(str, Enum):
    IDLE = "idle"
    SENT = "sent"
    VERIFYING = "verifying"
    AUTHENTICATED = "authenticated"
    FAILED = "failed"


_TRANSITIONS = {
    OtpState.IDLE: {OtpState.SENT},
    OtpState.SENT: {OtpState.SENT, OtpState.VERIFYING},
    OtpState.VERIFYING: {OtpState.AUTHENTICATED, OtpState.FAILED},
    OtpState.FAILED: {OtpState.SENT, OtpState.VERIFYING},
    OtpState.AUTHENTICATED: set(),
}


class IllegalTransition(Exception):
    def __init__(self, current: OtpState, target: OtpState):
        super().__init__(f"OTP challenge cannot move from {current.value} to {target.value}")
        self.current = current
        self.target = target


class AttemptsExhausted(Exception):
    pass


@dataclass
class OtpChallenge:
    identifier: Identifier
    channel: OtpChannel
    attempts_remaining: int
    issued_at: float = 0.0
    state: OtpState = OtpState.IDLE
    handle: Optional[str] = None  # provider message id when one is returned

    def transition(self, target: OtpState):
        if target not in _TRANSITIONS[self.state]:
            raise IllegalTransition(self.state, target)
        self.state = target


@dataclass
class OtpChallengeRegistry:
    max_attempts: int = 5
    max_age_seconds: int = 60 * 60
    clock: Callable[[], float] = time.monotonic
    _challenges: Dict[Tuple[str, str], OtpChallenge] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def _key(self, identifier: Identifier) -> Tuple[str, str]:
        return identifier.kind.value, identifier.value

    def _evict_stale(self, now: float):
        stale = [k for k, c in self._challenges.items() if now - c.issued_at > self.max_age_seconds]
        for key in stale:
            del self._challenges[key]

    def _fresh(self, identifier: Identifier, now: float) -> OtpChallenge:
        challenge = OtpChallenge(
            identifier=identifier,
            channel=OtpChannel.for_identifier(identifier),
            attempts_remaining=self.max_attempts,
        )
        challenge.transition(OtpState.SENT)
        challenge.issued_at = now
        self._challenges[self._key(identifier)] = challenge
        return challenge

    def get(self, identifier: Identifier) -> Optional[OtpChallenge]:
        return self._challenges.get(self._key(identifier))

    def issue(self, identifier: Identifier, handle: Optional[str] = None) -> OtpChallenge:
        """Record a (re)sent code. A resend restores the attempt budget."""
        now = self.clock()
        with self._lock:
            self._evict_stale(now)
            challenge = self._challenges.get(self._key(identifier))
            if challenge is None or challenge.state in (OtpState.AUTHENTICATED, OtpState.VERIFYING):
                challenge = self._fresh(identifier, now)
            else:
                challenge.transition(OtpState.SENT)
                challenge.issued_at = now
                challenge.attempts_remaining = self.max_attempts
            challenge.handle = handle
            return challenge

    def begin_verify(self, identifier: Identifier) -> OtpChallenge:
        now = self.clock()
        with self._lock:
            self._evict_stale(now)
            challenge = self._challenges.get(self._key(identifier))
            if challenge is None or challenge.state == OtpState.AUTHENTICATED:
                challenge = self._fresh(identifier, now)
            if challenge.attempts_remaining <= 0:
                raise AttemptsExhausted(identifier.masked)
            challenge.transition(OtpState.VERIFYING)
            challenge.attempts_remaining -= 1
            return challenge

    def complete(self, challenge: OtpChallenge):
        """Code accepted: the challenge is consumed."""
        with self._lock:
            challenge.transition(OtpState.AUTHENTICATED)
            if self._challenges.get(self._key(challenge.identifier)) is challenge:
                del self._challenges[self._key(challenge.identifier)]

    def fail(self, challenge: OtpChallenge):
        with self._lock:
            challenge.transition(OtpState.FAILED)
