"""
Shared-passphrase gate.

States: unauthenticated -> authenticated on a correct passphrase;
unauthenticated -> rate_limited(blocked_until) after too many failures;
rate_limited -> unauthenticated once blocked_until has passed (checked on read).
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from functools import lru_cache
from typing import Callable, Optional
from urllib.parse import urlencode

from django.conf import settings
from django.contrib.auth.hashers import check_password, make_password
from django.shortcuts import redirect
from django.urls import reverse

logger = logging.getLogger(__name__)


class GateState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    RATE_LIMITED = "rate_limited"
    AUTHENTICATED = "authenticated"


@dataclass(frozen=True)
class GateStatus:
    state: GateState
    remaining_attempts: int
    blocked_until: Optional[datetime] = None

    @property
    def authenticated(self) -> bool:
        return self.state == GateState.AUTHENTICATED

    @property
    def blocked(self) -> bool:
        return self.state == GateState.RATE_LIMITED


@lru_cache(maxsize=4)
def _hash_for(passphrase: str) -> str:
    return make_password(passphrase)


def passphrase_hash() -> Optional[str]:
    """Hash to check against, or None when no passphrase is configured."""
    if settings.TRACKER_PASSPHRASE_HASH:
        return settings.TRACKER_PASSPHRASE_HASH
    if settings.TRACKER_PASSPHRASE:
        return _hash_for(settings.TRACKER_PASSPHRASE)
    return None


class PassphraseGate:
    """Gate state kept in the Django session of the single user."""

    SESSION_KEY = "tracker_gate"

    def __init__(self, session, clock: Callable[[], datetime] = datetime.now):
        self.session = session
        self.clock = clock

    @property
    def configured(self) -> bool:
        return passphrase_hash() is not None

    @property
    def max_attempts(self) -> int:
        return settings.TRACKER_GATE_MAX_ATTEMPTS

    def _load(self) -> dict:
        return dict(self.session.get(self.SESSION_KEY) or {"failures": 0})

    def _save(self, data: dict) -> None:
        self.session[self.SESSION_KEY] = data

    def status(self) -> GateStatus:
        data = self._load()
        if data.get("authenticated"):
            return GateStatus(GateState.AUTHENTICATED, self.max_attempts)

        blocked_until = data.get("blocked_until")
        if blocked_until:
            until = datetime.fromisoformat(blocked_until)
            if self.clock() < until:
                return GateStatus(GateState.RATE_LIMITED, 0, until)
            data = {"failures": 0}
            self._save(data)

        return GateStatus(GateState.UNAUTHENTICATED, self.max_attempts - data.get("failures", 0))

    def attempt(self, passphrase: str) -> GateStatus:
        current = self.status()
        if current.state != GateState.UNAUTHENTICATED:
            return current

        expected = passphrase_hash()
        if expected is None:
            logger.error("No passphrase configured, refusing to authenticate")
            return current

        if check_password(passphrase, expected):
            self._save({"authenticated": True})
            return self.status()

        data = self._load()
        failures = data.get("failures", 0) + 1
        logger.warning("Rejected passphrase (%s/%s)", failures, self.max_attempts)
        if failures >= self.max_attempts:
            until = self.clock() + timedelta(seconds=settings.TRACKER_GATE_BLOCK_SECONDS)
            self._save({"failures": failures, "blocked_until": until.isoformat()})
        else:
            self._save({"failures": failures})
        return self.status()

    def logout(self) -> None:
        self.session.pop(self.SESSION_KEY, None)


class PassphraseRequiredMixin:
    """Redirect to the passphrase form unless the session has passed the gate."""

    def dispatch(self, request, *args, **kwargs):
        if not PassphraseGate(request.session).status().authenticated:
            return redirect(f"{reverse('home')}?{urlencode({'next': request.path})}")
        return super().dispatch(request, *args, **kwargs)
