from datetime import datetime, timedelta

from django.contrib.auth.hashers import make_password
from django.test import SimpleTestCase, override_settings

from ..gate import GateState, PassphraseGate


class FakeClock:
    def __init__(self):
        self.now = datetime(2024, 3, 10, 12, 0)

    def __call__(self):
        return self.now


@override_settings(
    TRACKER_PASSPHRASE="correct horse",
    TRACKER_PASSPHRASE_HASH="",
    TRACKER_GATE_MAX_ATTEMPTS=3,
    TRACKER_GATE_BLOCK_SECONDS=60,
)
class PassphraseGateStateTests(SimpleTestCase):
    def setUp(self):
        self.session = {}
        self.clock = FakeClock()
        self.gate = PassphraseGate(self.session, clock=self.clock)

    def test_starts_unauthenticated(self):
        status = self.gate.status()

        self.assertEqual(status.state, GateState.UNAUTHENTICATED)
        self.assertEqual(status.remaining_attempts, 3)

    def test_correct_passphrase_authenticates(self):
        self.assertTrue(self.gate.attempt("correct horse").authenticated)
        self.assertTrue(PassphraseGate(self.session).status().authenticated)

    def test_block_expires_on_read(self):
        for _ in range(3):
            status = self.gate.attempt("wrong")
        self.assertTrue(status.blocked)
        self.assertEqual(status.blocked_until, self.clock.now + timedelta(seconds=60))
        self.assertTrue(self.gate.attempt("correct horse").blocked)

        self.clock.now += timedelta(seconds=61)

        status = self.gate.status()
        self.assertEqual(status.state, GateState.UNAUTHENTICATED)
        self.assertEqual(status.remaining_attempts, 3)
        self.assertTrue(self.gate.attempt("correct horse").authenticated)

    def test_logout_forgets_the_session(self):
        self.gate.attempt("correct horse")

        self.gate.logout()

        self.assertEqual(self.gate.status().state, GateState.UNAUTHENTICATED)

    def test_precomputed_hash_wins(self):
        with self.settings(TRACKER_PASSPHRASE_HASH=make_password("from the vault")):
            self.assertFalse(self.gate.attempt("correct horse").authenticated)
            self.assertTrue(self.gate.attempt("from the vault").authenticated)

    @override_settings(TRACKER_PASSPHRASE="", TRACKER_PASSPHRASE_HASH="")
    def test_unconfigured_gate_never_opens(self):
        self.assertFalse(self.gate.configured)

        for guess in ("", "admin", "correct horse"):
            status = self.gate.attempt(guess)
            self.assertEqual(status.state, GateState.UNAUTHENTICATED)

        self.assertEqual(self.gate.status().remaining_attempts, 3)
