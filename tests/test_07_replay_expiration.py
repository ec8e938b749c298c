import pytest

from opchannel.binding import MessageProtection
from opchannel.binding.expiration import ExpirationBindingElement
from opchannel.binding.replay import ReplayProtectionBindingElement
from opchannel.exception import MalformedMessage
from opchannel.exception import MessageExpired
from opchannel.exception import MessageFromFuture
from opchannel.exception import NonceStoreError
from opchannel.exception import ReplayDetected
from opchannel.message import CheckAuthenticationResponse
from opchannel.message import PositiveAssertion
from opchannel.nonce import make_nonce
from opchannel.nonce import split_nonce
from opchannel.nonce_store import MemoryNonceStore
from opchannel.security import ProviderSecuritySettings
from tests.utils import Clock
from tests.utils import NOW
from tests.utils import OP_ENDPOINT
from tests.utils import RETURN_TO
from tests.utils import UnreachableNonceStore
from tests.utils import seeded_rng

SETTINGS = ProviderSecuritySettings()
MAX_AGE = SETTINGS.maximum_message_age
SKEW = SETTINGS.maximum_clock_skew


def assertion(timestamp, rng=None):
    return PositiveAssertion(op_endpoint=OP_ENDPOINT, return_to=RETURN_TO,
                             response_nonce=make_nonce(timestamp, rng or seeded_rng()))


class TestReplayProtection():
    @pytest.fixture(autouse=True)
    def create_element(self):
        self.clock = Clock()
        self.store = MemoryNonceStore(clock=self.clock)
        self.element = ReplayProtectionBindingElement(self.store, SETTINGS, clock=self.clock,
                                                      rng=seeded_rng())

    def test_first_seen(self):
        msg = assertion(NOW)
        assert self.element.process(msg) == MessageProtection.REPLAY_PROTECTION
        assert (OP_ENDPOINT, msg["response_nonce"]) in self.store

    def test_replay(self):
        self.element.process(assertion(NOW))
        self.clock.advance(60)
        with pytest.raises(ReplayDetected):
            self.element.process(assertion(NOW))

    def test_replay_other_context(self):
        self.element.process(assertion(NOW))
        msg = assertion(NOW)
        msg["op_endpoint"] = "https://other.example.com/openid"
        assert self.element.process(msg)

    def test_outside_window(self):
        with pytest.raises(MessageExpired):
            self.element.process(assertion(NOW - MAX_AGE - SKEW - 1))
        with pytest.raises(MessageFromFuture):
            self.element.process(assertion(NOW + SKEW + 1))
        assert len(self.store) == 0

    def test_window_edges(self):
        assert self.element.process(assertion(NOW - MAX_AGE - SKEW))
        assert self.element.process(assertion(NOW + SKEW, seeded_rng(1)))

    def test_retention(self):
        msg = assertion(NOW)
        self.element.process(msg)
        self.clock.advance(MAX_AGE + SKEW)
        assert (OP_ENDPOINT, msg["response_nonce"]) in self.store
        # After the retention the nonce falls outside the window anyway
        self.clock.advance(1)
        with pytest.raises(MessageExpired):
            self.element.process(assertion(NOW))

    def test_malformed_nonce(self):
        msg = assertion(NOW)
        msg["response_nonce"] = "now"
        with pytest.raises(MalformedMessage):
            self.element.process(msg)

    def test_no_nonce(self):
        assert self.element.process(CheckAuthenticationResponse(is_valid="true")) is None

    def test_prepare(self):
        msg = PositiveAssertion(op_endpoint=OP_ENDPOINT, return_to=RETURN_TO)
        assert self.element.prepare(msg) == MessageProtection.REPLAY_PROTECTION
        timestamp, _ = split_nonce(msg["response_nonce"])
        assert timestamp == NOW

    def test_prepare_keeps_nonce(self):
        msg = assertion(NOW - 5)
        _nonce = msg["response_nonce"]
        self.element.prepare(msg)
        assert msg["response_nonce"] == _nonce

    def test_prepare_not_applicable(self):
        assert self.element.prepare(CheckAuthenticationResponse(is_valid="true")) is None

    def test_store_failure(self):
        element = ReplayProtectionBindingElement(UnreachableNonceStore(), SETTINGS,
                                                 clock=self.clock)
        with pytest.raises(NonceStoreError) as err:
            element.process(assertion(NOW))
        assert err.value.transient
        assert err.value.kind == "store_failure"
        assert isinstance(err.value.__cause__, ConnectionError)


class TestExpiration():
    @pytest.fixture(autouse=True)
    def create_element(self):
        self.clock = Clock()
        self.element = ExpirationBindingElement(SETTINGS, clock=self.clock, rng=seeded_rng())

    def test_boundary(self):
        assert self.element.process(assertion(NOW - MAX_AGE + 1))
        assert self.element.process(assertion(NOW - MAX_AGE))
        with pytest.raises(MessageExpired):
            self.element.process(assertion(NOW - MAX_AGE - 1))

    def test_future(self):
        assert self.element.process(assertion(NOW + SKEW))
        with pytest.raises(MessageFromFuture):
            self.element.process(assertion(NOW + SKEW + 1))

    def test_kind(self):
        with pytest.raises(MessageExpired) as err:
            self.element.process(assertion(NOW + SKEW + 1))
        assert err.value.kind == "expired"

    def test_prepare(self):
        msg = PositiveAssertion(op_endpoint=OP_ENDPOINT, return_to=RETURN_TO)
        assert self.element.prepare(msg) == MessageProtection.EXPIRATION
        assert split_nonce(msg["response_nonce"])[0] == NOW

    def test_constructor(self):
        with pytest.raises(ValueError):
            ExpirationBindingElement(None)
        with pytest.raises(ValueError):
            ReplayProtectionBindingElement(None, SETTINGS)
