import logging
import os
from typing import Callable
from typing import Optional

from cryptojwt.jwt import utc_time_sans_frac

from opchannel.binding import BindingElement
from opchannel.binding import MessageProtection
from opchannel.binding import store_call
from opchannel.exception import MessageExpired
from opchannel.exception import MessageFromFuture
from opchannel.exception import NonceStoreError
from opchannel.exception import ReplayDetected
from opchannel.message import OpenIDMessage
from opchannel.nonce import make_nonce
from opchannel.nonce import split_nonce
from opchannel.nonce_store import NonceStore
from opchannel.security import ProviderSecuritySettings

logger = logging.getLogger(__name__)


class ReplayProtectionBindingElement(BindingElement):
    name = "replay_protection"
    protection = MessageProtection.REPLAY_PROTECTION

    def __init__(self,
                 nonce_store: NonceStore,
                 security_settings: ProviderSecuritySettings,
                 clock: Optional[Callable[[], int]] = None,
                 rng: Optional[Callable[[int], bytes]] = None):
        if nonce_store is None:
            raise ValueError("A nonce store is required")
        if security_settings is None:
            raise ValueError("Security settings are required")
        self.nonce_store = nonce_store
        self.security_settings = security_settings
        self.clock = clock or utc_time_sans_frac
        self.rng = rng or os.urandom

    def prepare(self, message: OpenIDMessage) -> Optional[MessageProtection]:
        if not message.carries_nonce:
            return None
        if "response_nonce" not in message:
            message["response_nonce"] = make_nonce(self.clock(), self.rng)
        return self.protection

    def process(self, message: OpenIDMessage) -> Optional[MessageProtection]:
        nonce = message.get("response_nonce")
        if nonce is None:
            return None

        timestamp, _ = split_nonce(nonce)
        now = self.clock()
        _settings = self.security_settings
        if timestamp > now + _settings.maximum_clock_skew:
            raise MessageFromFuture(f"Nonce timestamp {timestamp} is ahead of {now}")
        if timestamp < now - _settings.nonce_retention:
            # Older than anything the nonce store is guaranteed to remember
            raise MessageExpired(f"Nonce timestamp {timestamp} outside the replay window")

        context = message.get("op_endpoint", "")
        if not store_call(NonceStoreError, self.nonce_store.check_and_insert, context, nonce,
                          timestamp + _settings.nonce_retention):
            logger.warning(f"Replayed nonce {nonce} for '{context}'")
            raise ReplayDetected(f"Nonce already used: {nonce}")

        return self.protection
