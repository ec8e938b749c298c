import logging
import os
from typing import Callable
from typing import Optional

from cryptojwt.jwt import utc_time_sans_frac

from opchannel.binding import BindingElement
from opchannel.binding import MessageProtection
from opchannel.exception import MessageExpired
from opchannel.exception import MessageFromFuture
from opchannel.message import OpenIDMessage
from opchannel.nonce import make_nonce
from opchannel.nonce import split_nonce
from opchannel.security import ProviderSecuritySettings

logger = logging.getLogger(__name__)


class ExpirationBindingElement(BindingElement):
    """Bounds the age of a message using the timestamp in its nonce."""
    name = "expiration"
    protection = MessageProtection.EXPIRATION

    def __init__(self,
                 security_settings: ProviderSecuritySettings,
                 clock: Optional[Callable[[], int]] = None,
                 rng: Optional[Callable[[int], bytes]] = None):
        if security_settings is None:
            raise ValueError("Security settings are required")
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
        age = self.clock() - timestamp
        if age > self.security_settings.maximum_message_age:
            logger.info(f"Message is {age} seconds old")
            raise MessageExpired(f"Message expired {age} seconds after it was created")
        if -age > self.security_settings.maximum_clock_skew:
            logger.info(f"Message is dated {-age} seconds into the future")
            raise MessageFromFuture("Message timestamp is in the future")
        return self.protection
