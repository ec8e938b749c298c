import logging
from typing import List
from typing import Optional

from idpyoidc.impexp import ImpExp

from opchannel.association import ASSOCIATION_TYPES
from opchannel.defaults import DEFAULT_ASSOCIATION_LIFETIME
from opchannel.defaults import DEFAULT_ASSOCIATION_TYPES
from opchannel.defaults import DEFAULT_MAXIMUM_CLOCK_SKEW
from opchannel.defaults import DEFAULT_MAXIMUM_MESSAGE_AGE
from opchannel.defaults import DEFAULT_MINIMUM_ASSOCIATION_LIFETIME
from opchannel.defaults import DEFAULT_PRIVATE_ASSOCIATION_LIFETIME
from opchannel.defaults import DEFAULT_SESSION_TYPES
from opchannel.dh import SESSION_TYPES

logger = logging.getLogger(__name__)


class ProviderSecuritySettings(ImpExp):
    """Security knobs for the Provider side of the OpenID 2.0 channel."""

    parameter = {
        "allowed_association_types": [],
        "allowed_session_types": [],
        "association_lifetime": 0,
        "private_association_lifetime": 0,
        "private_association_type": "",
        "minimum_association_lifetime": 0,
        "maximum_message_age": 0,
        "maximum_clock_skew": 0,
        "allow_stateless_associations": bool,
        "allow_unsigned_extensions": bool,
        "allow_unknown_extensions": bool,
    }

    def __init__(self,
                 allowed_association_types: Optional[List[str]] = None,
                 allowed_session_types: Optional[List[str]] = None,
                 association_lifetime: Optional[int] = DEFAULT_ASSOCIATION_LIFETIME,
                 private_association_lifetime: Optional[int] = DEFAULT_PRIVATE_ASSOCIATION_LIFETIME,
                 private_association_type: Optional[str] = "",
                 minimum_association_lifetime: Optional[int] = DEFAULT_MINIMUM_ASSOCIATION_LIFETIME,
                 maximum_message_age: Optional[int] = DEFAULT_MAXIMUM_MESSAGE_AGE,
                 maximum_clock_skew: Optional[int] = DEFAULT_MAXIMUM_CLOCK_SKEW,
                 allow_stateless_associations: Optional[bool] = True,
                 allow_unsigned_extensions: Optional[bool] = True,
                 allow_unknown_extensions: Optional[bool] = False):
        ImpExp.__init__(self)
        self.allowed_association_types = list(allowed_association_types or
                                              DEFAULT_ASSOCIATION_TYPES)
        for _type in self.allowed_association_types:
            if _type not in ASSOCIATION_TYPES:
                raise ValueError(f"Unsupported association type: {_type}")

        self.allowed_session_types = list(allowed_session_types or DEFAULT_SESSION_TYPES)
        for _type in self.allowed_session_types:
            if _type not in SESSION_TYPES:
                raise ValueError(f"Unsupported session type: {_type}")

        if private_association_type:
            if private_association_type not in self.allowed_association_types:
                raise ValueError(
                    f"Private association type {private_association_type} is not allowed")
            self.private_association_type = private_association_type
        else:
            # The strongest one allowed
            self.private_association_type = sorted(
                self.allowed_association_types, key=lambda x: ASSOCIATION_TYPES[x][1])[-1]

        for attr, val in [("association_lifetime", association_lifetime),
                          ("private_association_lifetime", private_association_lifetime),
                          ("maximum_message_age", maximum_message_age)]:
            if not isinstance(val, int) or val <= 0:
                raise ValueError(f"{attr} must be a positive integer")
        for attr, val in [("minimum_association_lifetime", minimum_association_lifetime),
                          ("maximum_clock_skew", maximum_clock_skew)]:
            if not isinstance(val, int) or val < 0:
                raise ValueError(f"{attr} must be a non-negative integer")

        if minimum_association_lifetime >= association_lifetime:
            raise ValueError("minimum_association_lifetime must be less than association_lifetime")

        self.association_lifetime = association_lifetime
        self.private_association_lifetime = private_association_lifetime
        self.minimum_association_lifetime = minimum_association_lifetime
        self.maximum_message_age = maximum_message_age
        self.maximum_clock_skew = maximum_clock_skew
        self.allow_stateless_associations = allow_stateless_associations
        self.allow_unsigned_extensions = allow_unsigned_extensions
        self.allow_unknown_extensions = allow_unknown_extensions

    def is_allowed_association_type(self, assoc_type: str) -> bool:
        return assoc_type in self.allowed_association_types

    def is_allowed_session_type(self, session_type: str) -> bool:
        return session_type in self.allowed_session_types

    @property
    def nonce_retention(self) -> int:
        """How long after its timestamp a nonce must be remembered."""
        return self.maximum_message_age + self.maximum_clock_skew
