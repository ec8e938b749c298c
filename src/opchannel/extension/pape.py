"""Provider Authentication Policy Extension 1.0"""
import logging
import time

from idpyoidc.message import SINGLE_OPTIONAL_STRING
from idpyoidc.message import SINGLE_REQUIRED_STRING

from opchannel.extension import Extension
from opchannel.extension import ExtensionFactory
from opchannel.nonce import TIME_FORMAT

logger = logging.getLogger(__name__)

PAPE_URI = "http://specs.openid.net/extensions/pape/1.0"

AUTH_PHISHING_RESISTANT = "http://schemas.openid.net/pape/policies/2007/06/phishing-resistant"
AUTH_MULTI_FACTOR = "http://schemas.openid.net/pape/policies/2007/06/multi-factor"
AUTH_MULTI_FACTOR_PHYSICAL = \
    "http://schemas.openid.net/pape/policies/2007/06/multi-factor-physical"
AUTH_NONE = "http://schemas.openid.net/pape/policies/2007/06/none"


class PapeRequest(Extension):
    c_param = {
        "preferred_auth_policies": SINGLE_OPTIONAL_STRING,
        "max_auth_age": SINGLE_OPTIONAL_STRING,
        "preferred_auth_level_types": SINGLE_OPTIONAL_STRING,
    }
    type_uri = PAPE_URI

    @property
    def preferred_auth_policies(self) -> list:
        return self.get("preferred_auth_policies", "").split()

    def verify(self, **kwargs):
        super(PapeRequest, self).verify(**kwargs)
        if "max_auth_age" in self and not self["max_auth_age"].isdigit():
            raise ValueError(f"max_auth_age must be an integer: {self['max_auth_age']!r}")
        return True


class PapeResponse(Extension):
    c_param = {
        "auth_policies": SINGLE_REQUIRED_STRING,
        "auth_time": SINGLE_OPTIONAL_STRING,
    }
    type_uri = PAPE_URI

    def verify(self, **kwargs):
        super(PapeResponse, self).verify(**kwargs)
        _policies = self["auth_policies"].split()
        if AUTH_NONE in _policies and len(_policies) > 1:
            raise ValueError("The 'none' policy can not be combined with other policies")
        if "auth_time" in self:
            try:
                time.strptime(self["auth_time"], TIME_FORMAT)
            except ValueError:
                raise ValueError(f"auth_time not in {TIME_FORMAT}: {self['auth_time']!r}")
        return True


class PapeExtensionFactory(ExtensionFactory):
    type_uri = PAPE_URI
    preferred_alias = "pape"
    request_class = PapeRequest
    response_class = PapeResponse
