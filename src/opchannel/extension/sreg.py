"""Simple Registration Extension 1.1"""
import logging
import time

from idpyoidc.message import SINGLE_OPTIONAL_STRING

from opchannel.extension import Extension
from opchannel.extension import ExtensionFactory

logger = logging.getLogger(__name__)

SREG_URI = "http://openid.net/extensions/sreg/1.1"

SREG_FIELDS = ["nickname", "email", "fullname", "dob", "gender", "postcode", "country",
               "language", "timezone"]


def field_list(value: str) -> list:
    if not value:
        return []
    return [v.strip() for v in value.split(",") if v.strip()]


class SRegRequest(Extension):
    c_param = {
        "required": SINGLE_OPTIONAL_STRING,
        "optional": SINGLE_OPTIONAL_STRING,
        "policy_url": SINGLE_OPTIONAL_STRING,
    }
    type_uri = SREG_URI

    @property
    def required(self) -> list:
        return field_list(self.get("required", ""))

    @property
    def optional(self) -> list:
        return field_list(self.get("optional", ""))

    def verify(self, **kwargs):
        super(SRegRequest, self).verify(**kwargs)
        for name in self.required + self.optional:
            if name not in SREG_FIELDS:
                raise ValueError(f"Unknown Simple Registration field: {name}")
        if set(self.required).intersection(self.optional):
            raise ValueError("A field can not be both required and optional")
        return True


class SRegResponse(Extension):
    c_param = {name: SINGLE_OPTIONAL_STRING for name in SREG_FIELDS}
    type_uri = SREG_URI

    def verify(self, **kwargs):
        super(SRegResponse, self).verify(**kwargs)
        if "gender" in self and self["gender"] not in ("M", "F"):
            raise ValueError(f"gender must be M or F, not {self['gender']!r}")
        if "dob" in self:
            try:
                time.strptime(self["dob"], "%Y-%m-%d")
            except ValueError:
                # 0000-00-00 style partial dates are allowed
                _parts = self["dob"].split("-")
                if len(_parts) != 3 or not all(p.isdigit() for p in _parts):
                    raise ValueError(f"dob is not YYYY-MM-DD: {self['dob']!r}")
        return True

    @classmethod
    def from_request(cls, request: SRegRequest, data: dict):
        """Only releases what was asked for."""
        _asked = request.required + request.optional
        return cls(**{k: v for k, v in data.items() if k in _asked})


class SRegExtensionFactory(ExtensionFactory):
    type_uri = SREG_URI
    preferred_alias = "sreg"
    request_class = SRegRequest
    response_class = SRegResponse
