import json
import logging
from typing import Dict
from typing import List
from typing import Optional

from idpyoidc.configure import Base

from opchannel.defaults import DEFAULT_CONFIG
from opchannel.exception import ConfigurationError

logger = logging.getLogger(__name__)

SECURITY_PARAMETERS = [
    "allowed_association_types", "allowed_session_types", "association_lifetime",
    "private_association_lifetime", "private_association_type",
    "minimum_association_lifetime", "maximum_message_age", "maximum_clock_skew",
    "allow_stateless_associations", "allow_unsigned_extensions", "allow_unknown_extensions"]


class ProviderConfiguration(Base):
    """Configuration of an OpenID 2.0 Provider channel."""
    uris = ["op_endpoint"]
    parameter = {
        "op_endpoint": "",
        "contact": "",
        "reference": "",
        "security": {},
        "association_store": {},
        "nonce_store": {},
        "extensions": [],
    }

    def __init__(self,
                 conf: Dict,
                 base_path: Optional[str] = '',
                 file_attributes: Optional[List[str]] = None,
                 dir_attributes: Optional[List[str]] = None,
                 domain: Optional[str] = "",
                 port: Optional[int] = 0):
        _unknown = set(conf.keys()).difference(self.parameter.keys()).difference(
            {"domain", "port"})
        if _unknown:
            raise ConfigurationError(f"Unknown configuration parameters: {sorted(_unknown)}")

        if not conf.get("op_endpoint"):
            raise ConfigurationError("op_endpoint must be configured")

        _security = conf.get("security", {})
        if not isinstance(_security, dict):
            raise ConfigurationError("security must be a dictionary")
        _unknown = set(_security.keys()).difference(SECURITY_PARAMETERS)
        if _unknown:
            raise ConfigurationError(f"Unknown security parameters: {sorted(_unknown)}")

        for key in ["association_store", "nonce_store"]:
            _spec = conf.get(key)
            if _spec is not None and (not isinstance(_spec, dict) or "class" not in _spec):
                raise ConfigurationError(f"{key} must be a dictionary with a 'class'")

        Base.__init__(self, conf, base_path=base_path, file_attributes=file_attributes,
                      dir_attributes=dir_attributes, domain=domain, port=port)

        for key, default in self.parameter.items():
            _val = conf.get(key)
            if _val is None:
                _val = DEFAULT_CONFIG.get(key, default)
            setattr(self, key, _val)


def load_configuration(filename: str, **kwargs) -> ProviderConfiguration:
    """Read a JSON configuration file."""
    with open(filename) as fp:
        try:
            _conf = json.load(fp)
        except json.JSONDecodeError as err:
            raise ConfigurationError(f"Could not parse {filename}: {err}")

    logger.debug(f"Read configuration from {filename}")
    return ProviderConfiguration(_conf, **kwargs)
