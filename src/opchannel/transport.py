"""Converts between HTTP requests/responses and OpenID parameter bags."""
import logging
from typing import Optional
from urllib.parse import parse_qsl
from urllib.parse import urlencode
from urllib.parse import urlsplit
from urllib.parse import urlunsplit

from opchannel.exception import MalformedMessage
from opchannel.exception import ProtocolError
from opchannel.kvform import dict_to_kv
from opchannel.kvform import kv_to_dict
from opchannel.message import AssociateUnsuccessfulResponse
from opchannel.message import DirectErrorResponse
from opchannel.message import OPENID_PREFIX
from opchannel.message import OpenIDMessage

logger = logging.getLogger(__name__)

KV_CONTENT_TYPE = "text/plain; charset=utf-8"


def _pairs_to_dict(pairs) -> dict:
    res = {}
    for key, val in pairs:
        if key in res:
            raise MalformedMessage(f"Parameter given more than once: {key}")
        res[key] = val
    return res


def parse_request(method: str, url: str, body: Optional[str] = "") -> dict:
    """
    Pick the raw parameter bag out of an HTTP request. Indirect requests
    have the parameters in the query part of the URL, direct requests in a
    form encoded body.
    """
    _method = method.upper()
    if _method == "GET":
        _query = urlsplit(url).query
    elif _method == "POST":
        _query = body or ""
    else:
        raise MalformedMessage(f"Unsupported HTTP method: {method}")

    return _pairs_to_dict(parse_qsl(_query, keep_blank_values=True))


def openid_args(raw: dict) -> dict:
    """Keep the 'openid.' parameters and strip the prefix."""
    res = {}
    for key, val in raw.items():
        if not key.startswith(OPENID_PREFIX):
            continue
        if isinstance(val, list):
            if len(val) != 1:
                raise MalformedMessage(f"Parameter {key} has {len(val)} values")
            val = val[0]
        if not isinstance(val, str):
            raise MalformedMessage(f"Parameter {key} is not a string")
        res[key[len(OPENID_PREFIX):]] = val
    return res


def parse_kv_response(body: str) -> dict:
    """Returns the parameters of a key-value form body, without prefixes added."""
    return kv_to_dict(body)


def add_query(url: str, params: dict) -> str:
    _parts = urlsplit(url)
    _query = parse_qsl(_parts.query, keep_blank_values=True)
    _query.extend(params.items())
    return urlunsplit((_parts.scheme, _parts.netloc, _parts.path, urlencode(_query),
                       _parts.fragment))


def encode_response(message: OpenIDMessage) -> dict:
    """
    Direct responses are key-value form bodies. Indirect ones are redirects
    to the Relying Party with the parameters in the query.
    """
    if message.direct:
        if isinstance(message, (DirectErrorResponse, AssociateUnsuccessfulResponse)):
            _code = 400
        else:
            _code = 200
        return {
            "response": dict_to_kv(dict(message.items())),
            "http_headers": [("Content-Type", KV_CONTENT_TYPE)],
            "response_code": _code,
        }

    _recipient = message.recipient or message.get("return_to")
    if not _recipient:
        raise ProtocolError(f"No recipient for indirect {message.__class__.__name__}")

    _params = message.to_wire()
    _url = add_query(_recipient, _params)
    return {
        "response": _url,
        "http_headers": [("Location", _url)],
        "response_code": 302,
        "params": _params,
    }
