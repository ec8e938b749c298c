"""Key-Value Form encoding as used in OpenID 2.0 direct responses and signatures."""
import logging
from typing import Dict
from typing import Iterable
from typing import Tuple

from opchannel.exception import MalformedMessage

logger = logging.getLogger(__name__)


def _check_pair(key: str, value: str):
    if not isinstance(key, str) or not isinstance(value, str):
        raise MalformedMessage(f"Key-value form only carries strings: {key!r}={value!r}")
    if ":" in key or "\n" in key:
        raise MalformedMessage(f"Invalid key in key-value form: {key!r}")
    if "\n" in value:
        raise MalformedMessage(f"Invalid value for {key!r} in key-value form")
    if key != key.strip():
        raise MalformedMessage(f"Key has surrounding whitespace: {key!r}")


def seq_to_kv(seq: Iterable[Tuple[str, str]]) -> str:
    """
    Serialize a sequence of (key, value) pairs into key-value form.
    The order of the pairs is kept, which is what makes this usable for
    building the string a signature is computed over.
    """
    lines = []
    for key, value in seq:
        _check_pair(key, value)
        lines.append(f"{key}:{value}\n")
    return "".join(lines)


def dict_to_kv(data: Dict[str, str]) -> str:
    return seq_to_kv(sorted(data.items()))


def kv_to_seq(data: str):
    if not data:
        return []

    if not data.endswith("\n"):
        raise MalformedMessage("Key-value form must end with a newline")

    pairs = []
    for line_no, line in enumerate(data[:-1].split("\n"), start=1):
        try:
            key, value = line.split(":", 1)
        except ValueError:
            raise MalformedMessage(f"Line {line_no} of key-value form lacks a colon")
        if not key or key != key.strip():
            raise MalformedMessage(f"Bad key on line {line_no}: {key!r}")
        pairs.append((key, value))
    return pairs


def kv_to_dict(data: str) -> Dict[str, str]:
    res = {}
    for key, value in kv_to_seq(data):
        if key in res:
            raise MalformedMessage(f"Duplicate key in key-value form: {key}")
        res[key] = value
    return res
