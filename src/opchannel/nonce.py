import calendar
import logging
import os
import time
from typing import Callable
from typing import Optional
from typing import Tuple

from cryptojwt.jwt import utc_time_sans_frac
from cryptojwt.utils import as_unicode
from cryptojwt.utils import b64e

from opchannel.exception import MalformedMessage

logger = logging.getLogger(__name__)

TIME_FORMAT = "%Y-%m-%dT%H:%M:%SZ"
TIME_STR_LEN = len("0000-00-00T00:00:00Z")

# 8 random bytes gives 64 bits of entropy in the tail.
NONCE_RANDOM_BYTES = 8
MIN_TAIL_LENGTH = 6
MAX_NONCE_LENGTH = 255


def timestamp_to_str(timestamp: int) -> str:
    return time.strftime(TIME_FORMAT, time.gmtime(timestamp))


def make_nonce(now: Optional[int] = None, rng: Optional[Callable[[int], bytes]] = None) -> str:
    if now is None:
        now = utc_time_sans_frac()
    _rng = rng or os.urandom
    tail = as_unicode(b64e(_rng(NONCE_RANDOM_BYTES)))
    return timestamp_to_str(now) + tail


def split_nonce(nonce: str) -> Tuple[int, str]:
    """
    Split a response nonce into its timestamp and its unique tail.

    :param nonce: A nonce on the form YYYY-MM-DDThh:mm:ssZ<tail>
    :return: Tuple with seconds since epoch and the tail
    """
    if not isinstance(nonce, str) or len(nonce) > MAX_NONCE_LENGTH:
        raise MalformedMessage(f"Malformed nonce: {nonce!r}")

    _ts = nonce[:TIME_STR_LEN]
    tail = nonce[TIME_STR_LEN:]
    try:
        timestamp = calendar.timegm(time.strptime(_ts, TIME_FORMAT))
    except ValueError:
        raise MalformedMessage(f"Nonce has no valid timestamp: {nonce!r}")

    if len(tail) < MIN_TAIL_LENGTH:
        raise MalformedMessage(f"Nonce tail too short: {nonce!r}")
    if any(ord(c) < 33 or ord(c) > 126 for c in tail):
        raise MalformedMessage(f"Nonce tail contains non printable characters: {nonce!r}")

    return timestamp, tail
