import enum
import logging
from typing import Callable
from typing import Optional
from typing import Type

from opchannel.exception import ChannelError
from opchannel.exception import StoreError

logger = logging.getLogger(__name__)


class MessageProtection(enum.IntFlag):
    NONE = 0
    EXPIRATION = 1
    REPLAY_PROTECTION = 2
    TAMPER_PROTECTION = 4


def store_call(error_class: Type[StoreError], method: Callable, *args, **kwargs):
    """
    Call a method on a backing store. Anything the store raises that is not
    already a ChannelError comes out as a transient error_class.
    """
    try:
        return method(*args, **kwargs)
    except ChannelError:
        raise
    except Exception as err:
        logger.error(f"{method.__name__} failed: {err!r}")
        raise error_class(f"Backing store failed in {method.__name__}") from err


class BindingElement(object):
    """
    A stage in the channel pipeline. Each one inspects (process) or stamps
    (prepare) a message to enforce one protocol property.

    Both methods return the protection applied or None if the element does
    not apply to the message. Failures are signalled by raising a
    :py:class:`opchannel.exception.ChannelError`.
    """
    name = ""
    protection = MessageProtection.NONE

    def prepare(self, message) -> Optional[MessageProtection]:
        return None

    def process(self, message) -> Optional[MessageProtection]:
        return None

    def seal(self, message) -> Optional[MessageProtection]:
        """Runs once every element has prepared an outgoing message."""
        return None

    def __repr__(self):
        return f"<{self.__class__.__name__} {self.name}>"
