class ChannelError(Exception):
    kind = "channel_error"
    transient = False

    def __init__(self, *args, element: str = ""):
        Exception.__init__(self, *args)
        self.element = element


class UnrecognisedMessage(ChannelError):
    kind = "unrecognised_message"


class MalformedMessage(ChannelError):
    kind = "malformed_encoding"


class MissingRequiredField(MalformedMessage):
    pass


class MessageSealed(ChannelError):
    kind = "message_sealed"


class InvalidAssociation(ChannelError):
    kind = "invalid_association"

    def __init__(self, *args, handle: str = "", element: str = ""):
        ChannelError.__init__(self, *args, element=element)
        self.handle = handle


class InvalidSignature(ChannelError):
    kind = "signature_invalid"


class InsufficientSignatureCoverage(ChannelError):
    kind = "insufficient_signature_coverage"


class DisallowedAlgorithm(ChannelError):
    kind = "disallowed_algorithm"


class ReplayDetected(ChannelError):
    kind = "replay_detected"


class MessageExpired(ChannelError):
    kind = "expired"


class MessageFromFuture(MessageExpired):
    pass


class ExtensionMalformed(ChannelError):
    kind = "extension_malformed"

    def __init__(self, *args, type_uri: str = "", element: str = ""):
        ChannelError.__init__(self, *args, element=element)
        self.type_uri = type_uri


class StoreError(ChannelError):
    kind = "store_failure"
    transient = True


class AssociationStoreError(StoreError):
    pass


class NonceStoreError(StoreError):
    pass


class ProtocolError(ChannelError):
    kind = "protocol_error"


class ConfigurationError(Exception):
    pass


class ChannelCancelled(ChannelError):
    kind = "cancelled"
