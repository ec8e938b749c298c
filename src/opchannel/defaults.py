DEFAULT_ASSOCIATION_TYPES = ["HMAC-SHA1", "HMAC-SHA256"]
DEFAULT_SESSION_TYPES = ["no-encryption", "DH-SHA1", "DH-SHA256"]

# 14 days
DEFAULT_ASSOCIATION_LIFETIME = 14 * 24 * 3600
# Private associations only have to live until the RP has done check_authentication
DEFAULT_PRIVATE_ASSOCIATION_LIFETIME = 3600
DEFAULT_MINIMUM_ASSOCIATION_LIFETIME = 30
DEFAULT_MAXIMUM_MESSAGE_AGE = 13 * 60
DEFAULT_MAXIMUM_CLOCK_SKEW = 10 * 60

SREG_EXTENSION = {
    "class": "opchannel.extension.sreg.SRegExtensionFactory",
    "kwargs": {}
}

PAPE_EXTENSION = {
    "class": "opchannel.extension.pape.PapeExtensionFactory",
    "kwargs": {}
}

DEFAULT_EXTENSIONS = [SREG_EXTENSION, PAPE_EXTENSION]

DEFAULT_ASSOCIATION_STORE = {
    "class": "opchannel.association_store.MemoryAssociationStore",
    "kwargs": {}
}

DEFAULT_NONCE_STORE = {
    "class": "opchannel.nonce_store.MemoryNonceStore",
    "kwargs": {}
}

DEFAULT_CONFIG = {
    "security": {},
    "association_store": DEFAULT_ASSOCIATION_STORE,
    "nonce_store": DEFAULT_NONCE_STORE,
    "extensions": DEFAULT_EXTENSIONS,
}
