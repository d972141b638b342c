import hashlib
import string

OID_HEX_LENGTH = 64


def object_header(kind: str, payload: bytes) -> bytes:
    return f"{kind} {len(payload)}\0".encode()


def hash_object(kind: str, payload: bytes) -> str:
    """Identifier of an object: SHA-256 over the kind header and the payload.

    The kind is part of the hashed bytes, so a blob and a tree with the same
    payload get different identifiers.
    """
    h = hashlib.sha256()
    h.update(object_header(kind, payload))
    h.update(payload)
    return h.hexdigest()


def is_identifier(text: str) -> bool:
    return len(text) == OID_HEX_LENGTH and all(
        c in string.hexdigits and not c.isupper() for c in text
    )
