# filevault/crypto.py
import re
import secrets
from dataclasses import dataclass, field

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .config import MIN_KEY_BYTES
from .errors import AuthenticationError, ConfigurationError, MalformedInputError

KEY_BYTES = 32    # AES-256
NONCE_BYTES = 16
TAG_BYTES = 16

_HEX_TOKEN_RE = re.compile(r"[0-9a-fA-F]{%d}" % (2 * NONCE_BYTES))


@dataclass(frozen=True)
class SealedBlob:
    """Ciphertext plus the nonce and tag it was sealed with. Always kept together."""
    ciphertext: bytes = field(repr=False)
    nonce: bytes
    auth_tag: bytes

    @classmethod
    def from_tokens(cls, ciphertext: bytes, nonce_hex: str | None, tag_hex: str | None) -> "SealedBlob":
        """Rebuild a blob from stored ciphertext and its hex-encoded tokens."""
        if not nonce_hex or not tag_hex:
            raise MalformedInputError("encrypted content is missing its nonce or tag")
        return cls(
            ciphertext=ciphertext,
            nonce=unhex_token(nonce_hex, "nonce"),
            auth_tag=unhex_token(tag_hex, "auth tag"),
        )

    @property
    def nonce_hex(self) -> str:
        return hex_token(self.nonce)

    @property
    def auth_tag_hex(self) -> str:
        return hex_token(self.auth_tag)


def hex_token(raw: bytes) -> str:
    return raw.hex()


def unhex_token(text: str, what: str = "token") -> bytes:
    # bytes.fromhex() tolerates whitespace; stored tokens must be exact.
    if not isinstance(text, str) or not _HEX_TOKEN_RE.fullmatch(text):
        raise MalformedInputError(f"{what} must be {NONCE_BYTES} bytes of hex")
    return bytes.fromhex(text)


class EncryptedBlobCodec:
    """AES-256-GCM sealing of file payloads under the process-wide key.

    Stateless apart from the key, so one instance is shared by every request.
    The codec never logs and never retries: failures surface as
    AuthenticationError (or MalformedInputError) to the caller.
    """

    def __init__(self, key: bytes):
        if not isinstance(key, (bytes, bytearray)) or len(key) < MIN_KEY_BYTES:
            raise ConfigurationError(f"encryption key must be at least {MIN_KEY_BYTES} bytes")
        self._aead = AESGCM(bytes(key[:KEY_BYTES]))

    def seal(self, plaintext: bytes) -> SealedBlob:
        nonce = secrets.token_bytes(NONCE_BYTES)
        # AESGCM appends the tag to the ciphertext.
        out = self._aead.encrypt(nonce, bytes(plaintext), None)
        return SealedBlob(ciphertext=out[:-TAG_BYTES], nonce=nonce, auth_tag=out[-TAG_BYTES:])

    def open(self, sealed: SealedBlob) -> bytes:
        if len(sealed.nonce) != NONCE_BYTES:
            raise MalformedInputError(f"nonce must be {NONCE_BYTES} bytes")
        if len(sealed.auth_tag) != TAG_BYTES:
            raise MalformedInputError(f"auth tag must be {TAG_BYTES} bytes")
        try:
            return self._aead.decrypt(sealed.nonce, bytes(sealed.ciphertext) + sealed.auth_tag, None)
        except InvalidTag:
            raise AuthenticationError("authentication tag mismatch") from None
