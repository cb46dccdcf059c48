from __future__ import annotations

from dataclasses import dataclass

from cryptography.hazmat.primitives.asymmetric import rsa

from .errors import KeyGenerationError

KEY_BITS = 2048


@dataclass(frozen=True, slots=True)
class KeyPair:
    private_key: rsa.RSAPrivateKey
    public_key: rsa.RSAPublicKey

    @classmethod
    def generate(cls, bits: int = KEY_BITS) -> "KeyPair":
        """Fresh RSA key pair; one per certificate, never reused."""
        try:
            private_key = rsa.generate_private_key(public_exponent=65537, key_size=bits)
        except Exception as e:  # noqa: BLE001
            raise KeyGenerationError(f"RSA-{bits} key generation failed: {e}") from e
        return cls(private_key=private_key, public_key=private_key.public_key())
