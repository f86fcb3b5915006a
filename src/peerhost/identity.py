"""Node identity providers.

The host only needs ``await provider.get_peer_id()`` returning something
with a string form. :class:`KeyfileIdentityProvider` persists an Ed25519
key pair under the node's data directory so the identity is stable
across restarts.
"""

from __future__ import annotations

import asyncio
import base64
import hashlib
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, runtime_checkable

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)

logger = logging.getLogger(__name__)

KEY_FILENAME = "identity.key"
PEER_ID_PREFIX = "12D3"


@dataclass(frozen=True)
class PeerIdentity:
    """Identity of a peer node, derived from its public key."""

    public_key: bytes

    @property
    def fingerprint(self) -> str:
        digest = hashlib.sha256(self.public_key).digest()
        return base64.b32encode(digest).decode("ascii").rstrip("=").lower()

    def __str__(self) -> str:
        return f"{PEER_ID_PREFIX}{self.fingerprint}"


@runtime_checkable
class IdentityProvider(Protocol):
    """Source of the host node's own identity."""

    async def get_peer_id(self) -> object | None:
        """Return the node identity (anything with a string form)."""
        ...


class StaticIdentityProvider:
    """Identity provider returning a fixed value."""

    def __init__(self, peer_id: object | None) -> None:
        self._peer_id = peer_id

    async def get_peer_id(self) -> object | None:
        return self._peer_id


class KeyfileIdentityProvider:
    """Identity backed by an Ed25519 key stored in ``data_dir``."""

    def __init__(self, data_dir: str | Path) -> None:
        self.data_dir = Path(data_dir).expanduser()
        self.key_path = self.data_dir / KEY_FILENAME
        self._identity: PeerIdentity | None = None

    async def get_peer_id(self) -> PeerIdentity:
        if self._identity is None:
            self._identity = await asyncio.to_thread(self._load_or_create)
        return self._identity

    def _load_or_create(self) -> PeerIdentity:
        self.data_dir.mkdir(parents=True, exist_ok=True)

        if self.key_path.exists():
            private_key = serialization.load_pem_private_key(
                self.key_path.read_bytes(), password=None
            )
            if not isinstance(private_key, Ed25519PrivateKey):
                raise ValueError(f"{self.key_path} does not hold an Ed25519 key")
            logger.debug("Loaded node identity key from %s", self.key_path)
        else:
            private_key = Ed25519PrivateKey.generate()
            pem = private_key.private_bytes(
                encoding=serialization.Encoding.PEM,
                format=serialization.PrivateFormat.PKCS8,
                encryption_algorithm=serialization.NoEncryption(),
            )
            fd = os.open(self.key_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "wb") as f:
                f.write(pem)
            logger.info("Generated new node identity key at %s", self.key_path)

        return identity_from_public_key(private_key.public_key())


def identity_from_public_key(public_key: Ed25519PublicKey) -> PeerIdentity:
    raw = public_key.public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )
    return PeerIdentity(public_key=raw)
