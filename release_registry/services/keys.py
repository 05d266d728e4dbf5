"""
File-backed lookup of GPG signing keys per namespace.

Keys are laid out as ``<keys_dir>/<namespace>/<KEYID>.asc``; the key ID is
taken from the filename.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import List

from release_registry.domain.errors import SigningKeyError
from release_registry.domain.models import GPGPublicKey

logger = logging.getLogger(__name__)

ARMOR_HEADER = "-----BEGIN PGP PUBLIC KEY BLOCK-----"


class FileKeyLookup:
    def __init__(self, keys_dir: Path):
        self.keys_dir = keys_dir

    def namespaces_with_keys(self) -> List[str]:
        if not self.keys_dir.is_dir():
            return []
        return sorted(
            p.name for p in self.keys_dir.iterdir()
            if p.is_dir() and any(p.glob("*.asc"))
        )

    def keys_for_namespace(self, namespace: str) -> List[GPGPublicKey]:
        """
        Return every signing key published for ``namespace``.

        A namespace without a key directory has no keys. Raises
        SigningKeyError when a key file is unreadable or not ASCII armored.
        """
        namespace_dir = self.keys_dir / namespace
        if not namespace_dir.is_dir():
            logger.debug(f"No signing keys directory for namespace {namespace}")
            return []

        keys: List[GPGPublicKey] = []
        for path in sorted(namespace_dir.glob("*.asc")):
            try:
                armor = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                logger.error(f"Failed to read signing key {path}: {e}")
                raise SigningKeyError(f"failed to read signing key {path.name}: {e}") from e

            if ARMOR_HEADER not in armor:
                logger.error(f"Signing key {path} is not an ASCII armored public key")
                raise SigningKeyError(f"signing key {path.name} is not an ASCII armored public key")

            keys.append(GPGPublicKey(key_id=path.stem.upper(), ascii_armor=armor))

        logger.info(f"Loaded {len(keys)} signing keys for namespace {namespace}")
        return keys
