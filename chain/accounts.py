"""
Signing‑account resolution.

Keypairs are derived from the client configuration on every operation
and never cached between operations.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import bittensor as bt
from bittensor_wallet import Keypair

from config import ClientConfig
from staking.errors import TransactionError

_MISSING_KEYS = (
    "No account configuration found. Please set TAO_ACCOUNT_SEED or "
    "TAO_ACCOUNT_PRIVATE_KEY in environment variables"
)


@dataclass(frozen=True)
class AccountPair:
    user: Keypair
    proxy: Optional[Keypair] = None


def create_keypair(seed: Optional[str] = None, private_key: Optional[str] = None) -> Keypair:
    """
    sr25519 keypair from exactly one source.

    `seed` may be a mnemonic or a derivation URI (`//Alice`); `private_key`
    is the 32‑byte mini‑secret in hex.
    """
    if not seed and not private_key:
        raise TransactionError.account_configuration(
            "Either seed phrase or private key must be provided"
        )
    if seed and private_key:
        raise TransactionError.account_configuration(
            "Provide either a seed phrase or a private key, not both"
        )
    try:
        if seed:
            return Keypair.create_from_uri(seed)
        return Keypair.create_from_seed(private_key)
    except (ValueError, TypeError) as err:
        raise TransactionError.account_configuration(f"Failed to create account: {err}") from err


class AccountResolver:
    def __init__(self, config: ClientConfig) -> None:
        self._config = config

    def _user(self) -> Keypair:
        if not self._config.seed and not self._config.private_key:
            raise TransactionError.account_configuration(_MISSING_KEYS)
        return create_keypair(self._config.seed, self._config.private_key)

    def get_accounts(self) -> AccountPair:
        """
        Signing account plus the optional transfer proxy.

        The proxy is exposed for callers that relay through it; the
        pipeline itself only ever signs with `user`.
        """
        user = self._user()
        bt.logging.debug(f"[Accounts] Using user account: {user.ss58_address}")

        proxy = None
        if self._config.proxy_seed:
            proxy = create_keypair(seed=self._config.proxy_seed)
            bt.logging.debug(f"[Accounts] Using proxy account: {proxy.ss58_address}")

        return AccountPair(user=user, proxy=proxy)

    def resolve_source(self, from_address: Optional[str] = None) -> Keypair:
        """Configured signer, checked against an explicit source address."""
        user = self._user()
        if from_address and from_address != user.ss58_address:
            raise TransactionError.account_mismatch(from_address, user.ss58_address)
        return user
