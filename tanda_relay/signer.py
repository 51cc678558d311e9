"""
Signing identities.

:class:`SponsorIdentity` owns the sponsor key pair for the lifetime of the
process. It is loaded once from configuration and only ever *signs*: the
secret seed and the underlying :class:`stellar_sdk.Keypair` are not exposed.

:class:`CounterSigner` has the same sign-only surface for a participant
secret supplied with a single invocation; it is dropped when the call ends.
"""

from __future__ import annotations

from typing import Union

from stellar_sdk import FeeBumpTransactionEnvelope, Keypair, TransactionEnvelope
from stellar_sdk import xdr as stellar_xdr
from stellar_sdk.auth import authorize_entry
from stellar_sdk.exceptions import Ed25519SecretSeedInvalidError

from .config import Settings
from .errors import ConfigurationError, MissingCounterSignature

Envelope = Union[TransactionEnvelope, FeeBumpTransactionEnvelope]


class _SigningKey:
    __slots__ = ("_keypair",)

    def __init__(self, keypair: Keypair):
        if not keypair.can_sign():
            raise ValueError("keypair has no secret")
        self._keypair = keypair

    @property
    def public_key(self) -> str:
        return self._keypair.public_key

    def owns(self, address: str) -> bool:
        return address == self._keypair.public_key

    def sign(self, envelope: Envelope) -> Envelope:
        """Append this identity's signature to ``envelope`` (in place) and return it."""
        envelope.sign(self._keypair)
        return envelope

    def sign_auth_entry(
        self,
        entry: stellar_xdr.SorobanAuthorizationEntry,
        *,
        valid_until_ledger: int,
        network_passphrase: str,
    ) -> stellar_xdr.SorobanAuthorizationEntry:
        """Sign an address-credential authorization entry (returns a signed copy)."""
        return authorize_entry(entry, self._keypair, valid_until_ledger, network_passphrase)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(public_key={self.public_key!r}, secret=***)"

    __str__ = __repr__


class SponsorIdentity(_SigningKey):
    __slots__ = ()

    @classmethod
    def from_secret(cls, secret: str) -> "SponsorIdentity":
        try:
            return cls(Keypair.from_secret(secret))
        except Ed25519SecretSeedInvalidError as e:
            raise ConfigurationError("SPONSOR_SECRET_KEY is not a valid secret seed", setting="SPONSOR_SECRET_KEY") from e

    @classmethod
    def from_settings(cls, settings: Settings) -> "SponsorIdentity":
        return cls.from_secret(settings.require_sponsor_secret())


class CounterSigner(_SigningKey):
    __slots__ = ()

    @classmethod
    def from_secret(cls, secret: str, *, expected: str, method: str | None = None) -> "CounterSigner":
        """
        Build a counter-signer and check that it belongs to ``expected``.

        Raises MissingCounterSignature when the secret is malformed or is the
        key of a different account.
        """
        try:
            signer = cls(Keypair.from_secret(secret))
        except Ed25519SecretSeedInvalidError as e:
            raise MissingCounterSignature(
                expected, method=method, reason="Supplied signer secret is not a valid secret seed"
            ) from e
        if not signer.owns(expected):
            raise MissingCounterSignature(
                expected, method=method, reason=f"Supplied signer secret does not belong to {expected}"
            )
        return signer


__all__ = ["SponsorIdentity", "CounterSigner"]
