"""Identity provider base abstraction.

Defines the interface an OAuth identity provider client implements,
plus the ExternalProfile returned after a successful code exchange.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass
class AuthorizationRequest:
    """Data needed to redirect the user to the provider."""

    authorize_url: str
    state: str


@dataclass
class ExternalProfile:
    """Verified identity returned by the provider."""

    external_id: str  # provider's stable subject identifier
    username: str
    discriminator: str | None = None
    avatar_ref: str | None = None

    @property
    def display_name(self) -> str:
        """username#discriminator, or the bare username for migrated accounts."""
        if self.discriminator and self.discriminator != "0":
            return f"{self.username}#{self.discriminator}"
        return self.username


class IdentityProvider(ABC):
    """Abstract base class for identity provider clients."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique provider name (e.g., 'discord')."""

    @abstractmethod
    def build_authorization_request(self, state: str) -> AuthorizationRequest:
        """Build the provider authorization URL for the given state."""

    @abstractmethod
    async def exchange_code(self, code: str) -> ExternalProfile:
        """Exchange an authorization code for the caller's profile.

        Raises:
            ProviderError: on any failure. Never retried.
        """
