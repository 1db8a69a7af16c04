"""Discord identity provider client.

Uses authlib's httpx-based OAuth2 client for the authorization-code
exchange, then reads the caller's profile from /users/@me with the
user's own access token. Guild roles are not requested here; they come
from the bot-authenticated group resolver.
"""

from typing import Any
from urllib.parse import urlencode

import httpx
from authlib.integrations.httpx_client import AsyncOAuth2Client, OAuthError

from gatehouse.auth.errors import ProviderError
from gatehouse.auth.identity import AuthorizationRequest, ExternalProfile, IdentityProvider
from gatehouse.config import DiscordConfig
from gatehouse.logging_config import get_logger

logger = get_logger(__name__)


class DiscordConnector(IdentityProvider):
    """Discord OAuth2 identity provider client."""

    def __init__(
        self,
        config: DiscordConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._transport = transport

    @property
    def name(self) -> str:
        return "discord"

    def build_authorization_request(self, state: str) -> AuthorizationRequest:
        """Build the Discord authorization URL."""
        params = {
            "response_type": "code",
            "client_id": self._config.client_id,
            "redirect_uri": self._config.callback_url,
            "scope": " ".join(self._config.scopes),
            "state": state,
        }
        authorize_url = f"{self._config.authorize_url}?{urlencode(params)}"
        return AuthorizationRequest(authorize_url=authorize_url, state=state)

    def _oauth_client(self) -> AsyncOAuth2Client:
        client_kwargs: dict[str, Any] = {}
        if self._transport is not None:
            client_kwargs["transport"] = self._transport
        return AsyncOAuth2Client(
            client_id=self._config.client_id,
            client_secret=self._config.client_secret,
            scope=" ".join(self._config.scopes),
            redirect_uri=self._config.callback_url,
            timeout=httpx.Timeout(self._config.http_timeout_seconds),
            **client_kwargs,
        )

    async def exchange_code(self, code: str) -> ExternalProfile:
        """Exchange the authorization code and fetch the user's profile."""
        if not code:
            raise ProviderError("Missing authorization code")

        user_url = self._config.api_base_url.rstrip("/") + "/users/@me"

        try:
            async with self._oauth_client() as client:
                await client.fetch_token(self._config.token_url, code=code)
                resp = await client.get(user_url)
                resp.raise_for_status()
                user = resp.json()
        except OAuthError as e:
            logger.warning("Discord rejected code exchange", error=e.error)
            raise ProviderError(f"Discord rejected the authorization code: {e.error}") from e
        except httpx.TimeoutException as e:
            logger.warning("Discord request timed out", timeout=self._config.http_timeout_seconds)
            raise ProviderError("Discord did not respond in time") from e
        except httpx.HTTPError as e:
            logger.warning("Discord request failed", error=str(e))
            raise ProviderError(f"Discord request failed: {e}") from e
        except ValueError as e:
            raise ProviderError("Discord returned a malformed response") from e

        profile = _profile_from_user(user)
        logger.info(
            "Discord authentication successful",
            external_id=profile.external_id,
            username=profile.username,
        )
        return profile


def _profile_from_user(user: Any) -> ExternalProfile:
    """Build an ExternalProfile from a /users/@me body."""
    if not isinstance(user, dict):
        raise ProviderError("Discord user response is not an object")

    external_id = user.get("id")
    username = user.get("username")
    if not external_id or not username:
        raise ProviderError("Discord user response is missing id or username")

    discriminator = user.get("discriminator")
    avatar = user.get("avatar")
    return ExternalProfile(
        external_id=str(external_id),
        username=str(username),
        discriminator=str(discriminator) if discriminator is not None else None,
        avatar_ref=str(avatar) if avatar else None,
    )
