"""Guild membership lookup.

Reads the member's Discord role IDs with the bot credential. This is
best-effort: the bot lookup is independent of the OAuth identity proof,
so any failure degrades to an empty group set and the login proceeds.
"""

import httpx

from gatehouse.auth.errors import DirectoryUnavailable
from gatehouse.config import DirectoryConfig
from gatehouse.logging_config import get_logger

logger = get_logger(__name__)

# Raw response bodies are logged on failure; keep them bounded.
_MAX_LOGGED_BODY = 512


class GroupResolver:
    """Fetch a member's guild role IDs from the Discord API."""

    def __init__(
        self,
        config: DirectoryConfig,
        api_base_url: str,
        timeout_seconds: float,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._api_base_url = api_base_url.rstrip("/")
        self._timeout = httpx.Timeout(timeout_seconds)
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return self._config.enabled

    async def fetch_groups(self, external_id: str) -> frozenset[str]:
        """Return the member's guild role IDs, or an empty set on any failure."""
        try:
            groups = await self._request_groups(external_id)
        except DirectoryUnavailable as e:
            logger.warning(
                "Guild roles unavailable, continuing with no groups",
                external_id=external_id,
                reason=str(e),
            )
            return frozenset()

        logger.debug("Fetched guild roles", external_id=external_id, count=len(groups))
        return groups

    async def _request_groups(self, external_id: str) -> frozenset[str]:
        if not self.enabled:
            raise DirectoryUnavailable("guild id or bot token not configured")

        url = f"{self._api_base_url}/guilds/{self._config.guild_id}/members/{external_id}"
        headers = {"Authorization": f"Bot {self._config.bot_token}"}

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.get(url, headers=headers)
        except httpx.TimeoutException as e:
            raise DirectoryUnavailable("guild member lookup timed out") from e
        except httpx.HTTPError as e:
            logger.warning("Guild member lookup failed", external_id=external_id, exc_info=True)
            raise DirectoryUnavailable(f"guild member lookup failed: {e}") from e

        if not resp.is_success:
            logger.warning(
                "Guild member lookup returned an error",
                external_id=external_id,
                status=resp.status_code,
                body=resp.text[:_MAX_LOGGED_BODY],
            )
            raise DirectoryUnavailable(f"guild member lookup returned {resp.status_code}")

        try:
            data = resp.json()
        except ValueError as e:
            logger.warning(
                "Guild member response is not JSON",
                external_id=external_id,
                body=resp.text[:_MAX_LOGGED_BODY],
            )
            raise DirectoryUnavailable("guild member response is not JSON") from e

        roles = data.get("roles") if isinstance(data, dict) else None
        if not isinstance(roles, list):
            logger.warning(
                "Guild member response has no roles array",
                external_id=external_id,
                body=resp.text[:_MAX_LOGGED_BODY],
            )
            raise DirectoryUnavailable("guild member response has no roles array")

        return frozenset(str(role_id) for role_id in roles)
