import json
import logging

import httpx

from harvester.config import Settings

logger = logging.getLogger(__name__)

CLIENT_TOKEN_URL = "https://steamcommunity.com/chat/clientjstoken"


class AuthenticationError(Exception):
    pass


class SteamCommunitySession:
    """Cookie-based Steam Community session.

    The two credentials are the ``steamLoginSecure`` and ``sessionid`` cookies of
    a logged-in browser session. ``login`` checks them against the chat token
    endpoint, which reports ``logged_in`` for a valid session.
    """

    def __init__(self, steam_login_secure: str, session_id: str, config: Settings) -> None:
        self.config = config
        self.headers = {
            "User-Agent": "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7)",
            "Accept": "application/json",
            "Referer": f"{config.market_base_url.rstrip('/')}/",
        }
        self.cookies = {"steamLoginSecure": steam_login_secure, "sessionid": session_id}

    def build_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.config.request_timeout_seconds,
            headers=self.headers,
            cookies=self.cookies,
        )

    async def login(self, client: httpx.AsyncClient) -> None:
        if not all(self.cookies.values()):
            raise AuthenticationError("both session credentials are required")

        logger.info("Logging into Steam community....")
        try:
            resp = await client.get(CLIENT_TOKEN_URL)
            resp.raise_for_status()
            payload = resp.json()
        except (httpx.HTTPError, json.JSONDecodeError) as exc:
            raise AuthenticationError(f"login: {exc}") from exc

        if not isinstance(payload, dict) or not payload.get("logged_in"):
            raise AuthenticationError("login: session is not logged in")
        logger.info("logged in as %s", payload.get("account_name", "unknown"))
