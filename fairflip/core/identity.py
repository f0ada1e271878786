"""
Username ownership check via the Roblox profile description.

The caller asks for a code, pastes it into their profile "About" text, and
asks us to check. A match mints a session token.
"""

import threading
import time
from dataclasses import dataclass
from typing import Dict, Optional

import httpx

from fairflip.config import settings
from fairflip.core.exceptions import IdentityError
from fairflip.core.logger import get_logger
from fairflip.core.rng import rng
from fairflip.core.security import create_session_token

logger = get_logger("identity")


class RobloxDirectory:
    """Thin async client for the public Roblox users API."""

    def __init__(self, base_url: str = None, transport: httpx.AsyncBaseTransport = None):
        self.base_url = base_url or settings.identity.users_api
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            transport=self.transport,
            timeout=settings.identity.request_timeout_seconds,
        )

    @staticmethod
    def _payload(response: httpx.Response, api: str) -> Dict:
        try:
            payload = response.json()
        except ValueError:
            raise IdentityError(f"Roblox {api} API returned invalid JSON", status_code=502) from None
        if not isinstance(payload, dict):
            raise IdentityError(f"Roblox {api} API returned an unexpected body", status_code=502)
        return payload

    async def get_user_id(self, username: str) -> Optional[int]:
        async with self._client() as client:
            response = await client.post(
                "/v1/usernames/users",
                json={"usernames": [username], "excludeBannedUsers": False},
            )
        if response.status_code != 200:
            raise IdentityError(
                f"Roblox usernames API failed: {response.status_code}", status_code=502
            )
        data = self._payload(response, "usernames").get("data") or []
        if not isinstance(data, list) or (data and not isinstance(data[0], dict)):
            raise IdentityError("Roblox usernames API returned an unexpected body", status_code=502)
        return data[0].get("id") if data else None

    async def get_user(self, user_id: int) -> Dict:
        async with self._client() as client:
            response = await client.get(f"/v1/users/{user_id}")
        if response.status_code != 200:
            raise IdentityError(
                f"Roblox users API failed: {response.status_code}", status_code=502
            )
        return self._payload(response, "users")


@dataclass
class PendingVerification:
    code: str
    user_id: int
    expires_at: float


class IdentityVerifier:
    def __init__(self, directory: RobloxDirectory = None):
        self.directory = directory or RobloxDirectory()
        self._pending: Dict[str, PendingVerification] = {}
        self._lock = threading.Lock()

    @staticmethod
    def make_code() -> str:
        return settings.identity.code_prefix + rng.token_hex(3).upper()

    async def start(self, username: str) -> Dict:
        username = (username or "").strip()
        if not username:
            raise IdentityError("Missing username", status_code=400)

        try:
            user_id = await self.directory.get_user_id(username)
        except httpx.HTTPError as e:
            logger.error(f"Roblox lookup failed: {e}")
            raise IdentityError("Identity provider unavailable", status_code=502) from e
        if not user_id:
            raise IdentityError("Username not found on Roblox", status_code=404)

        code = self.make_code()
        with self._lock:
            self._pending[username.lower()] = PendingVerification(
                code=code,
                user_id=user_id,
                expires_at=time.time() + settings.identity.code_ttl_seconds,
            )

        logger.info(f"Issued verification code for {username}")
        return {
            "username": username,
            "user_id": user_id,
            "code": code,
            "instructions": (
                "Open your Roblox profile and paste this code into your About "
                "(description). Save, then click 'I've updated it'."
            ),
        }

    async def check(self, username: str) -> Dict:
        username = (username or "").strip()
        key = username.lower()
        with self._lock:
            pending = self._pending.get(key)
            if pending is None:
                raise IdentityError("No pending verification for this user", status_code=400)
            if time.time() > pending.expires_at:
                del self._pending[key]
                raise IdentityError("Verification code expired. Start again.", status_code=410)

        try:
            user = await self.directory.get_user(pending.user_id)
        except httpx.HTTPError as e:
            logger.error(f"Roblox profile fetch failed: {e}")
            raise IdentityError("Identity provider unavailable", status_code=502) from e

        if pending.code not in str(user.get("description") or ""):
            return {
                "verified": False,
                "hint": "Code not found in About yet. It can take a minute to propagate.",
            }

        with self._lock:
            self._pending.pop(key, None)

        name = user.get("name", username)
        token = create_session_token(pending.user_id, name)
        logger.info(f"Verified Roblox user {name}")
        return {
            "verified": True,
            "user": {
                "user_id": pending.user_id,
                "username": name,
                "display_name": user.get("displayName"),
            },
            "token": token,
        }

    def reset(self):
        with self._lock:
            self._pending.clear()


identity_verifier = IdentityVerifier()
