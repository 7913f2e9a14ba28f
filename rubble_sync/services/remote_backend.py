"""
Remote backend client.

Talks to a Supabase-style backend over HTTPS: PostgREST for the ``reports``
table, the Storage API for photos, and GoTrue for password sign-in. Inserts
work anonymously with the project's anon key; a signed-in session replaces
the bearer token.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx
from ..core.config import settings

logger = logging.getLogger(__name__)


class RemoteBackendError(Exception):
    """A remote call failed (transport error or non-2xx response)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class AuthSession:
    access_token: str
    user_id: str
    email: Optional[str] = None


class RemoteBackend:
    def __init__(
        self,
        base_url: Optional[str] = None,
        anon_key: Optional[str] = None,
        bucket: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.REMOTE_URL).rstrip("/")
        self.anon_key = settings.REMOTE_ANON_KEY if anon_key is None else anon_key
        self.bucket = bucket or settings.PHOTO_BUCKET
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout or settings.REMOTE_TIMEOUT_SECONDS,
            transport=transport,
        )
        self._session: Optional[AuthSession] = None

    async def aclose(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    def current_session(self) -> Optional[AuthSession]:
        return self._session

    def set_session(self, session: Optional[AuthSession]) -> None:
        self._session = session

    async def sign_in(self, email: str, password: str) -> AuthSession:
        payload = await self._request(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        session = AuthSession(
            access_token=payload["access_token"],
            user_id=payload["user"]["id"],
            email=payload["user"].get("email"),
        )
        self._session = session
        logger.info("Signed in as %s", session.user_id)
        return session

    def sign_out(self) -> None:
        self._session = None

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    async def insert_report(self, record: Dict[str, Any]) -> str:
        """Insert one report row and return the backend-generated id."""
        payload = await self._request(
            "POST",
            "/rest/v1/reports",
            params={"select": "id"},
            json=record,
            headers={"Prefer": "return=representation"},
        )
        row = payload[0] if isinstance(payload, list) else payload
        if not row or row.get("id") is None:
            raise RemoteBackendError("Insert response carried no id")
        return str(row["id"])

    # ------------------------------------------------------------------
    # Objects
    # ------------------------------------------------------------------

    async def upload_object(self, path: str, data: bytes, content_type: str) -> str:
        """Upload bytes to ``path`` in the photo bucket without overwriting; returns the public URL."""
        await self._request(
            "POST",
            f"/storage/v1/object/{self.bucket}/{path}",
            content=data,
            headers={
                "Content-Type": content_type,
                "Cache-Control": "3600",
                "x-upsert": "false",
            },
        )
        return self.public_url(path)

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{self.bucket}/{path}"

    async def list_objects(self, prefix: str) -> List[str]:
        payload = await self._request(
            "POST",
            f"/storage/v1/object/list/{self.bucket}",
            json={"prefix": prefix},
        )
        return [entry["name"] for entry in payload or []]

    async def remove_objects(self, paths: List[str]) -> None:
        await self._request("DELETE", f"/storage/v1/object/{self.bucket}", json={"prefixes": paths})

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _auth_headers(self) -> Dict[str, str]:
        token = self._session.access_token if self._session else self.anon_key
        headers = {"apikey": self.anon_key}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def _request(self, method: str, url: str, headers: Optional[Dict[str, str]] = None, **kwargs) -> Any:
        all_headers = self._auth_headers()
        all_headers.update(headers or {})
        try:
            resp = await self._client.request(method, url, headers=all_headers, **kwargs)
        except httpx.HTTPError as exc:
            raise RemoteBackendError(f"{method} {url} failed: {exc}") from exc
        if resp.is_error:
            raise RemoteBackendError(
                f"{method} {url} returned {resp.status_code}: {resp.text[:200]}",
                status_code=resp.status_code,
            )
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError:
            return None
