"""Session acquisition and token refresh for the media server."""

from __future__ import annotations

import asyncio
import logging
import secrets
from dataclasses import dataclass
from urllib.parse import quote_plus

import httpx
from pydantic import ValidationError

from ..errors import AuthenticationError, DecodeError, TransportError
from ..models import LoginResult
from ..store import ACCESS_TOKEN_KEY, DEVICE_ID_KEY, USER_ID_KEY, CredentialStore
from .preferences import ServerPreferences

logger = logging.getLogger(__name__)

LOGIN_PATH = "/Users/AuthenticateByName"


@dataclass(frozen=True, slots=True)
class Session:
    """Access token and user id obtained from a single login."""

    access_token: str = ""
    user_id: str = ""

    @property
    def is_authenticated(self) -> bool:
        return bool(self.access_token.strip())


@dataclass(frozen=True, slots=True)
class DeviceIdentity:
    """Client fingerprint sent with every request."""

    client_name: str
    version: str
    device_id: str
    device_name: str


def generate_device_id() -> str:
    """Return a random 16 character device token."""

    return secrets.token_hex(8)


async def load_device_identity(
    store: CredentialStore,
    *,
    client_name: str,
    version: str,
    device_name: str,
) -> DeviceIdentity:
    """Return the device identity, generating and persisting the id once."""

    device_id = await store.get_string(DEVICE_ID_KEY)
    if not device_id:
        device_id = generate_device_id()
        await store.set_string(DEVICE_ID_KEY, device_id)
        logger.info("Generated new device id")
    return DeviceIdentity(
        client_name=client_name,
        version=version,
        device_id=device_id,
        device_name=device_name,
    )


def _encode_header_value(value: str) -> str:
    return quote_plus(" ".join(value.split()))


def build_authorization_header(device: DeviceIdentity, token: str | None = None) -> str:
    """Return the ``MediaBrowser`` authorization header value.

    ``Token`` is omitted when no token is supplied, as for the login call.
    """

    params: list[tuple[str, str | None]] = [
        ("Client", device.client_name),
        ("Version", device.version),
        ("DeviceId", device.device_id),
        ("Device", device.device_name),
        ("Token", token),
    ]
    rendered = ", ".join(
        f'{name}="{_encode_header_value(value)}"'
        for name, value in params
        if value is not None
    )
    return f"MediaBrowser {rendered}"


def is_login_request(request: httpx.Request) -> bool:
    return request.url.path.rstrip("/").endswith(LOGIN_PATH)


class SessionManager:
    """Owns the session and decides when to (re)authenticate.

    Logins are coalesced: while one is in flight every other caller awaits
    the same task instead of issuing its own request.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        preferences: ServerPreferences,
        store: CredentialStore,
        device: DeviceIdentity,
        *,
        username: str,
        password: str,
    ) -> None:
        self._client = http_client
        self._preferences = preferences
        self._store = store
        self._device = device
        self._username = username
        self._password = password
        self._session = Session()
        self._login_task: asyncio.Task[Session] | None = None

    @property
    def session(self) -> Session:
        return self._session

    @property
    def device(self) -> DeviceIdentity:
        return self._device

    def authorization_header(self, token: str | None = None) -> str:
        """Header carrying ``token``, or the current session token."""

        return build_authorization_header(self._device, token or self._session.access_token)

    async def restore(self) -> Session:
        """Load a previously persisted session from the store."""

        token = await self._store.get_string(ACCESS_TOKEN_KEY) or ""
        user_id = await self._store.get_string(USER_ID_KEY) or ""
        if token and user_id:
            self._session = Session(access_token=token, user_id=user_id)
            logger.info("Restored persisted media server session")
        return self._session

    async def ensure_authenticated(self) -> Session:
        """Return the current session, logging in first if the token is blank."""

        current = self._session
        if current.is_authenticated:
            return current
        return await self._coalesced_login()

    async def login(self) -> Session:
        """Authenticate with the configured credentials.

        Joins an in-flight login rather than starting a second one.
        """

        return await self._coalesced_login()

    async def force_refresh(self, rejected_token: str | None = None) -> Session:
        """Log in again after the server rejected ``rejected_token``.

        When the session already moved past the rejected token (another
        request refreshed it first) the current session is reused.
        """

        current = self._session
        if (
            rejected_token is not None
            and current.is_authenticated
            and current.access_token != rejected_token
        ):
            logger.debug("Token already refreshed by a concurrent request")
            return current
        logger.info("Media server rejected the access token, refreshing session")
        return await self._coalesced_login()

    async def logout(self) -> None:
        """Forget the session in memory and in the store."""

        self._session = Session()
        await self._store.delete(ACCESS_TOKEN_KEY, USER_ID_KEY)

    async def _coalesced_login(self) -> Session:
        task = self._login_task
        if task is None or task.done():
            task = asyncio.create_task(self._perform_login())
            self._login_task = task
        return await asyncio.shield(task)

    async def _perform_login(self) -> Session:
        base_url = await self._preferences.get_server_url()
        url = f"{base_url}{LOGIN_PATH}"
        logger.info("Logging in to %s as %s", base_url, self._username)
        try:
            response = await self._client.post(
                url,
                headers={"Authorization": build_authorization_header(self._device)},
                json={"Username": self._username, "Pw": self._password},
            )
        except httpx.HTTPError as exc:
            raise TransportError(f"Login request to {base_url} failed: {exc}") from exc

        if not response.is_success:
            await response.aclose()
            logger.warning("Login to %s failed with status %s", base_url, response.status_code)
            raise AuthenticationError(response.status_code)

        try:
            result = LoginResult.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise DecodeError(f"Unexpected login response from {base_url}") from exc

        session = Session(
            access_token=result.access_token,
            user_id=result.session_info.user_id,
        )
        self._session = session
        await self._store.set_many(
            {ACCESS_TOKEN_KEY: session.access_token, USER_ID_KEY: session.user_id}
        )
        logger.info("Authenticated with %s", base_url)
        return session
