"""RESTClient - rate limit aware client for the Eludris REST API.

Talks to two hosts: Oprish (the API, ``api``) and Effis (file storage,
``cdn``). Uses httpx for HTTP and Pydantic v2 for typed responses. Every
call funnels through ``_fetch``, which honours the per-route buckets the
server advertises in ``X-RateLimit-*`` headers and transparently retries
429 responses, so callers never see one.

Usage:
    async with RESTClient("https://api.eludris.gay/next") as rest:
        await rest.create_session(SessionCreate(identifier="me", password="..."))
        await rest.create_message(MessageCreate(content="hello"))
"""

import asyncio
import logging
import uuid
from typing import Any, Dict, List, Optional

import httpx

from . import routes
from .config import ClientConfig
from .errors import HTTPError, RateLimitedError, TransportError
from .models import (
    CreatePasswordResetCode,
    FileData,
    InstanceInfo,
    Message,
    MessageCreate,
    PasswordDeleteCredentials,
    ResetPassword,
    Session,
    SessionCreate,
    SessionCreated,
    UpdateUser,
    UpdateUserProfile,
    User,
    UserCreate,
    dump_body,
)
from .rate_limiter import RateLimitStore
from .routes import Host

logger = logging.getLogger("eludris.client")


class RESTClient:
    """Eludris REST client.

    Attributes:
        api_url: Base URL used for ``api`` requests.
        auth_token: Session token attached to ``api`` requests. Set by
            create_session(), or assign one obtained elsewhere.
        instance_info: Instance metadata, fetched lazily the first time a
            ``cdn`` request needs the Effis URL, then cached for the
            lifetime of the client.
        rate_limits: Per-route buckets refreshed from response headers.
    """

    def __init__(
        self,
        api_url: Optional[str] = None,
        *,
        config: Optional[ClientConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            api_url: Oprish base URL. Overrides ``config.api_url``.
            config: Client settings, defaults to ClientConfig().
            http_client: Pre-built httpx client. The caller keeps ownership
                of an injected client; aclose() only closes one we created.
        """
        self.config = config or ClientConfig()
        self.api_url = (api_url or self.config.api_url).rstrip("/")
        self.auth_token: Optional[str] = None
        self.instance_info: Optional[InstanceInfo] = None
        self.rate_limits = RateLimitStore()

        self._client = http_client
        self._owns_client = http_client is None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> "RESTClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP client if we created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.config.request_timeout))
            self._owns_client = True
        return self._client

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def _fetch(
        self,
        to: Host,
        route: str,
        path: str,
        *,
        method: str = "GET",
        headers: Optional[Dict[str, str]] = None,
        json: Any = None,
        files: Any = None,
        data: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        """Make a rate limited request.

        Args:
            to: "api" for Oprish, "cdn" for Effis.
            route: Rate limit route id the call is counted against.
            path: Path relative to the host's base URL.
            method: HTTP method.
            headers: Extra headers. A caller supplied Authorization header
                is never overwritten.
            json: JSON body.
            files: Multipart files (httpx format).
            data: Multipart form fields.

        Returns:
            The first non-429 response.

        Raises:
            HTTPError: Non-successful response other than 429.
            RateLimitedError: Still 429 after max_rate_limit_retries.
            TransportError: The request never got a response.
        """
        request_id = uuid.uuid4().hex[:7]
        logger.debug(f"Starting request {method} {path} with id {request_id}")

        attempts = 0
        while True:
            await self._process_rate_limits(route, request_id)

            if to == "cdn" and self.instance_info is None:
                logger.info("Fetching instance info")
                await self._set_up()

            base_url = self.api_url if to == "api" else self.instance_info.effis_url.rstrip("/")

            request_headers = httpx.Headers({
                "User-Agent": self.config.user_agent,
                "Accept": "application/json",
            })
            if headers:
                request_headers.update(headers)
            # Effis is public, it never gets the token.
            if to == "api" and self.auth_token and "Authorization" not in request_headers:
                request_headers["Authorization"] = self.auth_token

            attempts += 1
            try:
                response = await self._get_client().request(
                    method,
                    base_url + path,
                    headers=request_headers,
                    json=json,
                    files=files,
                    data=data,
                )
            except httpx.HTTPError as e:
                raise TransportError(f"HTTP error on {method} {path}: {e}")

            if not response.is_success and response.status_code != 429:
                logger.debug(f"Request {request_id} failed with status {response.status_code}")
                raise HTTPError(response.status_code, response.reason_phrase, response.text[:500])

            self.rate_limits.update(route, response.headers)

            if response.status_code == 429:
                logger.warning(f"Rate limited on {route} (request {request_id}, attempt {attempts})")
                retries = self.config.max_rate_limit_retries
                if retries is not None and attempts > retries:
                    raise RateLimitedError(429, response.reason_phrase, response.text[:500])
                continue

            logger.debug(f"Finished request {path} {request_id} with status {response.status_code}")
            return response

    async def _fetch_json(self, to: Host, route: str, path: str, **kwargs) -> Any:
        response = await self._fetch(to, route, path, **kwargs)
        return response.json()

    async def _process_rate_limits(self, route: str, request_id: str) -> None:
        """Wait out an exhausted bucket, then forget it."""
        if not self.rate_limits.is_exhausted(route):
            return

        delay = self.rate_limits.delay_for(route)
        if delay > 0:
            logger.debug(f"No remaining requests for {request_id}, waiting {delay * 1000:.0f}ms for {route} to reset")
            await asyncio.sleep(delay)
            logger.debug(f"Rate limit for {route} reset")
        else:
            logger.debug(f"No need to wait for {route} rate limit")
        self.rate_limits.discard(route)

    async def _set_up(self) -> InstanceInfo:
        self.instance_info = await self.get_instance_info(with_rate_limits=False)
        return self.instance_info

    # ------------------------------------------------------------------
    # Instance
    # ------------------------------------------------------------------

    async def get_instance_info(self, with_rate_limits: bool = False) -> InstanceInfo:
        """GET /. Does not touch the cached ``instance_info``."""
        data = await self._fetch_json(
            "api", routes.GET_INSTANCE_INFO, routes.get_instance_info(with_rate_limits)
        )
        return InstanceInfo.model_validate(data)

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def create_message(self, message: MessageCreate) -> Message:
        """POST /messages."""
        data = await self._fetch_json(
            "api", routes.CREATE_MESSAGE, routes.create_message(),
            method="POST", json=dump_body(message),
        )
        return Message.model_validate(data)

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def create_session(self, session_create: SessionCreate) -> SessionCreated:
        """POST /sessions. Stores the returned token in ``auth_token``."""
        data = await self._fetch_json(
            "api", routes.CREATE_SESSION, routes.create_session(),
            method="POST", json=dump_body(session_create),
        )
        created = SessionCreated.model_validate(data)
        self.auth_token = created.token
        return created

    async def login(
        self,
        identifier: str,
        password: str,
        platform: str = "python",
        client: str = "eludris.py",
    ) -> SessionCreated:
        """Shortcut for create_session()."""
        return await self.create_session(
            SessionCreate(identifier=identifier, password=password, platform=platform, client=client)
        )

    async def delete_session(self, session_id: int, password: str) -> None:
        """DELETE /sessions/{session_id}."""
        await self._fetch(
            "api", routes.DELETE_SESSION, routes.delete_session(session_id),
            method="DELETE", json=dump_body(PasswordDeleteCredentials(password=password)),
        )

    async def get_sessions(self) -> List[Session]:
        """GET /sessions."""
        data = await self._fetch_json("api", routes.GET_SESSIONS, routes.get_sessions())
        return [Session.model_validate(s) for s in data]

    # ------------------------------------------------------------------
    # Passwords
    # ------------------------------------------------------------------

    async def create_password_reset_code(self, request: CreatePasswordResetCode) -> None:
        """POST /users/reset-password. Emails a reset code."""
        await self._fetch(
            "api", routes.CREATE_PASSWORD_RESET_CODE, routes.create_password_reset_code(),
            method="POST", json=dump_body(request),
        )

    async def reset_password(self, request: ResetPassword) -> None:
        """POST /users/reset-password with the emailed code."""
        await self._fetch(
            "api", routes.RESET_PASSWORD, routes.reset_password(),
            method="POST", json=dump_body(request),
        )

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    async def create_user(self, user_create: UserCreate) -> User:
        """POST /users."""
        data = await self._fetch_json(
            "api", routes.CREATE_USER, routes.create_user(),
            method="POST", json=dump_body(user_create),
        )
        return User.model_validate(data)

    async def delete_user(self, password: str) -> None:
        """DELETE /users. Deletes the authenticated user."""
        await self._fetch(
            "api", routes.DELETE_USER, routes.delete_user(),
            method="DELETE", json=dump_body(PasswordDeleteCredentials(password=password)),
        )

    def _get_user_route(self) -> str:
        return routes.GET_USER if self.auth_token else routes.GUEST_GET_USER

    async def get_user(self, user_id: int) -> User:
        """GET /users/{user_id}."""
        data = await self._fetch_json("api", self._get_user_route(), routes.get_user(user_id))
        return User.model_validate(data)

    async def get_user_by_name(self, username: str) -> User:
        """GET /users/username/{username}."""
        data = await self._fetch_json(
            "api", self._get_user_route(), routes.get_user_with_username(username)
        )
        return User.model_validate(data)

    async def get_self(self) -> User:
        """GET /users/@me."""
        data = await self._fetch_json("api", routes.GET_USER, routes.get_self())
        return User.model_validate(data)

    async def update_profile(self, update: UpdateUserProfile) -> User:
        """PATCH /users/profile. Fields explicitly set to None are cleared."""
        data = await self._fetch_json(
            "api", routes.UPDATE_PROFILE, routes.update_profile(),
            method="PATCH", json=dump_body(update, partial=True),
        )
        return User.model_validate(data)

    async def update_user(self, update: UpdateUser) -> User:
        """PATCH /users. Requires the current password."""
        data = await self._fetch_json(
            "api", routes.UPDATE_USER, routes.update_user(),
            method="PATCH", json=dump_body(update),
        )
        return User.model_validate(data)

    async def verify_user(self, code: int) -> None:
        """POST /users/verify. Verifies the email address with ``code``."""
        await self._fetch("api", routes.VERIFY_USER, routes.verify_user(code), method="POST")

    # ------------------------------------------------------------------
    # Files (Effis)
    # ------------------------------------------------------------------

    async def upload_file(self, bucket: str, file: Any, spoiler: bool = False) -> FileData:
        """POST /{bucket} as multipart form data.

        Args:
            bucket: Effis bucket name.
            file: Anything httpx accepts as a file: bytes, a binary file
                object, or a (filename, content[, content_type]) tuple.
            spoiler: Mark the file as a spoiler.
        """
        data = await self._fetch_json(
            "cdn", routes.FETCH_FILE, routes.upload_file(bucket),
            method="POST",
            files={"file": file},
            data={"spoiler": "true" if spoiler else "false"},
        )
        return FileData.model_validate(data)

    async def upload_attachment(self, file: Any, spoiler: bool = False) -> FileData:
        """POST /attachments."""
        return await self.upload_file(routes.ATTACHMENTS_BUCKET, file, spoiler)

    async def download_file(self, bucket: str, file_id: int) -> bytes:
        """GET /{bucket}/{file_id}. Returns the raw file content."""
        response = await self._fetch(
            "cdn", routes.file_route(bucket), routes.download_file(bucket, file_id)
        )
        return response.content

    async def download_attachment(self, file_id: int) -> bytes:
        """GET /attachments/{file_id}."""
        return await self.download_file(routes.ATTACHMENTS_BUCKET, file_id)

    async def download_static_file(self, name: str) -> bytes:
        """GET /static/{name}."""
        response = await self._fetch("cdn", routes.FETCH_FILE, routes.download_static_file(name))
        return response.content

    async def get_attachment_data(self, file_id: int) -> FileData:
        """GET /attachments/{file_id}/data."""
        data = await self._fetch_json(
            "cdn", routes.ATTACHMENTS, routes.get_attachment_data(file_id)
        )
        return FileData.model_validate(data)
