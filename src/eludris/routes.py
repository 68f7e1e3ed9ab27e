"""Rate-limit route ids and REST path builders.

A route id names the server-side quota a call is counted against. It is
not the URL: several paths share one id (every user lookup counts against
``get_user``), and one path can map to different ids depending on whether
the client is authenticated.
"""

from typing import Literal

Host = Literal["api", "cdn"]

ATTACHMENTS_BUCKET = "attachments"

# Oprish (REST API) route ids
GET_INSTANCE_INFO = "get_instance_info"
CREATE_MESSAGE = "create_message"
CREATE_SESSION = "create_session"
DELETE_SESSION = "delete_session"
GET_SESSIONS = "get_sessions"
CREATE_PASSWORD_RESET_CODE = "create_password_reset_code"
RESET_PASSWORD = "reset_password"
CREATE_USER = "create_user"
DELETE_USER = "delete_user"
GET_USER = "get_user"
GUEST_GET_USER = "guest_get_user"
UPDATE_PROFILE = "update_profile"
UPDATE_USER = "update_user"
VERIFY_USER = "verify_user"

# Effis (file storage) route ids
ATTACHMENTS = "attachments"
FETCH_FILE = "fetch_file"


def get_instance_info(with_rate_limits: bool = False) -> str:
    return "/?rate_limits" if with_rate_limits else "/"


def create_message() -> str:
    return "/messages"


def create_session() -> str:
    return "/sessions"


def delete_session(session_id: int) -> str:
    return f"/sessions/{session_id}"


def get_sessions() -> str:
    return "/sessions"


def create_password_reset_code() -> str:
    return "/users/reset-password"


def reset_password() -> str:
    return "/users/reset-password"


def create_user() -> str:
    return "/users"


def delete_user() -> str:
    return "/users"


def get_user(user_id: int) -> str:
    return f"/users/{user_id}"


def get_self() -> str:
    return "/users/@me"


def get_user_with_username(username: str) -> str:
    return f"/users/username/{username}"


def update_profile() -> str:
    return "/users/profile"


def update_user() -> str:
    return "/users"


def verify_user(code: int) -> str:
    return f"/users/verify?code={code}"


def upload_file(bucket: str) -> str:
    return f"/{bucket}"


def download_file(bucket: str, file_id: int) -> str:
    return f"/{bucket}/{file_id}"


def download_static_file(name: str) -> str:
    return f"/static/{name}"


def get_attachment_data(file_id: int) -> str:
    return f"/{ATTACHMENTS_BUCKET}/{file_id}/data"


def file_route(bucket: str) -> str:
    """Attachments have their own quota, every other bucket shares fetch_file."""
    return ATTACHMENTS if bucket == ATTACHMENTS_BUCKET else FETCH_FILE
