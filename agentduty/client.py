"""GraphQL client for the AgentDuty service."""

import logging
from typing import Callable, Optional

import httpx

from . import queries
from .errors import AuthError, NotFoundError, ProtocolError, TransportError
from .models import ApiKey, Notification, SessionHistory

logger = logging.getLogger(__name__)

# Device-authorization provider used to mint the CLI's tokens
TOKEN_REFRESH_URL = "https://api.workos.com/user_management/authenticate"
TOKEN_CLIENT_ID = "client_01KFE40Z1FZ1NJQKHTNNPPWZ3C"

DEFAULT_TIMEOUT = 30.0


def is_auth_error(error: Exception) -> bool:
    """Whether an error means our token was rejected."""
    if isinstance(error, AuthError):
        return True
    message = str(error)
    return "Unauthorized" in message or "Unexpected error" in message


class AgentDutyClient:
    """Thin GraphQL-over-HTTP client.

    The same instance is shared by the CLI commands, the poller and the feed's
    worker threads; httpx.Client is safe to use from several threads.
    """

    def __init__(
        self,
        api_url: str,
        token: str = "",
        refresh_token: str = "",
        on_token_refresh: Optional[Callable[[str, str], None]] = None,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.api_url = api_url
        self._token = token
        self._refresh_token = refresh_token
        self._on_token_refresh = on_token_refresh
        self._http = httpx.Client(timeout=timeout, transport=transport)

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "AgentDutyClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # -- transport --

    def execute(self, query: str, variables: Optional[dict] = None) -> dict:
        """Run a GraphQL document and return its data object.

        On an auth failure with a refresh token configured, refresh once and
        retry once.
        """
        try:
            return self._request(query, variables)
        except TransportError as e:
            if not self._refresh_token or not is_auth_error(e):
                raise
            try:
                self._refresh()
            except TransportError as refresh_error:
                logger.warning(f"Token refresh failed: {refresh_error}")
                raise e
            return self._request(query, variables)

    def _request(self, query: str, variables: Optional[dict]) -> dict:
        payload: dict = {"query": query}
        if variables:
            payload["variables"] = variables
        headers = {"Content-Type": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"

        try:
            response = self._http.post(self.api_url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise TransportError(f"http request: {e}") from e

        if response.status_code == 401:
            raise AuthError(f"http 401: {response.text}", status_code=401)
        if response.status_code != 200:
            raise TransportError(
                f"http {response.status_code}: {response.text}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as e:
            raise ProtocolError(f"unmarshal response: {e}") from e
        if not isinstance(body, dict):
            raise ProtocolError("unmarshal response: expected a JSON object")

        errors = body.get("errors")
        if errors:
            message = errors[0].get("message", "unknown error") if isinstance(errors[0], dict) else str(errors[0])
            if "Unauthorized" in message:
                raise AuthError(f"graphql error: {message}")
            raise ProtocolError(f"graphql error: {message}")

        data = body.get("data")
        if not isinstance(data, dict):
            raise ProtocolError("graphql response has no data")
        return data

    def _refresh(self) -> None:
        """Exchange the refresh token for a new access token."""
        logger.info("Access token rejected, refreshing")
        try:
            response = self._http.post(
                TOKEN_REFRESH_URL,
                data={
                    "grant_type": "refresh_token",
                    "refresh_token": self._refresh_token,
                    "client_id": TOKEN_CLIENT_ID,
                },
            )
        except httpx.HTTPError as e:
            raise TransportError(f"refresh request: {e}") from e
        if response.status_code != 200:
            raise TransportError(f"refresh failed: {response.text}", status_code=response.status_code)
        try:
            body = response.json()
        except ValueError as e:
            raise ProtocolError(f"refresh response: {e}") from e

        self._token = body.get("access_token") or ""
        if body.get("refresh_token"):
            self._refresh_token = body["refresh_token"]
        if self._on_token_refresh:
            self._on_token_refresh(self._token, self._refresh_token)

    @staticmethod
    def _field(data: dict, name: str):
        if name not in data:
            raise ProtocolError(f"graphql response is missing {name}")
        return data[name]

    # -- operations --

    def fetch_session(self, session_key: str) -> Optional[SessionHistory]:
        """Session with all its notifications and responses, or None if unknown."""
        data = self.execute(queries.SESSION_HISTORY, {"sessionKey": session_key})
        history = self._field(data, "sessionHistory")
        return SessionHistory.from_dict(history) if history else None

    def fetch_notification(self, notification_id: str) -> Notification:
        data = self.execute(queries.GET_NOTIFICATION, {"id": notification_id})
        notification = self._field(data, "notification")
        if not notification:
            raise NotFoundError(f"notification not found: {notification_id}")
        return Notification.from_dict(notification)

    def fetch_active_feed(self) -> list[Notification]:
        data = self.execute(queries.ACTIVE_FEED)
        return [Notification.from_dict(n) for n in self._field(data, "activeFeed") or []]

    def list_notifications(self, status: Optional[str] = None) -> list[Notification]:
        variables = {"status": status} if status else {}
        data = self.execute(queries.LIST_NOTIFICATIONS, variables)
        return [Notification.from_dict(n) for n in self._field(data, "notifications") or []]

    def create_notification(
        self,
        message: str,
        priority: int,
        session_key: str,
        workspace: str,
        options: Optional[list[str]] = None,
        context: Optional[str] = None,
        tags: Optional[list[str]] = None,
    ) -> Notification:
        variables: dict = {
            "message": message,
            "priority": priority,
            "sessionKey": session_key,
            "workspace": workspace,
        }
        if options:
            variables["options"] = options
        if context:
            variables["context"] = context
        if tags:
            variables["tags"] = tags
        data = self.execute(queries.CREATE_NOTIFICATION, variables)
        return Notification.from_dict(self._field(data, "createNotification"))

    def submit_response(
        self,
        notification_id: str,
        text: Optional[str] = None,
        selected_option: Optional[str] = None,
    ) -> Notification:
        variables: dict = {"id": notification_id}
        if text is not None:
            variables["text"] = text
        if selected_option is not None:
            variables["selectedOption"] = selected_option
        data = self.execute(queries.RESPOND, variables)
        notification = self._field(data, "respondToNotification")
        if not notification:
            raise NotFoundError(f"notification not found: {notification_id}")
        return Notification.from_dict(notification)

    def snooze(self, notification_id: str, minutes: int) -> Notification:
        data = self.execute(queries.SNOOZE, {"id": notification_id, "minutes": minutes})
        notification = self._field(data, "snoozeNotification")
        if not notification:
            raise NotFoundError(f"notification not found: {notification_id}")
        return Notification.from_dict(notification)

    def archive(self, notification_id: str) -> Notification:
        data = self.execute(queries.ARCHIVE, {"id": notification_id})
        notification = self._field(data, "archiveNotification")
        if not notification:
            raise NotFoundError(f"notification not found: {notification_id}")
        return Notification.from_dict(notification)

    def archive_all(self) -> int:
        """Archive every active notification; returns how many were archived."""
        data = self.execute(queries.ARCHIVE_ALL)
        count = self._field(data, "archiveAllNotifications")
        try:
            return int(count or 0)
        except (TypeError, ValueError) as e:
            raise ProtocolError(f"unexpected archive count: {count!r}") from e

    def add_reaction(self, notification_id: str, emoji: str, response_index: int = 0) -> bool:
        variables: dict = {"id": notification_id, "emoji": emoji}
        if response_index > 0:
            variables["responseIndex"] = response_index
        data = self.execute(queries.ADD_REACTION, variables)
        return bool(self._field(data, "addReaction"))

    # -- account --

    def create_api_key(self, name: str) -> ApiKey:
        data = self.execute(queries.CREATE_API_KEY, {"name": name})
        return ApiKey.from_dict(self._field(data, "createApiKey") or {})

    def list_api_keys(self) -> list[ApiKey]:
        data = self.execute(queries.LIST_API_KEYS)
        return [ApiKey.from_dict(k) for k in self._field(data, "apiKeys") or []]

    def revoke_api_key(self, key_id: str) -> bool:
        """True if the key existed and was revoked."""
        data = self.execute(queries.REVOKE_API_KEY, {"id": key_id})
        return bool(self._field(data, "revokeApiKey"))

    def slack_connected(self) -> bool:
        data = self.execute(queries.SLACK_CONNECTED)
        return bool(self._field(data, "slackConnected"))

    def generate_slack_link_code(self) -> str:
        data = self.execute(queries.GENERATE_SLACK_LINK_CODE)
        return self._field(data, "generateSlackLinkCode") or ""

    def current_user_id(self) -> str:
        data = self.execute(queries.ME)
        return (self._field(data, "me") or {}).get("id") or ""
