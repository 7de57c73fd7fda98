# controlplane/core/client.py
"""
Control Plane API Client
Administrative access to a running engine over its API gateway

Every operation is one request; nothing is retried. A failed call raises
RemoteCallError (or CallTimeoutError) and leaves the client usable.
"""

import socket
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Type, TypeVar
from urllib.parse import quote, urlsplit

import requests
from pydantic import BaseModel, ValidationError

from ..schemas.server_config import ClientConfig, default_client_config
from ..schemas.resources import User, Node, PreAuthKey, ApiKey
from .errors import (
    ConnectError,
    RemoteCallError,
    CallTimeoutError,
    IdentityNotFoundError,
    StateError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


def split_address(address: str) -> Tuple[str, int]:
    """Split "host:port" (or "[v6]:port") into its parts"""
    try:
        parts = urlsplit(f"//{address}")
        host, port = parts.hostname, parts.port
    except ValueError as e:
        raise ConnectError(address, e) from e

    if not host or port is None:
        raise ConnectError(address, "address must be host:port")
    return host, port


class ControlPlaneClient:
    """
    Client for the engine's administrative API

    Features:
    - One HTTP session shared by all calls
    - Bearer API key attached to every call when configured
    - Per-call timeout overriding the session default
    - User id -> name resolution for calls the API addresses by name
    """

    API_PREFIX = "/api/v1"

    def __init__(self, config: Optional[ClientConfig] = None):
        self.config = config or default_client_config()
        self.address = self.config.address
        self.timeout = self.config.timeout
        self._closed = False

        host, port = split_address(self.address)
        try:
            probe = socket.create_connection((host, port), timeout=self.timeout)
        except OSError as e:
            raise ConnectError(self.address, e) from e
        probe.close()

        scheme = "http" if self.config.insecure else "https"
        self.base_url = f"{scheme}://{self.address}"

        self._session = requests.Session()
        self._session.headers.update({
            "Accept": "application/json",
            "User-Agent": "controlplane-client/1.0",
        })
        if self.config.api_key:
            self._session.headers["Authorization"] = f"Bearer {self.config.api_key}"

        logger.info(f"Control plane client connected: {self.base_url}")

    @classmethod
    def connect(
        cls,
        address: str,
        api_key: Optional[str] = None,
        insecure: bool = False,
        timeout: float = 30.0,
    ) -> "ControlPlaneClient":
        return cls(ClientConfig(address=address, api_key=api_key, insecure=insecure, timeout=timeout))

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Release the session; later calls raise StateError"""
        if self._closed:
            return
        self._closed = True
        self._session.close()

    def __enter__(self) -> "ControlPlaneClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # === Transport ===

    def _call(
        self,
        operation: str,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        if self._closed:
            raise StateError(f"cannot {operation}: client is closed")

        url = f"{self.base_url}{self.API_PREFIX}{path}"
        timeout = self.timeout if timeout is None else timeout

        logger.debug(f"{method} {url}")
        try:
            response = self._session.request(
                method, url, params=params, json=body, timeout=timeout
            )
        except requests.Timeout as e:
            raise CallTimeoutError(operation, f"timed out after {timeout}s") from e
        except requests.RequestException as e:
            raise RemoteCallError(operation, str(e)) from e

        if not response.ok:
            raise RemoteCallError(operation, _error_message(response), response.status_code)

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise RemoteCallError(operation, f"invalid response body: {e}", response.status_code) from e

    def _resolve_user_name(self, user_id: int, timeout: Optional[float] = None) -> str:
        """
        Find the name of a user by id

        The API addresses node listing and registration by user name, so
        this scans the full user list.
        """
        for user in self.list_users(timeout=timeout):
            if user.id == user_id:
                return user.name
        raise IdentityNotFoundError(user_id)

    # === User Management ===

    def create_user(self, name: str, timeout: Optional[float] = None) -> User:
        data = self._call("create user", "POST", "/user", body={"name": name}, timeout=timeout)
        return _parse("create user", User, data, "user")

    def list_users(self, timeout: Optional[float] = None) -> List[User]:
        data = self._call("list users", "GET", "/user", timeout=timeout)
        return _parse_list("list users", User, data, "users")

    def delete_user(self, user_id: int, timeout: Optional[float] = None) -> None:
        self._call("delete user", "DELETE", f"/user/{user_id}", timeout=timeout)

    def rename_user(self, user_id: int, new_name: str, timeout: Optional[float] = None) -> User:
        data = self._call(
            "rename user", "POST", f"/user/{user_id}/rename/{_segment(new_name)}", timeout=timeout
        )
        return _parse("rename user", User, data, "user")

    # === Node Management ===

    def list_nodes(self, user_id: int, timeout: Optional[float] = None) -> List[Node]:
        user_name = self._resolve_user_name(user_id, timeout=timeout)
        data = self._call("list nodes", "GET", "/node", params={"user": user_name}, timeout=timeout)
        return _parse_list("list nodes", Node, data, "nodes")

    def get_node(self, node_id: int, timeout: Optional[float] = None) -> Node:
        data = self._call("get node", "GET", f"/node/{node_id}", timeout=timeout)
        return _parse("get node", Node, data, "node")

    def delete_node(self, node_id: int, timeout: Optional[float] = None) -> None:
        self._call("delete node", "DELETE", f"/node/{node_id}", timeout=timeout)

    def expire_node(self, node_id: int, timeout: Optional[float] = None) -> Node:
        data = self._call("expire node", "POST", f"/node/{node_id}/expire", timeout=timeout)
        return _parse("expire node", Node, data, "node")

    def rename_node(self, node_id: int, new_name: str, timeout: Optional[float] = None) -> Node:
        data = self._call(
            "rename node", "POST", f"/node/{node_id}/rename/{_segment(new_name)}", timeout=timeout
        )
        return _parse("rename node", Node, data, "node")

    def move_node(self, node_id: int, user_id: int, timeout: Optional[float] = None) -> Node:
        data = self._call(
            "move node", "POST", f"/node/{node_id}/user", body={"user": user_id}, timeout=timeout
        )
        return _parse("move node", Node, data, "node")

    def register_node(self, user_id: int, key: str, timeout: Optional[float] = None) -> Node:
        user_name = self._resolve_user_name(user_id, timeout=timeout)
        data = self._call(
            "register node", "POST", "/node/register",
            params={"user": user_name, "key": key}, timeout=timeout,
        )
        return _parse("register node", Node, data, "node")

    # === Pre-auth Key Management ===

    def create_pre_auth_key(
        self,
        user_id: int,
        reusable: bool = False,
        ephemeral: bool = False,
        expiration: Optional[datetime] = None,
        acl_tags: Optional[List[str]] = None,
        timeout: Optional[float] = None,
    ) -> PreAuthKey:
        body: Dict[str, Any] = {
            "user": user_id,
            "reusable": reusable,
            "ephemeral": ephemeral,
            "aclTags": list(acl_tags or []),
        }
        if expiration is not None:
            body["expiration"] = _timestamp(expiration)

        data = self._call("create pre-auth key", "POST", "/preauthkey", body=body, timeout=timeout)
        return _parse("create pre-auth key", PreAuthKey, data, "preAuthKey")

    def list_pre_auth_keys(self, user_id: int, timeout: Optional[float] = None) -> List[PreAuthKey]:
        data = self._call(
            "list pre-auth keys", "GET", "/preauthkey", params={"user": user_id}, timeout=timeout
        )
        return _parse_list("list pre-auth keys", PreAuthKey, data, "preAuthKeys")

    def expire_pre_auth_key(self, user_id: int, key: str, timeout: Optional[float] = None) -> None:
        self._call(
            "expire pre-auth key", "POST", "/preauthkey/expire",
            body={"user": user_id, "key": key}, timeout=timeout,
        )

    # === API Key Management ===

    def create_api_key(self, expiration: Optional[datetime] = None, timeout: Optional[float] = None) -> str:
        """Create an API key; the full key is only ever returned here"""
        body: Dict[str, Any] = {}
        if expiration is not None:
            body["expiration"] = _timestamp(expiration)

        data = self._call("create API key", "POST", "/apikey", body=body, timeout=timeout)
        return _field("create API key", data, "apiKey")

    def list_api_keys(self, timeout: Optional[float] = None) -> List[ApiKey]:
        data = self._call("list API keys", "GET", "/apikey", timeout=timeout)
        return _parse_list("list API keys", ApiKey, data, "apiKeys")

    def expire_api_key(self, prefix: str, timeout: Optional[float] = None) -> None:
        self._call("expire API key", "POST", "/apikey/expire", body={"prefix": prefix}, timeout=timeout)

    def delete_api_key(self, prefix: str, timeout: Optional[float] = None) -> None:
        self._call("delete API key", "DELETE", f"/apikey/{_segment(prefix)}", timeout=timeout)

    # === Policy Management ===

    def get_policy(self, timeout: Optional[float] = None) -> str:
        data = self._call("get policy", "GET", "/policy", timeout=timeout)
        return _field("get policy", data, "policy")

    def set_policy(self, policy: str, timeout: Optional[float] = None) -> None:
        """Replace the policy; the engine validates it and may reject it"""
        self._call("set policy", "PUT", "/policy", body={"policy": policy}, timeout=timeout)


def new_client(config: Optional[ClientConfig] = None) -> ControlPlaneClient:
    return ControlPlaneClient(config)


def _segment(value: str) -> str:
    return quote(value, safe="")


def _timestamp(value: datetime) -> str:
    """RFC 3339 in UTC; naive datetimes are taken as local time"""
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _error_message(response: requests.Response) -> str:
    # Gateway errors look like {"code": 5, "message": "...", "details": []}
    try:
        payload = response.json()
    except ValueError:
        payload = None

    if isinstance(payload, dict) and payload.get("message"):
        return payload["message"]
    return response.text or f"HTTP {response.status_code} {response.reason}"


def _field(operation: str, data: Dict[str, Any], key: str) -> Any:
    if key not in data:
        raise RemoteCallError(operation, f"response is missing {key!r}")
    return data[key]


def _parse(operation: str, model: Type[T], data: Dict[str, Any], key: str) -> T:
    try:
        return model.model_validate(_field(operation, data, key))
    except ValidationError as e:
        raise RemoteCallError(operation, f"malformed {key}: {e}") from e


def _parse_list(operation: str, model: Type[T], data: Dict[str, Any], key: str) -> List[T]:
    try:
        return [model.model_validate(item) for item in data.get(key) or []]
    except ValidationError as e:
        raise RemoteCallError(operation, f"malformed {key}: {e}") from e
