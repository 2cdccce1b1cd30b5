"""会话与网关客户端

ServerSession 保存当前选中的服务器标识，DashboardClient 在每次请求时
附带 x-server-uuid 头调用网关。
"""

import logging
from typing import Any, Literal

import httpx

from .console import ConsoleBuffer, ConsoleStream
from .models import PlayerRecord, PropertyValue, merge_players

logger = logging.getLogger(__name__)

DEFAULT_GATEWAY_PATH = "/api/pterodactyl-proxy"
DEFAULT_TIMEOUT = 15.0

PowerSignal = Literal["start", "stop", "restart", "kill"]


class GatewayRequestError(Exception):
    """网关返回错误信封"""

    def __init__(self, status_code: int, message: str):
        super().__init__(f"{message} (HTTP {status_code})")
        self.status_code = status_code
        self.message = message


class ServerSession:
    """服务器标识持有者（会话级）"""

    def __init__(self, server_uuid: str | None = None):
        self._server_uuid = server_uuid or None

    @property
    def server_uuid(self) -> str | None:
        return self._server_uuid

    @property
    def is_connected(self) -> bool:
        return self._server_uuid is not None

    def connect(self, server_uuid: str) -> None:
        if not server_uuid or not server_uuid.strip():
            raise ValueError("server uuid must not be empty")
        self._server_uuid = server_uuid.strip()
        logger.info("已选择服务器: %s", self._server_uuid)

    def disconnect(self) -> None:
        self._server_uuid = None

    def headers(self) -> dict[str, str]:
        """请求头，未选择服务器时抛出 RuntimeError"""
        if self._server_uuid is None:
            raise RuntimeError("no server selected")
        return {"x-server-uuid": self._server_uuid}


class DashboardClient:
    """网关客户端"""

    def __init__(
        self,
        gateway_url: str,
        session: ServerSession | None = None,
        path: str = DEFAULT_GATEWAY_PATH,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.session = session or ServerSession()
        self.path = path
        self._http = httpx.AsyncClient(
            base_url=gateway_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
        )

    async def close(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "DashboardClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def call(
        self,
        action: str,
        body: Any | None = None,
        params: dict[str, str] | None = None,
    ) -> Any:
        """调用一个 action 并返回结果，错误信封转换为 GatewayRequestError"""
        query = {"action": action, **(params or {})}
        response = await self._http.post(
            self.path,
            params=query,
            headers=self.session.headers(),
            json=body if body is not None else {},
        )

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if not response.is_success:
            message = payload.get("error") if isinstance(payload, dict) else None
            raise GatewayRequestError(response.status_code, message or response.text or "Unknown error")
        return payload

    # ==================== Actions ====================

    async def get_status(self) -> dict[str, Any]:
        return await self.call("status")

    async def console_credentials(self) -> dict[str, Any]:
        return await self.call("console")

    async def send_command(self, command: str) -> None:
        await self.call("command", {"command": command})

    async def power(self, signal: PowerSignal) -> None:
        await self.call("power", {"signal": signal})

    async def list_files(self, directory: str = "/") -> list[Any]:
        return await self.call("files", params={"directory": directory})

    async def read_file(self, file: str) -> str:
        result = await self.call("file-content", params={"file": file})
        return result["content"]

    async def write_file(self, file: str, content: str) -> None:
        await self.call("file-write", {"file": file, "content": content})

    async def get_player_lists(self) -> dict[str, list[Any]]:
        return await self.call("players")

    async def get_players(self) -> list[PlayerRecord]:
        """获取合并后的玩家列表"""
        lists = await self.get_player_lists()
        return merge_players(
            lists.get("whitelist", []),
            lists.get("banned", []),
            lists.get("bannedIps", []),
            lists.get("ops", []),
        )

    async def get_properties(self) -> list[dict[str, Any]]:
        return await self.call("properties")

    async def update_property(self, key: str, value: PropertyValue) -> None:
        await self.call("update-property", {"key": key, "value": value})

    async def get_addons(self) -> dict[str, list[Any]]:
        return await self.call("addons")

    async def toggle_addon(
        self,
        pack_type: Literal["behavior", "resource"],
        pack_id: str,
        enabled: bool,
    ) -> None:
        await self.call("addon-toggle", {"type": pack_type, "pack_id": pack_id, "enabled": enabled})

    def console_stream(
        self,
        buffer: ConsoleBuffer | None = None,
        origin: str | None = None,
        **kwargs: Any,
    ) -> ConsoleStream:
        """创建控制台订阅，凭据通过 console action 获取"""
        return ConsoleStream(
            self.console_credentials,
            buffer=buffer,
            origin=origin,
            **kwargs,
        )
