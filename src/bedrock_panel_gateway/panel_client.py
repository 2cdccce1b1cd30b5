"""Pterodactyl Client API 客户端

所有请求都带 Bearer 密钥，非 2xx 响应统一转换为 PanelAPIError。
"""

import json
import logging
from typing import Any
from urllib.parse import quote

import httpx

from .config import GatewayConfig

logger = logging.getLogger(__name__)

# HTTP 客户端配置
DEFAULT_CONNECT_TIMEOUT = 5.0


class PanelAPIError(Exception):
    """上游面板调用失败"""

    def __init__(self, status_code: int | None, detail: str = ""):
        self.status_code = status_code
        self.detail = detail
        if status_code is None:
            message = f"Pterodactyl API unreachable: {detail}"
        elif detail:
            message = f"Pterodactyl API error {status_code}: {detail}"
        else:
            message = f"Pterodactyl API error {status_code}"
        super().__init__(message)


def _error_detail(response: httpx.Response) -> str:
    """提取错误详情，优先使用 Pterodactyl 的 errors[].detail"""
    text = response.text.strip()
    if not text:
        return ""
    try:
        payload = json.loads(text)
    except ValueError:
        return text[:500]

    if isinstance(payload, dict):
        errors = payload.get('errors')
        if isinstance(errors, list) and errors and isinstance(errors[0], dict):
            detail = errors[0].get('detail') or errors[0].get('code')
            if detail:
                return str(detail)
        if payload.get('error'):
            return str(payload['error'])
    return text[:500]


class PanelClient:
    """面板客户端"""

    def __init__(
        self,
        config: GatewayConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def client(self) -> httpx.AsyncClient:
        """获取 HTTP 客户端（延迟初始化）"""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.config.base_url,
                timeout=httpx.Timeout(
                    self.config.timeout,
                    connect=min(DEFAULT_CONNECT_TIMEOUT, self.config.timeout),
                ),
                verify=self.config.verify_ssl,
                headers={
                    "Authorization": f"Bearer {self.config.api_key}",
                    "Accept": "application/json",
                },
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """关闭客户端"""
        if self._client:
            await self._client.aclose()
            self._client = None

    def server_path(self, server_uuid: str, suffix: str = "") -> str:
        """构建 /api/client/servers/{id} 路径"""
        return f"/api/client/servers/{quote(server_uuid, safe='')}{suffix}"

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
        json_body: Any | None = None,
        text_body: str | None = None,
    ) -> httpx.Response:
        """发送请求，非 2xx 时抛出 PanelAPIError

        Args:
            method: HTTP 方法
            path: 相对于面板地址的路径
            params: 查询参数
            json_body: JSON 请求体
            text_body: 纯文本请求体（text/plain）

        Returns:
            httpx.Response: 成功的响应
        """
        headers = {}
        content = None
        if text_body is not None:
            headers["Content-Type"] = "text/plain"
            content = text_body.encode('utf-8')
        elif json_body is not None:
            headers["Content-Type"] = "application/json"
            content = json.dumps(json_body).encode('utf-8')

        logger.debug("上游请求: %s %s %s", method, path, params or "")

        try:
            response = await self.client.request(
                method,
                path,
                params=params,
                headers=headers,
                content=content,
            )
        except httpx.TimeoutException as e:
            logger.error("上游请求超时: %s %s", method, path)
            raise PanelAPIError(None, "request timed out") from e
        except httpx.HTTPError as e:
            logger.error("上游连接失败: %s %s -> %s", method, path, e)
            raise PanelAPIError(None, str(e) or e.__class__.__name__) from e

        if not response.is_success:
            detail = _error_detail(response)
            logger.warning(
                "上游返回错误: %s %s -> %d %s",
                method,
                path,
                response.status_code,
                detail,
            )
            raise PanelAPIError(response.status_code, detail)

        return response

    async def get_json(self, path: str, params: dict[str, str] | None = None) -> Any:
        """GET 并解析 JSON"""
        response = await self.request("GET", path, params=params)
        if not response.content:
            return None
        return response.json()

    async def get_text(self, path: str, params: dict[str, str] | None = None) -> str:
        """GET 原始文本"""
        response = await self.request("GET", path, params=params)
        return response.text

    async def post_json(self, path: str, body: Any) -> None:
        """POST JSON 请求体"""
        await self.request("POST", path, json_body=body)

    async def post_text(
        self,
        path: str,
        text: str,
        params: dict[str, str] | None = None,
    ) -> None:
        """POST 纯文本请求体"""
        await self.request("POST", path, params=params, text_body=text)

    # ==================== Client API ====================

    async def get_server(self, server_uuid: str) -> Any:
        return await self.get_json(self.server_path(server_uuid))

    async def get_resources(self, server_uuid: str) -> Any:
        return await self.get_json(self.server_path(server_uuid, "/resources"))

    async def get_websocket(self, server_uuid: str) -> Any:
        return await self.get_json(self.server_path(server_uuid, "/websocket"))

    async def send_command(self, server_uuid: str, command: str) -> None:
        await self.post_json(self.server_path(server_uuid, "/command"), {"command": command})

    async def send_power(self, server_uuid: str, signal: str) -> None:
        await self.post_json(self.server_path(server_uuid, "/power"), {"signal": signal})

    async def list_files(self, server_uuid: str, directory: str = "/") -> Any:
        return await self.get_json(
            self.server_path(server_uuid, "/files/list"),
            params={"directory": directory},
        )

    async def read_file(self, server_uuid: str, file: str) -> str:
        return await self.get_text(
            self.server_path(server_uuid, "/files/contents"),
            params={"file": file},
        )

    async def write_file(self, server_uuid: str, file: str, content: str) -> None:
        await self.post_text(
            self.server_path(server_uuid, "/files/write"),
            content,
            params={"file": file},
        )
