"""Action 调度模块

校验请求、按 action 路由到对应的处理函数，组合上游调用并整理成稳定的响应结构。
"""

import asyncio
import json
import logging
import math
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterator, Literal, Mapping, TypeVar

from pydantic import BaseModel, Field, ValidationError, field_validator

from .config import GatewayConfig
from .errors import ActionFailed, InvalidRequest, MissingServerIdentifier, UnknownAction
from .models import AddonPack, PropertyValue, ResourceUsage, ServerStatusView
from .panel_client import PanelAPIError, PanelClient
from .properties import apply_update, parse_properties

logger = logging.getLogger(__name__)

T = TypeVar("T")

# 固定文件路径
PROPERTIES_FILE = "/server.properties"
PLAYER_FILES = {
    "ops": "/ops.json",
    "whitelist": "/whitelist.json",
    "banned": "/banned-players.json",
    "bannedIps": "/banned-ips.json",
}
PACK_DIRECTORIES = {
    "behavior": "/behavior_packs",
    "resource": "/resource_packs",
}
WORLD_PACK_MANIFESTS = {
    "behavior": "/world_behavior_packs.json",
    "resource": "/world_resource_packs.json",
}
PACK_ID_PREFIX = {"behavior": "bp", "resource": "rp"}
DEFAULT_PACK_VERSION = [1, 0, 0]


# ==================== 请求体模型 ====================

class CommandBody(BaseModel):
    """控制台命令"""
    command: str = Field(min_length=1)


class PowerBody(BaseModel):
    """电源信号"""
    signal: Literal["start", "stop", "restart", "kill"]


class FileWriteBody(BaseModel):
    """写文件"""
    file: str = Field(min_length=1)
    content: str


class UpdatePropertyBody(BaseModel):
    """修改单条配置"""
    key: str = Field(min_length=1)
    value: bool | int | float | str

    @field_validator("key")
    @classmethod
    def check_key(cls, v: str) -> str:
        if "=" in v or "\n" in v or "\r" in v or v.strip() != v:
            raise ValueError("key must be a single token without '=' or line breaks")
        return v

    @field_validator("value")
    @classmethod
    def check_value(cls, v: PropertyValue) -> PropertyValue:
        if isinstance(v, str) and ("\n" in v or "\r" in v):
            raise ValueError("value must not contain line breaks")
        return v


class AddonToggleBody(BaseModel):
    """启用或停用资源包"""
    type: Literal["behavior", "resource"]
    pack_id: str = Field(min_length=1)
    enabled: bool
    version: list[int] | None = None


# ==================== 工具函数 ====================

async def fetch_or_default(awaitable: Awaitable[T], default: T, label: str = "") -> T:
    """执行上游读取，任何失败都退化为默认值

    用于 players / addons 这类多文件读取：单个文件缺失或损坏不影响其它文件。
    """
    try:
        return await awaitable
    except Exception as e:
        logger.warning("读取 %s 失败，使用默认值: %s", label or "upstream", e)
        return default


@contextmanager
def upstream_failure(prefix: str) -> Iterator[None]:
    """把上游错误包装为带上下文的 ActionFailed"""
    try:
        yield
    except PanelAPIError as e:
        raise ActionFailed(f"{prefix}: {e}") from e


def _bytes_to_mb(value: Any) -> int:
    """字节转换为 MB（四舍五入）"""
    try:
        number = float(value or 0)
    except (TypeError, ValueError):
        return 0
    return int(math.floor(number / 1024 / 1024 + 0.5))


def _number(value: Any, default: float = 0) -> Any:
    return value if isinstance(value, (int, float)) and not isinstance(value, bool) else default


def _raise_payload_errors(*payloads: Any) -> None:
    """2xx 响应中携带 errors 时同样视为失败"""
    for payload in payloads:
        if isinstance(payload, dict) and payload.get("errors"):
            errors = payload["errors"]
            detail = None
            if isinstance(errors, list) and errors and isinstance(errors[0], dict):
                detail = errors[0].get("detail")
            raise ActionFailed(detail or "Failed to fetch server data")


def build_status_view(server_uuid: str, server: Any, resources: Any) -> ServerStatusView:
    """由 server 和 resources 两个响应生成状态视图"""
    server_attrs = (server.get("attributes") if isinstance(server, dict) else None) or {}
    resource_attrs = (resources.get("attributes") if isinstance(resources, dict) else None) or {}
    usage = resource_attrs.get("resources") or {}
    limits = server_attrs.get("limits") or {}

    return ServerStatusView(
        id=server_attrs.get("uuid") or server_uuid,
        name=server_attrs.get("name") or "Unknown Server",
        status=resource_attrs.get("current_state") or "offline",
        memory=ResourceUsage(
            current=_bytes_to_mb(usage.get("memory_bytes")),
            limit=_number(limits.get("memory")),
        ),
        cpu=_number(usage.get("cpu_absolute")),
        disk=ResourceUsage(
            current=_bytes_to_mb(usage.get("disk_bytes")),
            limit=_number(limits.get("disk")),
        ),
    )


def build_addon_packs(
    entries: list[Any],
    manifest: list[Any],
    pack_type: str,
) -> list[AddonPack]:
    """由目录列表和世界清单生成资源包记录

    只保留目录（is_file 为 False）。priority 按目录顺序生成，不来自任何清单。
    """
    prefix = PACK_ID_PREFIX[pack_type]
    enabled_ids = {
        item.get("pack_id")
        for item in manifest
        if isinstance(item, dict) and item.get("pack_id") is not None
    }
    directories = [
        entry for entry in entries
        if isinstance(entry, dict)
        and (entry.get("attributes") or {}).get("is_file") is False
    ]

    packs = []
    for index, entry in enumerate(directories):
        name = entry["attributes"].get("name")
        fallback_id = f"{prefix}-{index}"
        packs.append(AddonPack(
            id=name or fallback_id,
            name=name or "Unknown Pack",
            type=pack_type,
            uuid=name or fallback_id,
            enabled=name is not None and name in enabled_ids,
            priority=index + 1,
        ))
    return packs


def toggle_manifest(
    manifest: list[Any],
    pack_id: str,
    enabled: bool,
    version: list[int] | None = None,
) -> list[Any]:
    """在世界清单中加入或移除资源包"""
    remaining = [
        item for item in manifest
        if not (isinstance(item, dict) and item.get("pack_id") == pack_id)
    ]
    if not enabled:
        return remaining
    if len(remaining) != len(manifest):
        # 已启用，保留原有条目（含版本号）
        return manifest
    return manifest + [{"pack_id": pack_id, "version": version or list(DEFAULT_PACK_VERSION)}]


# ==================== 调度器 ====================

@dataclass
class ActionContext:
    """单次请求的上下文"""
    server_uuid: str
    query: dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    def parse_body(self, model: type[BaseModel]) -> Any:
        """把请求体解析为 pydantic 模型，失败时抛出 InvalidRequest"""
        try:
            return model.model_validate_json(self.body or b"{}")
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(part) for part in err['loc']) or 'body'}: {err['msg']}"
                for err in e.errors()
            )
            raise InvalidRequest(f"Invalid request body: {problems}") from e


Handler = Callable[[ActionContext], Awaitable[Any]]


class ActionDispatcher:
    """Action 调度器"""

    def __init__(
        self,
        config: GatewayConfig,
        client_factory: Callable[[GatewayConfig], PanelClient] | None = None,
    ):
        self.config = config
        self._client_factory = client_factory or PanelClient
        self._client: PanelClient | None = None

        self._handlers: dict[str, Handler] = {
            "status": self._status,
            "console": self._console,
            "command": self._command,
            "power": self._power,
            "files": self._files,
            "file-content": self._file_content,
            "file-write": self._file_write,
            "players": self._players,
            "properties": self._properties,
            "update-property": self._update_property,
            "addons": self._addons,
            "addon-toggle": self._addon_toggle,
        }

    @property
    def actions(self) -> list[str]:
        return list(self._handlers)

    @property
    def client(self) -> PanelClient:
        """获取面板客户端（延迟初始化）"""
        if self._client is None:
            self._client = self._client_factory(self.config)
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.close()
            self._client = None

    async def dispatch(
        self,
        server_uuid: str | None,
        action: str | None,
        query: Mapping[str, str] | None = None,
        body: bytes | None = None,
    ) -> Any:
        """校验并执行一个 action

        校验顺序：服务器标识 -> 面板配置 -> action 名称。

        Returns:
            可直接 JSON 序列化的结果
        """
        if not server_uuid or not server_uuid.strip():
            logger.error("缺少服务器 UUID")
            raise MissingServerIdentifier()

        self.config.require()

        handler = self._handlers.get(action or "")
        if handler is None:
            logger.error("未知 action: %s", action)
            raise UnknownAction(action)

        logger.info("处理 action=%s server=%s", action, server_uuid)
        context = ActionContext(
            server_uuid=server_uuid,
            query=dict(query or {}),
            body=body or b"",
        )
        return await handler(context)

    # ==================== 读取 ====================

    async def _read_json_list(self, server_uuid: str, path: str) -> list[Any]:
        """读取 JSON 文件，内容必须是列表"""
        text = await self.client.read_file(server_uuid, path)
        data = json.loads(text)
        if not isinstance(data, list):
            raise ValueError(f"{path} is not a JSON list")
        return data

    async def _list_directory(self, server_uuid: str, directory: str) -> list[Any]:
        payload = await self.client.list_files(server_uuid, directory)
        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, list):
            raise ValueError(f"{directory} listing has no data")
        return data

    # ==================== 处理函数 ====================

    async def _status(self, ctx: ActionContext) -> dict[str, Any]:
        with upstream_failure("Failed to fetch server data"):
            server = await self.client.get_server(ctx.server_uuid)
            resources = await self.client.get_resources(ctx.server_uuid)

        logger.debug("服务器数据: %s", server)
        logger.debug("资源数据: %s", resources)
        _raise_payload_errors(server, resources)

        return build_status_view(ctx.server_uuid, server, resources).to_dict()

    async def _console(self, ctx: ActionContext) -> dict[str, Any]:
        with upstream_failure("Failed to fetch console credentials"):
            payload = await self.client.get_websocket(ctx.server_uuid)

        data = (payload.get("data") if isinstance(payload, dict) else None) or {}
        return {
            "socket": data.get("socket"),
            "token": data.get("token"),
        }

    async def _command(self, ctx: ActionContext) -> dict[str, Any]:
        body = ctx.parse_body(CommandBody)
        logger.info("发送命令: %s", body.command)

        with upstream_failure("Failed to send command"):
            await self.client.send_command(ctx.server_uuid, body.command)
        return {"success": True}

    async def _power(self, ctx: ActionContext) -> dict[str, Any]:
        body = ctx.parse_body(PowerBody)
        logger.info("电源操作: %s", body.signal)

        with upstream_failure("Failed to send power signal"):
            await self.client.send_power(ctx.server_uuid, body.signal)
        return {"success": True}

    async def _files(self, ctx: ActionContext) -> list[Any]:
        directory = ctx.query.get("directory") or "/"

        with upstream_failure("Failed to list files"):
            payload = await self.client.list_files(ctx.server_uuid, directory)

        data = payload.get("data") if isinstance(payload, dict) else None
        return data or []

    async def _file_content(self, ctx: ActionContext) -> dict[str, Any]:
        file = ctx.query.get("file")
        if not file:
            raise InvalidRequest("Query parameter 'file' is required")

        with upstream_failure("Failed to read file"):
            content = await self.client.read_file(ctx.server_uuid, file)

        logger.info("已读取文件: %s", file)
        return {"content": content}

    async def _file_write(self, ctx: ActionContext) -> dict[str, Any]:
        body = ctx.parse_body(FileWriteBody)
        logger.info("写入文件: %s", body.file)

        with upstream_failure("Failed to write file"):
            await self.client.write_file(ctx.server_uuid, body.file, body.content)
        return {"success": True}

    async def _players(self, ctx: ActionContext) -> dict[str, list[Any]]:
        names = list(PLAYER_FILES)
        results = await asyncio.gather(*(
            fetch_or_default(
                self._read_json_list(ctx.server_uuid, PLAYER_FILES[name]),
                [],
                PLAYER_FILES[name],
            )
            for name in names
        ))

        logger.info("玩家数据已加载")
        return dict(zip(names, results))

    async def _properties(self, ctx: ActionContext) -> list[dict[str, Any]]:
        with upstream_failure("Failed to read server.properties"):
            text = await self.client.read_file(ctx.server_uuid, PROPERTIES_FILE)

        properties = parse_properties(text)
        logger.info("已解析 %d 条配置", len(properties))
        return [prop.to_dict() for prop in properties]

    async def _update_property(self, ctx: ActionContext) -> dict[str, Any]:
        body = ctx.parse_body(UpdatePropertyBody)

        with upstream_failure("Failed to update property"):
            text = await self.client.read_file(ctx.server_uuid, PROPERTIES_FILE)
            new_text = apply_update(text, body.key, body.value)
            logger.info("更新配置: %s=%s", body.key, body.value)
            await self.client.write_file(ctx.server_uuid, PROPERTIES_FILE, new_text)

        return {"success": True}

    async def _addons(self, ctx: ActionContext) -> dict[str, list[Any]]:
        behavior_entries, resource_entries, behavior_manifest, resource_manifest = (
            await asyncio.gather(
                fetch_or_default(
                    self._list_directory(ctx.server_uuid, PACK_DIRECTORIES["behavior"]),
                    [],
                    PACK_DIRECTORIES["behavior"],
                ),
                fetch_or_default(
                    self._list_directory(ctx.server_uuid, PACK_DIRECTORIES["resource"]),
                    [],
                    PACK_DIRECTORIES["resource"],
                ),
                fetch_or_default(
                    self._read_json_list(ctx.server_uuid, WORLD_PACK_MANIFESTS["behavior"]),
                    [],
                    WORLD_PACK_MANIFESTS["behavior"],
                ),
                fetch_or_default(
                    self._read_json_list(ctx.server_uuid, WORLD_PACK_MANIFESTS["resource"]),
                    [],
                    WORLD_PACK_MANIFESTS["resource"],
                ),
            )
        )

        logger.info("资源包数据已加载")
        return {
            "behaviorPacks": [
                pack.to_dict()
                for pack in build_addon_packs(behavior_entries, behavior_manifest, "behavior")
            ],
            "resourcePacks": [
                pack.to_dict()
                for pack in build_addon_packs(resource_entries, resource_manifest, "resource")
            ],
        }

    async def _addon_toggle(self, ctx: ActionContext) -> dict[str, Any]:
        body = ctx.parse_body(AddonToggleBody)
        manifest_path = WORLD_PACK_MANIFESTS[body.type]

        with upstream_failure("Failed to toggle addon"):
            try:
                text = await self.client.read_file(ctx.server_uuid, manifest_path)
            except PanelAPIError as e:
                if e.status_code != 404:
                    raise
                text = "[]"

            try:
                manifest = json.loads(text) if text.strip() else []
            except ValueError as e:
                raise ActionFailed(f"Failed to toggle addon: {manifest_path} is not valid JSON") from e
            if not isinstance(manifest, list):
                raise ActionFailed(f"Failed to toggle addon: {manifest_path} is not a JSON list")

            updated = toggle_manifest(manifest, body.pack_id, body.enabled, body.version)
            logger.info("%s资源包: %s (%s)", "启用" if body.enabled else "停用", body.pack_id, body.type)
            await self.client.write_file(
                ctx.server_uuid,
                manifest_path,
                json.dumps(updated, indent=2),
            )

        return {"success": True, "enabled": body.enabled}
