"""数据模型定义"""

from dataclasses import asdict, dataclass, field
from typing import Any, Iterable

PropertyValue = str | int | float | bool


@dataclass
class ResourceUsage:
    """资源用量（MB）"""
    current: int = 0
    limit: int = 0


@dataclass
class ServerStatusView:
    """服务器状态视图"""
    id: str
    name: str
    status: str = "offline"             # running, offline, starting, stopping
    memory: ResourceUsage = field(default_factory=ResourceUsage)
    cpu: float = 0.0                    # 百分比
    disk: ResourceUsage = field(default_factory=ResourceUsage)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ServerProperty:
    """server.properties 中的一条配置"""
    key: str
    value: PropertyValue
    type: str                           # string, number, boolean
    description: str = ""
    raw: str = field(default="", repr=False)  # 文件中的原始值文本

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "value": self.value,
            "type": self.type,
            "description": self.description,
        }


@dataclass
class AddonPack:
    """行为包 / 资源包"""
    id: str
    name: str
    type: str                           # behavior, resource
    uuid: str
    version: str = "1.0.0"
    enabled: bool = False
    priority: int = 1                   # 按目录列表顺序生成，从 1 开始

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class PlayerRecord:
    """玩家记录（由白名单和封禁列表合并得到）"""
    id: str
    name: str
    uuid: str
    online: bool = False                # 静态文件无法得知在线状态
    banned: bool = False
    ip_banned: bool = False
    op: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "uuid": self.uuid,
            "online": self.online,
            "banned": self.banned,
            "ipBanned": self.ip_banned,
            "op": self.op,
        }


def _player_key(entry: dict[str, Any]) -> str | None:
    uuid = entry.get("uuid") or entry.get("xuid")
    if uuid:
        return str(uuid)
    name = entry.get("name")
    if name:
        return f"name:{str(name).lower()}"
    return None


def merge_players(
    whitelist: Iterable[Any],
    banned: Iterable[Any],
    banned_ips: Iterable[Any] = (),
    ops: Iterable[Any] = (),
) -> list[PlayerRecord]:
    """按 uuid 合并白名单、封禁玩家和封禁 IP 列表

    只出现在封禁列表中的玩家同样会生成完整记录。封禁 IP 条目通常只有 ip
    字段，只有带 uuid 或 name 的条目才能关联到玩家。
    """
    players: dict[str, PlayerRecord] = {}
    names: dict[str, str] = {}

    def upsert(entry: Any) -> PlayerRecord | None:
        if not isinstance(entry, dict):
            return None
        key = _player_key(entry)
        if key is None:
            return None
        name = str(entry.get("name") or "")
        uuid = "" if key.startswith("name:") else key
        # uuid 未知时按名称关联到已有玩家
        name_key = f"name:{name.lower()}" if name else None
        if key not in players and name_key in names:
            existing = players[names[name_key]]
            if not uuid or not existing.uuid:
                key = names[name_key]
        record = players.get(key)
        if record is None:
            record = PlayerRecord(id=uuid or name, name=name, uuid=uuid)
            players[key] = record
        else:
            if name and not record.name:
                record.name = name
            if uuid and not record.uuid:
                record.uuid = uuid
                record.id = uuid
        if name_key:
            names.setdefault(name_key, key)
        return record

    for entry in whitelist:
        upsert(entry)

    for entry in banned:
        record = upsert(entry)
        if record:
            record.banned = True

    for entry in banned_ips:
        record = upsert(entry)
        if record:
            record.ip_banned = True

    for entry in ops:
        if not isinstance(entry, dict):
            continue
        key = _player_key(entry)
        if key is None:
            continue
        name = str(entry.get("name") or "").lower()
        if key not in players:
            key = names.get(f"name:{name}", key)
        if key in players:
            players[key].op = True

    return list(players.values())
