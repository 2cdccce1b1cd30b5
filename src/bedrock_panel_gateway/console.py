"""控制台流模块

直接连接 Wings 控制台 WebSocket，对输出行分类并保存在有界缓冲区中。
"""

import asyncio
import itertools
import json
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Iterable, Iterator

import websockets

logger = logging.getLogger(__name__)

DEFAULT_BUFFER_CAPACITY = 500

# Wings 事件名
EVENT_AUTH = "auth"
EVENT_AUTH_SUCCESS = "auth success"
EVENT_CONSOLE_OUTPUT = "console output"
EVENT_SEND_COMMAND = "send command"
EVENT_SEND_LOGS = "send logs"
EVENT_TOKEN_EXPIRING = "token expiring"
EVENT_TOKEN_EXPIRED = "token expired"
EVENT_STATUS = "status"
EVENT_DAEMON_ERROR = "daemon error"
EVENT_JWT_ERROR = "jwt error"


@dataclass
class ConsoleMessage:
    """控制台消息"""
    id: str
    message: str
    type: str                           # info, warning, error, command
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "message": self.message,
            "type": self.type,
        }


@dataclass(frozen=True)
class ClassificationRule:
    """分类规则：包含任一子串或以任一前缀开头即命中"""
    type: str
    contains: tuple[str, ...] = ()
    prefixes: tuple[str, ...] = ()

    def matches(self, line: str) -> bool:
        lowered = line.lower()
        return (
            any(token in lowered for token in self.contains)
            or any(lowered.startswith(prefix) for prefix in self.prefixes)
        )


# 按顺序匹配，第一条命中的规则生效
DEFAULT_RULES = (
    ClassificationRule("error", contains=("[error]", "error:", "exception")),
    ClassificationRule("warning", contains=("[warn]", "warning:")),
    ClassificationRule("command", contains=("[cmd]",), prefixes=("/",)),
)


class MessageClassifier:
    """基于规则表的消息分类器"""

    def __init__(
        self,
        rules: Iterable[ClassificationRule] = DEFAULT_RULES,
        default: str = "info",
    ):
        self.rules = tuple(rules)
        self.default = default

    def __call__(self, line: str) -> str:
        for rule in self.rules:
            if rule.matches(line):
                return rule.type
        return self.default


class ConsoleBuffer:
    """有界环形缓冲区，满后丢弃最旧的消息"""

    def __init__(self, capacity: int = DEFAULT_BUFFER_CAPACITY):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._messages: deque[ConsoleMessage] = deque(maxlen=capacity)

    def append(self, message: ConsoleMessage) -> None:
        self._messages.append(message)

    def clear(self) -> None:
        self._messages.clear()

    def snapshot(self) -> list[ConsoleMessage]:
        return list(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[ConsoleMessage]:
        return iter(self.snapshot())


CredentialsProvider = Callable[[], Awaitable[dict[str, Any]]]


class ConsoleStream:
    """控制台订阅

    首帧发送 auth 事件；令牌即将过期时重新获取凭据并再次认证。
    """

    def __init__(
        self,
        credentials_provider: CredentialsProvider,
        buffer: ConsoleBuffer | None = None,
        classifier: Callable[[str], str] | None = None,
        on_message: Callable[[ConsoleMessage], None] | None = None,
        origin: str | None = None,
        connect: Callable[..., Any] = websockets.connect,
    ):
        self.credentials_provider = credentials_provider
        self.buffer = buffer if buffer is not None else ConsoleBuffer()
        self.classifier = classifier or MessageClassifier()
        self.on_message = on_message
        self.origin = origin
        self._connect = connect
        self._websocket: Any = None
        self._ids = itertools.count(1)
        self.status: str | None = None
        self.authenticated = False

    def record(self, line: str, message_type: str | None = None) -> ConsoleMessage:
        """分类并写入缓冲区"""
        message = ConsoleMessage(
            id=str(next(self._ids)),
            message=line,
            type=message_type or self.classifier(line),
        )
        self.buffer.append(message)
        if self.on_message:
            self.on_message(message)
        return message

    async def _send(self, event: str, *args: Any) -> None:
        if self._websocket is None:
            raise RuntimeError("console stream is not connected")
        await self._websocket.send(json.dumps({"event": event, "args": list(args)}))

    async def _authenticate(self, token: str) -> None:
        logger.debug("发送控制台认证")
        await self._send(EVENT_AUTH, token)

    async def handle_frame(self, raw: str | bytes) -> None:
        """处理一帧入站消息"""
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8", errors="replace")
        try:
            frame = json.loads(raw)
        except json.JSONDecodeError:
            logger.debug("忽略非 JSON 帧: %s", raw[:200])
            return
        if not isinstance(frame, dict):
            return

        event = frame.get("event")
        args = frame.get("args") or []

        if event == EVENT_CONSOLE_OUTPUT:
            for line in args:
                self.record(str(line))
        elif event == EVENT_AUTH_SUCCESS:
            logger.info("控制台认证成功")
            self.authenticated = True
            await self._send(EVENT_SEND_LOGS, None)
        elif event in (EVENT_TOKEN_EXPIRING, EVENT_TOKEN_EXPIRED):
            logger.info("控制台令牌过期，重新认证")
            credentials = await self.credentials_provider()
            await self._authenticate(credentials["token"])
        elif event == EVENT_STATUS:
            self.status = args[0] if args else None
        elif event in (EVENT_DAEMON_ERROR, EVENT_JWT_ERROR):
            detail = " ".join(str(arg) for arg in args)
            logger.warning("控制台错误事件 %s: %s", event, detail)
            self.record(detail or event, "error")

    async def send_command(self, command: str) -> None:
        """通过控制台发送命令"""
        await self._send(EVENT_SEND_COMMAND, command)
        self.record(f"> {command}", "command")

    async def run(self) -> None:
        """连接并持续接收，直到连接关闭"""
        credentials = await self.credentials_provider()
        socket_url = credentials.get("socket")
        token = credentials.get("token")
        if not socket_url or not token:
            raise ValueError("console credentials missing socket or token")

        kwargs: dict[str, Any] = {}
        if self.origin:
            kwargs["origin"] = self.origin

        logger.info("连接控制台: %s", socket_url)
        try:
            async with self._connect(socket_url, **kwargs) as websocket:
                self._websocket = websocket
                await self._authenticate(token)
                async for raw in websocket:
                    await self.handle_frame(raw)
        except websockets.exceptions.ConnectionClosed as e:
            logger.warning("控制台连接已关闭: %s", e)
        finally:
            self._websocket = None
            self.authenticated = False

    async def close(self) -> None:
        if self._websocket is not None:
            await self._websocket.close()

    def start(self) -> "asyncio.Task[None]":
        """在后台任务中运行订阅"""
        return asyncio.create_task(self.run())
