"""server.properties 解析器

解析和改写 server.properties 的 key=value 文本格式，并根据值的内容推断类型。
"""

import math
import re
from typing import Iterable

from .models import PropertyValue, ServerProperty

# 十进制数字：可选符号、整数部分、小数部分、指数
_NUMBER_RE = re.compile(r'[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?')
_INTEGER_RE = re.compile(r'[+-]?\d+')


def infer_value(raw: str) -> tuple[PropertyValue, str]:
    """推断配置值的类型

    顺序固定：先判断 "true"/"false"，再判断数字，其余都是字符串。

    Returns:
        (value, type) 二元组
    """
    if raw == "true" or raw == "false":
        return raw == "true", "boolean"

    text = raw.strip()
    if text and _NUMBER_RE.fullmatch(text):
        if _INTEGER_RE.fullmatch(text):
            return int(text), "number"
        number = float(text)
        if math.isfinite(number):
            return number, "number"

    return raw, "string"


def _split_line(line: str) -> tuple[str, str] | None:
    """拆分一行配置，注释和空行返回 None"""
    trimmed = line.strip()
    if not trimmed or trimmed.startswith('#'):
        return None
    key, _, value = trimmed.partition('=')
    return key.strip(), value


def parse_properties(text: str) -> list[ServerProperty]:
    """解析 server.properties 文本

    只按第一个 "=" 拆分，值中可以包含更多 "="。

    Args:
        text: 文件内容

    Returns:
        list[ServerProperty]: 按文件顺序排列的配置项
    """
    properties = []
    for line in text.split('\n'):
        parts = _split_line(line)
        if parts is None:
            continue
        key, raw = parts
        value, value_type = infer_value(raw)
        properties.append(ServerProperty(
            key=key,
            value=value,
            type=value_type,
            raw=raw,
        ))
    return properties


def format_value(value: PropertyValue) -> str:
    """把配置值转换为文件中的文本"""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def apply_update(text: str, key: str, value: PropertyValue) -> str:
    """改写指定 key 的配置行

    只替换第一条匹配的行，其它行原样保留；找不到时在末尾追加。
    """
    line_value = format_value(value)
    lines = text.split('\n')
    crlf = '\r\n' in text
    updated = False

    for index, line in enumerate(lines):
        parts = _split_line(line)
        if parts is None or parts[0] != key:
            continue
        ending = '\r' if line.endswith('\r') else ''
        lines[index] = f"{key}={line_value}{ending}"
        updated = True
        break

    if not updated:
        if lines[-1] == '':
            # 保留文件末尾的换行
            ending = '\r' if crlf else ''
            lines.insert(len(lines) - 1, f"{key}={line_value}{ending}")
        else:
            if crlf and not lines[-1].endswith('\r'):
                lines[-1] += '\r'
            lines.append(f"{key}={line_value}")

    return '\n'.join(lines)


def serialize_properties(properties: Iterable[ServerProperty]) -> str:
    """把配置项重新写成文本（注释和空行不保留）"""
    lines = []
    for prop in properties:
        raw = prop.raw if prop.raw or prop.value == "" else format_value(prop.value)
        lines.append(f"{prop.key}={raw}")
    return '\n'.join(lines)
