"""响应封装

统一的成功/错误 JSON 信封、状态码映射和跨域响应头。
"""

import logging
from typing import Any

from fastapi import Response
from fastapi.responses import JSONResponse

from .errors import GatewayError

logger = logging.getLogger(__name__)

ALLOWED_HEADERS = "authorization, x-client-info, apikey, content-type, x-server-uuid"

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": ALLOWED_HEADERS,
    "Access-Control-Allow-Methods": "POST, OPTIONS",
}


def success_response(result: Any) -> JSONResponse:
    """成功响应（200）"""
    return JSONResponse(content=result, status_code=200, headers=CORS_HEADERS)


def error_status(exc: BaseException) -> int:
    """异常对应的 HTTP 状态码"""
    if isinstance(exc, GatewayError):
        return exc.status_code
    return 500


def error_response(exc: BaseException) -> JSONResponse:
    """错误响应，信封为 {"error": message}"""
    status_code = error_status(exc)
    message = str(exc) or "Unknown error"

    if status_code >= 500 and not isinstance(exc, GatewayError):
        logger.exception("网关处理失败: %s", message, exc_info=exc)
    else:
        logger.warning("请求失败 (%d): %s", status_code, message)

    return JSONResponse(
        content={"error": message},
        status_code=status_code,
        headers=CORS_HEADERS,
    )


def preflight_response() -> Response:
    """CORS 预检响应：空响应体，200"""
    return Response(status_code=200, headers=CORS_HEADERS)
