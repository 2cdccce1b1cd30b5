"""Bedrock Panel Gateway

Pterodactyl Client API 代理网关，供 Minecraft Bedrock 服务器管理面板调用。
"""

__version__ = "0.1.0"
