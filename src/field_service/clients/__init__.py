"""HTTP clients for external service communication."""

from field_service.clients.chat_platform_client import ChatPlatformClient

__all__ = ["ChatPlatformClient"]
