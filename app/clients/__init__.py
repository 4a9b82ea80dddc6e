from app.clients.groq_client import GroqClient
from app.clients.portal import TokenStore, VerificationAccess
from app.clients.shortener import LinkShortener

__all__ = ["GroqClient", "LinkShortener", "TokenStore", "VerificationAccess"]
