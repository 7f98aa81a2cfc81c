"""
API route modules.
"""
from app.api.routes import auth, registration, subscriptions

__all__ = ["auth", "registration", "subscriptions"]
