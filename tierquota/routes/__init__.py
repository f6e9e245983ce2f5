# tierquota/routes/__init__.py
from tierquota.routes import admin, generate, quota, users

__all__ = ["admin", "generate", "quota", "users"]
