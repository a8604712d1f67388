from app.platform.security.context import AuthContext, system_context

__all__ = ["AuthContext", "system_context"]
