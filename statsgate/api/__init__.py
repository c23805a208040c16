from statsgate.api.app import StatsgateServer, create_app
from statsgate.api.middleware import RateLimitMiddleware

__all__ = ["RateLimitMiddleware", "StatsgateServer", "create_app"]
