from .app import create_app
from .context import ApiServices, AuthClaims, RequestContext
from .middleware import StaticTokenVerifier, TokenVerifier
from .routes import ROUTES, RouteSpec

__all__ = [
    "ROUTES",
    "ApiServices",
    "AuthClaims",
    "RequestContext",
    "RouteSpec",
    "StaticTokenVerifier",
    "TokenVerifier",
    "create_app",
]
