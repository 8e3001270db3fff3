from starlette.types import ASGIApp, Scope, Receive, Send

ADMIN_PREFIX = "/__"
API_PREFIX = "/api/"


class MountApiFirst:
    """Admin paths first, then the API proxy, then static assets.

    Lifespan events go to the proxy, which owns the outbound client.
    """

    def __init__(self, admin_app: ASGIApp, proxy_app: ASGIApp, static_app: ASGIApp,
                 api_prefix: str = API_PREFIX) -> None:
        self.admin_app = admin_app
        self.proxy_app = proxy_app
        self.static_app = static_app
        self.api_prefix = api_prefix

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.proxy_app(scope, receive, send)
        elif scope["path"].startswith(ADMIN_PREFIX):
            await self.admin_app(scope, receive, send)
        elif scope["path"].startswith(self.api_prefix):
            await self.proxy_app(scope, receive, send)
        else:
            await self.static_app(scope, receive, send)
