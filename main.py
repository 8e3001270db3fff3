import sys
import logging
import uvicorn
from typing import Optional
import httpx
from dotenv import load_dotenv
from api_proxy.config.settings import Settings
from api_proxy.core.errors import ConfigError
from api_proxy.core.route_table import RouteTable
from api_proxy.core.forwarding_proxy import ForwardingProxy
from api_proxy.core.header_rewrite import HeaderRewriter
from api_proxy.core.static_site import StaticSite
from api_proxy.core.admin_router import AdminRouter
from api_proxy.core.mount import MountApiFirst
from api_proxy.core.trace import TraceMiddleware
from api_proxy.core.logging_setup import configure_logging

logger = logging.getLogger(__name__)


def build_app(settings: Settings, route_table: RouteTable,
              client: Optional[httpx.AsyncClient] = None):
    header_rewriter = HeaderRewriter(
        forward=settings.forward_headers,
        set_=settings.upstream_headers,
    )
    proxy = ForwardingProxy(
        route_table,
        timeout=settings.upstream_timeout,
        client=client,
        header_rewriter=header_rewriter,
    )

    # Admin gets direct access to the proxy and its route table
    admin_app = AdminRouter(proxy)
    static_app = StaticSite(settings.static_dir, fallback=settings.static_fallback)

    return TraceMiddleware(MountApiFirst(admin_app, proxy, static_app))


def main() -> None:
    # Load environment variables from .env file
    load_dotenv()
    configure_logging()

    try:
        settings = Settings.from_env()
        route_table = RouteTable.load(settings.route_config_path)
    except ConfigError as e:
        logger.error(f"Startup aborted: {e}")
        sys.exit(1)

    app = build_app(settings, route_table)
    logger.info(f"Server is running on http://localhost:{settings.port}")
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    main()
