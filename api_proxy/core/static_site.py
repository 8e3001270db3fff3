import os
import logging
from typing import Optional
from starlette.exceptions import HTTPException
from starlette.responses import PlainTextResponse, Response
from starlette.staticfiles import StaticFiles
from starlette.types import Scope

logger = logging.getLogger(__name__)


class StaticSite(StaticFiles):
    """Serves the front-end directory, falling back to a single document
    (usually index.html) for paths that match no file.
    """

    def __init__(self, directory: str, fallback: Optional[str] = "index.html"):
        super().__init__(directory=directory, html=True, check_dir=False)
        self.fallback = fallback
        self._missing_logged = False

    async def check_config(self) -> None:
        if not os.path.isdir(self.directory):
            if not self._missing_logged:
                logger.warning(f"Static directory '{self.directory}' does not exist; serving nothing")
                self._missing_logged = True
            return
        await super().check_config()

    async def get_response(self, path: str, scope: Scope) -> Response:
        try:
            return await super().get_response(path, scope)
        except HTTPException as e:
            if e.status_code != 404 or not self.fallback:
                return self._error_response(e)
            try:
                return await super().get_response(self.fallback, scope)
            except HTTPException:
                return self._error_response(e)

    def _error_response(self, exc: HTTPException) -> Response:
        return PlainTextResponse(exc.detail, status_code=exc.status_code, headers=exc.headers)
