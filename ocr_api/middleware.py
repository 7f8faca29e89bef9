import logging

from starlette.datastructures import Headers
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from .config import Settings
from .errors import render_error
from .services.recognition import file_too_large

logger = logging.getLogger(__name__)


class UploadLimitMiddleware:
    """Stops oversized recognize-text bodies before the multipart form is parsed.

    A declared Content-Length over the limit is answered straight away without
    reading the body. Bodies without a length are counted as they stream in and
    abandoned as soon as they pass the limit. The exact per-file limit is still
    applied by the handler; this gate allows for multipart framing on top.
    """

    def __init__(self, app: ASGIApp, cfg: Settings, path: str = "/api/recognize-text"):
        self.app = app
        self.cfg = cfg
        self.path = path
        self.max_body = cfg.upload_max_bytes + cfg.upload_overhead_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope["method"] != "POST" or scope["path"] != self.path:
            await self.app(scope, receive, send)
            return

        declared = Headers(scope=scope).get("content-length", "")
        if declared.isdigit() and int(declared) > self.max_body:
            exc = file_too_large(self.cfg, f"Content-Length {declared} exceeds {self.max_body}")
            logger.warning("Rejected %s before reading body: %s", self.path, exc.detail)
            response = render_error(exc.status_code, exc.message, exc.detail, verbose=self.cfg.is_development)
            await response(scope, receive, send)
            return

        received = 0

        async def limited_receive() -> Message:
            nonlocal received
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > self.max_body:
                    raise file_too_large(self.cfg, f"Request body passed {self.max_body} bytes while streaming")
            return message

        await self.app(scope, limited_receive, send)
