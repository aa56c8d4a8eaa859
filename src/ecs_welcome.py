"""
ECS welcome service.
A FastAPI application exposing a single plain-text greeting at GET /ecs/welcome,
plus the helpers needed to run it under uvicorn on a fixed or ephemeral port.
"""
import logging
import socket
import sys
import threading
import time
from typing import Literal

import uvicorn
from fastapi import APIRouter, FastAPI, status
from fastapi.responses import PlainTextResponse
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

WELCOME_MESSAGE = "Welcome to the world of ECS...!"

LogLevel = Literal["critical", "error", "warning", "info", "debug", "trace"]

router = APIRouter(prefix="/ecs")


@router.get(
    "/welcome",
    response_class=PlainTextResponse,
    status_code=status.HTTP_200_OK,
    summary="Welcome message",
)
async def welcome() -> str:
    """Return the fixed welcome message as plain text."""
    return WELCOME_MESSAGE


def create_app() -> FastAPI:
    """Build the application with the ECS router mounted."""
    application = FastAPI(title="ECS Welcome API", version="1.0.0")
    application.include_router(router)
    return application


app = create_app()


class Settings(BaseSettings):
    """Listening address and log level, read from HOST, PORT and LOG_LEVEL.

    Invalid values raise pydantic's ValidationError, a ValueError subclass.
    """

    model_config = SettingsConfigDict(
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    host: str = Field(default="0.0.0.0", description="Interface to bind.")
    port: int = Field(
        default=8000,
        ge=0,
        le=65535,
        description="TCP port; 0 lets the OS pick a free one.",
    )
    log_level: LogLevel = Field(default="info", description="uvicorn log level.")

    @field_validator("log_level", mode="before")
    @classmethod
    def _lower_log_level(cls, value):
        return value.lower() if isinstance(value, str) else value


def configure_logging(level: str = "info") -> None:
    """Basic root logging for the command line entry point."""
    # uvicorn's "trace" sits below DEBUG and is unknown to the stdlib
    numeric = logging.DEBUG if level == "trace" else getattr(logging, level.upper())
    logging.basicConfig(
        level=numeric,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def bind_socket(host: str, port: int) -> socket.socket:
    """Create and bind a TCP socket; port 0 lets the OS pick one.

    Bind failures (port in use, bad address) propagate as OSError.
    """
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    try:
        sock.bind((host, port))
    except OSError:
        sock.close()
        raise
    return sock


def _display_host(host: str) -> str:
    if host in ("", "0.0.0.0"):
        return "127.0.0.1"
    if host == "::":
        return "[::1]"
    if ":" in host:
        return f"[{host}]"
    return host


class _WelcomeUvicorn(uvicorn.Server):
    """uvicorn server that announces the bound URL once it accepts connections."""

    def __init__(self, config: uvicorn.Config, url: str):
        super().__init__(config)
        self.url = url

    async def startup(self, sockets=None):
        await super().startup(sockets=sockets)
        if self.started:
            logger.info("ECS welcome service listening on %s", self.url)


def _build_server(application, settings: Settings, sock: socket.socket) -> _WelcomeUvicorn:
    port = sock.getsockname()[1]
    config = uvicorn.Config(
        application, host=settings.host, port=port, log_level=settings.log_level
    )
    return _WelcomeUvicorn(config, f"http://{_display_host(settings.host)}:{port}")


class WelcomeServer:
    """Run the service under uvicorn on a background thread.

    The socket is bound before uvicorn starts, so the real port is known
    even when port 0 was requested.

    Example:
        with WelcomeServer(Settings(host="127.0.0.1", port=0)) as server:
            requests.get(f"{server.url}/ecs/welcome")
    """

    def __init__(self, settings=None, application=None):
        self.settings = settings or Settings()
        self.app = application or app
        self._server = None
        self._socket = None
        self._thread = None

    @property
    def port(self) -> int:
        if self._socket is None:
            raise RuntimeError("server is not started")
        return self._socket.getsockname()[1]

    @property
    def url(self) -> str:
        return f"http://{_display_host(self.settings.host)}:{self.port}"

    def start(self, timeout: float = 5.0) -> "WelcomeServer":
        if self._thread is not None:
            raise RuntimeError("server is already started")

        self._socket = bind_socket(self.settings.host, self.settings.port)
        self._server = _build_server(self.app, self.settings, self._socket)
        self._thread = threading.Thread(
            target=self._server.run,
            kwargs={"sockets": [self._socket]},
            name="ecs-welcome",
            daemon=True,
        )
        self._thread.start()

        deadline = time.monotonic() + timeout
        while not self._server.started:
            if not self._thread.is_alive() or time.monotonic() > deadline:
                self.stop()
                raise RuntimeError("ECS welcome service failed to start")
            time.sleep(0.01)

        return self

    def stop(self, timeout: float = 5.0) -> None:
        if self._thread is None:
            return
        started = self._server.started
        self._server.should_exit = True
        self._thread.join(timeout)
        self._socket.close()
        if started:
            logger.info("ECS welcome service stopped")
        self._thread = None
        self._server = None
        self._socket = None

    def __enter__(self):
        return self.start()

    def __exit__(self, *exc_info):
        self.stop()


def serve(settings: Settings) -> None:
    """Run the service in the foreground until interrupted."""
    sock = bind_socket(settings.host, settings.port)
    server = _build_server(app, settings, sock)
    try:
        server.run(sockets=[sock])
    finally:
        sock.close()
        if server.started:
            logger.info("ECS welcome service stopped")


def main() -> int:
    try:
        settings = Settings()
    except ValueError as exc:
        configure_logging()
        logger.error("invalid configuration: %s", exc)
        return 1

    configure_logging(settings.log_level)
    try:
        serve(settings)
    except OSError as exc:
        logger.error(
            "cannot bind %s:%d: %s", settings.host, settings.port, exc
        )
        return 1
    return 0


if __name__ == "__main__":
    # Run the app when called as a module
    sys.exit(main())
