import argparse
import logging
import secrets
from typing import AsyncIterator, Awaitable, Callable, Dict, Optional

import aiohttp
from aiohttp import web

from . import __version__
from .errors import ConfigurationError
from .github import GitHubClient
from .logs import LogSink
from .payload import decode_payload
from .pipeline import SubmissionPipeline
from .settings import Settings, load_settings, parse_port
from .site_config import RepositoryTarget
from .submission import SubmissionRequest

MAX_LINE_SIZE = 32 * 1024
API_VERSION = "3.0.0"

logger = logging.getLogger(__name__)

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


def _cors_headers() -> Dict[str, str]:
    return {
        "Access-Control-Allow-Origin": "*",
        "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
        "Access-Control-Allow-Headers": "Content-Type, Authorization",
    }


@web.middleware
async def cors_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    if request.method == "OPTIONS":
        return web.Response(status=200, headers=_cors_headers())
    try:
        response = await handler(request)
    except web.HTTPException as exc:
        exc.headers.update(_cors_headers())
        raise
    response.headers.update(_cors_headers())
    return response


async def health_handler(request: web.Request) -> web.Response:
    return web.json_response({"status": "ok"})


async def version_handler(request: web.Request) -> web.Response:
    return web.json_response({"version": API_VERSION})


async def connect_handler(request: web.Request) -> web.Response:
    info = request.match_info
    return web.json_response(
        {
            "success": True,
            "service": info["service"],
            "owner": info["owner"],
            "repository": info["repository"],
        }
    )


async def entry_handler(request: web.Request) -> web.Response:
    info = request.match_info
    logs = LogSink(request_id=secrets.token_hex(4))
    body = await request.read()
    payload = decode_payload(body, request.headers.get("Content-Type", ""), logs)
    submission = SubmissionRequest(
        target=RepositoryTarget(info["owner"], info["repository"], info["branch"]),
        property=info["property"],
        fields=payload.fields,
        options=payload.options,
    )
    pipeline: SubmissionPipeline = request.app["pipeline"]
    result = await pipeline.handle(submission, logs)
    if result.redirect:
        raise web.HTTPFound(result.redirect)
    return web.json_response(result.payload, status=result.status)


def _github_session_context(settings: Settings):
    async def github_session(app: web.Application) -> AsyncIterator[None]:
        async with aiohttp.ClientSession() as session:
            client = GitHubClient(session, settings.github_token, settings.github_api_url)
            app["pipeline"] = SubmissionPipeline(settings, client)
            yield

    return github_session


def create_app(settings: Optional[Settings] = None, client: Optional[GitHubClient] = None) -> web.Application:
    """Build the application; pass ``client`` to replace the GitHub client."""
    settings = settings or load_settings()
    app = web.Application(middlewares=[cors_middleware])
    app["settings"] = settings
    if client is not None:
        app["pipeline"] = SubmissionPipeline(settings, client)
    else:
        app.cleanup_ctx.append(_github_session_context(settings))
    app.router.add_route("GET", "/", health_handler)
    app.router.add_route("GET", "/api/health", health_handler)
    app.router.add_route("GET", "/v3/version", version_handler)
    app.router.add_route("POST", "/v3/entry/{owner}/{repository}/{branch}/{property}", entry_handler)
    app.router.add_route("GET", "/v3/connect/{service}/{owner}/{repository}", connect_handler)
    return app


def _parse_port_argument(value: str) -> int:
    try:
        return parse_port(value)
    except ConfigurationError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def _parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=f"Run the formbridge {__version__} server.")
    parser.add_argument("--bind", help="Bind address for the server.")
    parser.add_argument("--port", type=_parse_port_argument, help="Port number for the server.")
    parser.add_argument(
        "--debug",
        action="store_true",
        default=None,
        help="Log debug output and include request logs in error responses.",
    )
    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> None:
    args = _parse_args(argv)
    settings = load_settings(bind_override=args.bind, port_override=args.port, debug_override=args.debug)
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    if not settings.github_token:
        logger.warning("No GitHub token configured; entry submissions will fail with CONFIGURATION_ERROR.")
    web.run_app(
        create_app(settings),
        host=settings.bind,
        port=settings.port,
        max_line_size=MAX_LINE_SIZE,
    )


if __name__ == "__main__":
    main()
