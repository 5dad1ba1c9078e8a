import json
import logging
from typing import Any, Dict

from aiohttp import web

from .app import CrawlerApp
from .controller import CrawlController

logger = logging.getLogger(__name__)

CRAWLER_APP = web.AppKey("crawler_app", CrawlerApp)

routes = web.RouteTableDef()


def _controller(request: web.Request) -> CrawlController:
    name = request.match_info["resource"]
    ctl = request.app[CRAWLER_APP].controller(name)
    if ctl is None:
        raise web.HTTPNotFound(
            text=json.dumps({"error": f"unknown resource: {name}"}),
            content_type="application/json",
        )
    return ctl


def _label(ctl: CrawlController) -> str:
    return ctl.name.capitalize()


@routes.get("/health")
async def health(request: web.Request) -> web.Response:
    return web.json_response({"status": "ok"})


@routes.get("/status")
async def status_all(request: web.Request) -> web.Response:
    return web.json_response(request.app[CRAWLER_APP].summary())


async def start(request: web.Request) -> web.Response:
    ctl = _controller(request)
    if ctl.start():
        body: Dict[str, Any] = {"message": f"{_label(ctl)} crawler started", "running": True}
    else:
        body = {"message": f"{_label(ctl)} crawler is already running", "running": True}
    return web.json_response(body)


async def stop(request: web.Request) -> web.Response:
    ctl = _controller(request)
    if await ctl.stop():
        body = {"message": f"{_label(ctl)} crawler stopped", "running": False}
    else:
        body = {"message": f"{_label(ctl)} crawler is not running", "running": False}
    return web.json_response(body)


@routes.get("/{resource}/status")
async def status(request: web.Request) -> web.Response:
    return web.json_response(_controller(request).status().to_dict())


@routes.get("/{resource}/count")
async def count(request: web.Request) -> web.Response:
    st = _controller(request).status()
    return web.json_response({"resource": st.resource, "running": st.running, "processed": st.processed})


for _method in ("GET", "POST"):
    routes.route(_method, "/{resource}/start")(start)
    routes.route(_method, "/{resource}/stop")(stop)


async def _on_cleanup(app: web.Application) -> None:
    logger.info("SHUTDOWN: stopping running crawls")
    await app[CRAWLER_APP].stop_all()


def create_app(crawler_app: CrawlerApp) -> web.Application:
    app = web.Application()
    app[CRAWLER_APP] = crawler_app
    app.add_routes(routes)
    app.on_cleanup.append(_on_cleanup)
    return app
