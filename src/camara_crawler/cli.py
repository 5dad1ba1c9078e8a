import argparse
import asyncio
import signal
import sys
from typing import List, Optional

from aiohttp import web
from pymongo.errors import ConfigurationError

from .app import CrawlerApp, mongo_database
from .config import RESOURCE_NAMES, AppCfg, load_app_config
from .errors import ConfigError
from .log import setup_logging
from .service import create_app


async def crawl_once(crawler_app: CrawlerApp, name: str) -> int:
    ctl = crawler_app.controller(name)
    if ctl is None:
        print(f"Resource '{name}' is disabled in config", file=sys.stderr, flush=True)
        return 2

    def _stop(*_):
        if ctl.request_stop():
            print("STOP requested (Ctrl+C / SIGTERM).", flush=True)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _stop)
        except NotImplementedError:
            pass

    st = await ctl.run()

    print("CRAWL SUMMARY:", flush=True)
    print(f"  resource:    {st.resource}", flush=True)
    print(f"  pages:       {st.page}", flush=True)
    print(f"  processed:   {st.processed}", flush=True)
    print(f"  unchanged:   {st.unchanged}", flush=True)
    print(f"  failed:      {st.failed}", flush=True)
    if st.last_error:
        print(f"  error:       {st.last_error}", flush=True)
        return 1
    return 0


def serve(cfg: AppCfg, crawler_app: CrawlerApp, host: Optional[str], port: Optional[int]) -> int:
    web.run_app(
        create_app(crawler_app),
        host=host or cfg.server.host,
        port=port or cfg.server.port,
        print=None,
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="camara-crawler", description="Chamber of Deputies open-data ingestion")
    parser.add_argument("--config", default=None, help="YAML config path (default: $CONFIG_PATH or config/config.yaml)")
    sub = parser.add_subparsers(dest="cmd", required=True)

    srv = sub.add_parser("serve", help="Run the start/stop/status HTTP service")
    srv.add_argument("--host", default=None)
    srv.add_argument("--port", type=int, default=None)

    crawl = sub.add_parser("crawl", help="Run one crawl in the foreground")
    crawl.add_argument("resource", choices=RESOURCE_NAMES)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        cfg = load_app_config(args.config)
        client, db = mongo_database(cfg)
    except (OSError, ConfigError, ConfigurationError) as e:
        print(f"[ERROR] {e}", file=sys.stderr, flush=True)
        return 2

    listener = setup_logging(cfg.log)
    try:
        crawler_app = CrawlerApp(cfg, db)
        crawler_app.setup()

        if args.cmd == "serve":
            return serve(cfg, crawler_app, args.host, args.port)
        return asyncio.run(crawl_once(crawler_app, args.resource))
    finally:
        client.close()
        if listener is not None:
            listener.stop()
