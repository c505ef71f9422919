import argparse
import asyncio
import sys

from loguru import logger


def serve(host: str, port: int) -> None:
    """Run the HTTP server; the auto-checker starts with it when enabled."""
    import uvicorn

    uvicorn.run("api.smartlink.app:app", host=host, port=port)


async def check_once() -> None:
    """One auto-check tick with DB initialization."""
    from workflows.auto_check import run

    await run(once=True)


def main(argv=None):
    from services.smartlink.config import SmartLinkConfig

    parser = argparse.ArgumentParser(description="Smart-link resolution engine")
    sub = parser.add_subparsers(dest="command", required=True)

    serve_parser = sub.add_parser("serve", help="Run the HTTP server")
    serve_parser.add_argument("--host", default="0.0.0.0")
    serve_parser.add_argument("--port", type=int, default=None, help="Default: PORT env or 3000")

    sub.add_parser("check-once", help="Run a single auto-check tick")

    args = parser.parse_args(argv)

    logger.remove()
    logger.add(sys.stderr, level="INFO", format="<level>{level: <8}</level> | {message}")

    if args.command == "serve":
        serve(args.host, args.port or SmartLinkConfig.from_env().port)
    elif args.command == "check-once":
        asyncio.run(check_once())


if __name__ == "__main__":
    main()
