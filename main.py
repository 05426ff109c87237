import asyncio
import sys

from core.config import settings
from core.logger import setup_logging, logger


async def start_api(host: str = "0.0.0.0", port: int = 8000):
    import uvicorn
    from api.main import app
    config = uvicorn.Config(app, host=host, port=port, log_level="debug" if settings.DEBUG else "info")
    server = uvicorn.Server(config)
    await server.serve()


async def main():
    # For scaling, run `uvicorn api.main:app` directly; this is the single-node entrypoint.
    port = 8000
    if len(sys.argv) > 1 and sys.argv[1].isdigit():
        port = int(sys.argv[1])

    setup_logging()
    logger.info("Starting PolymerLearn API...", env=settings.ENV, port=port)
    await start_api(port=port)


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except (KeyboardInterrupt, SystemExit):
        logger.info("Application stopped.")
