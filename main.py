import sys

from dotenv import load_dotenv
from loguru import logger

from medicitas.api.sandbox_server import run_server
from medicitas.config import get_settings

load_dotenv()


def configure_logging(level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level.upper())


if __name__ == "__main__":
    settings = get_settings()
    configure_logging(settings.log_level)
    logger.info(f"Starting sandbox backend on {settings.sandbox_host}:{settings.sandbox_port}")
    run_server()
