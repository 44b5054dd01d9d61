import logging

import uvicorn

from dialect_gateway.core.config import get_settings
from dialect_gateway.main import app

logger = logging.getLogger("dialect_gateway")


def main() -> None:
    settings = get_settings()
    logger.info("Starting uvicorn on %s:%s", settings.host, settings.port)
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
