"""Main entry point for the CSV agent server."""
import argparse
import logging
import sys

import uvicorn
from pydantic import ValidationError

from .api.fastapi_app import create_app
from .config.settings import ServerConfig


def main():
    """Main entry point for the application."""
    parser = argparse.ArgumentParser(description="CSV Agent Server")
    parser.add_argument("--port", type=int, default=8000, help="Port for server")
    parser.add_argument("--host", default="0.0.0.0", help="Host for server")
    args = parser.parse_args()

    try:
        config = ServerConfig.from_env()
    except ValidationError as e:
        print(f"Configuration error: {e}")
        sys.exit(1)

    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )
    logger = logging.getLogger(__name__)

    app = create_app(config)

    logger.info(f"Starting CSV agent on {args.host}:{args.port} (provider: {config.llm_provider})")
    uvicorn.run(app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
