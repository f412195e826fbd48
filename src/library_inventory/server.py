"""
HTTP server entry point for the library inventory backend.

Started via ``python -m library_inventory`` or the ``library-inventory``
console script. Host, port and the database location come from
``LIBRARY_*`` environment variables (see ``config.py``).
"""

import logging
import sys

import uvicorn

from .api.app import configure_logging, create_app
from .config import get_config
from .database.session import DatabaseManager

logger = logging.getLogger(__name__)


def main() -> None:
    """Create the schema if needed and serve the API until interrupted."""
    config = get_config()
    configure_logging(config.log_level)

    logger.info("=" * 60)
    logger.info("Library Inventory API")
    logger.info("Version: %s", config.server_version)
    logger.info("Listening on: %s:%s", config.http_host, config.http_port)
    logger.info("Debug Mode: %s", config.debug)
    logger.info("=" * 60)

    db_manager = DatabaseManager(config.get_database_url(), echo=config.debug)
    try:
        db_manager.init_database()
        app = create_app(config, db_manager=db_manager)
        uvicorn.run(
            app,
            host=config.http_host,
            port=config.http_port,
            log_level=config.log_level.lower(),
        )
    except KeyboardInterrupt:
        logger.info("Server stopped by user")
    except Exception:
        logger.exception("Failed to start server")
        sys.exit(1)
    finally:
        db_manager.close()


if __name__ == "__main__":
    main()
