import argparse
import logging
from pathlib import Path

import uvicorn

from api.app import create_app
from config import SystemConfig
from utils.logging_config import setup_logging


def initialize_directories(config: SystemConfig):
    """Create necessary directories"""
    Path(config.storage.uploads_dir).mkdir(parents=True, exist_ok=True)
    Path(config.storage.database_path).parent.mkdir(parents=True, exist_ok=True)


def main():
    """Main application entry point"""
    parser = argparse.ArgumentParser(description="Studio customer server")
    parser.add_argument('-c', '--config', default='config.yaml', help='Path to YAML config')
    parser.add_argument('--host', help='Override the bind address')
    parser.add_argument('--port', type=int, help='Override the port')
    args = parser.parse_args()

    # Load configuration
    config = SystemConfig.load(args.config)
    if args.host:
        config.server.host = args.host
    if args.port:
        config.server.port = args.port

    # Setup logging
    setup_logging(config.log_level, config.log_dir, config.json_logs)
    logger = logging.getLogger(__name__)
    logger.info("Starting studio server on %s:%d", config.server.host, config.server.port)

    # Initialize directories
    initialize_directories(config)

    app = create_app(config)

    # log_config=None keeps the handlers installed above
    uvicorn.run(app, host=config.server.host, port=config.server.port, log_config=None)


if __name__ == "__main__":
    main()
