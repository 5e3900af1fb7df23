#!/usr/bin/env python3
"""
Olric Exporter CLI - Main entry point

Parses flags (optionally merged with a YAML configuration file), registers
the Olric collector and serves the metrics endpoint until interrupted.
"""

import logging
import platform
import sys

from prometheus_client.core import CollectorRegistry

from . import __version__
from .config import DEFAULTS, LOG_LEVELS, ConfigError, build_config, build_parser, resolve_settings
from .http_server import ListenError, create_server
from .olric_collector import OlricCollector


def main(args_list=None):
    parser = build_parser()
    args = parser.parse_args(args_list)

    logging.basicConfig(
        level=LOG_LEVELS[args.log_level or DEFAULTS['log_level']],
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    logger = logging.getLogger('olric_exporter')

    try:
        settings = resolve_settings(args)
    except ConfigError as e:
        logger.error(str(e))
        sys.exit(1)

    # The config file may set its own log level
    level = str(settings.get('log_level', DEFAULTS['log_level'])).lower()
    if level in LOG_LEVELS:
        logging.getLogger().setLevel(LOG_LEVELS[level])

    try:
        config = build_config(settings, logger=logger)
    except ConfigError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)

    run(config)


def run(config):
    """Register the collector and serve metrics until interrupted"""
    logger = config.logger
    logger.info(f"Starting olric_exporter (version={__version__}, python={platform.python_version()})")
    logger.info(f"Olric target - address: {config.address}, timeout: {config.timeout}s, probe: {config.probe}")

    registry = CollectorRegistry()
    registry.register(OlricCollector(config))

    try:
        server = create_server(config.listen_address, registry, config.telemetry_path)
    except ListenError as e:
        logger.error(f"Error running HTTP server: {e}")
        sys.exit(1)

    logger.info(f"Listening on address {config.listen_address} (metrics path: {config.telemetry_path})")
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Received interrupt signal, shutting down...")
    finally:
        server.server_close()
    sys.exit(0)


if __name__ == '__main__':
    main()
