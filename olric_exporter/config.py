#!/usr/bin/env python3
"""
Exporter Configuration

Command-line flags, optional YAML configuration file and the immutable
ExporterConfig shared by the collector and the HTTP server.
"""

import argparse
import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

import yaml

from . import __version__
from .olric_client import parse_address

NAMESPACE = 'olric'

DEFAULTS = {
    'olric_address': 'localhost:3320',
    'olric_timeout': '1s',
    'olric_probe': 'stats',
    'listen_address': ':9150',
    'telemetry_path': '/metrics',
    'log_level': 'info',
}

PROBES = ('stats', 'ping')

LOG_LEVELS = {
    'debug': logging.DEBUG,
    'info': logging.INFO,
    'warn': logging.WARNING,
    'error': logging.ERROR,
}

_DURATION_UNITS = {
    'ns': 1e-9,
    'us': 1e-6,
    'µs': 1e-6,
    'ms': 1e-3,
    's': 1.0,
    'm': 60.0,
    'h': 3600.0,
}
_DURATION_RE = re.compile(r'(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)')


class ConfigError(Exception):
    """Raised when the exporter configuration is invalid"""


def parse_duration(value) -> float:
    """Parse a Go-style duration ("500ms", "1s", "1m30s") into seconds.

    Bare numbers are taken as seconds.
    """
    if isinstance(value, (int, float)):
        seconds = float(value)
    else:
        text = str(value).strip()
        if not text:
            raise ValueError("empty duration")
        try:
            seconds = float(text)
        except ValueError:
            pos = 0
            seconds = 0.0
            for match in _DURATION_RE.finditer(text):
                if match.start() != pos:
                    break
                seconds += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
                pos = match.end()
            if pos != len(text):
                raise ValueError(f"invalid duration: {value!r}") from None

    if not math.isfinite(seconds) or seconds <= 0:
        raise ValueError(f"duration must be positive and finite: {value!r}")
    return seconds


def parse_listen_address(value: str) -> Tuple[str, int]:
    """Split a [host]:port listen address; an empty host binds all interfaces"""
    host, sep, port_str = value.strip().rpartition(':')
    if not sep:
        raise ValueError(f"listen address must be [host]:port: {value!r}")
    host = host.strip('[]')
    try:
        port = int(port_str)
    except ValueError:
        raise ValueError(f"invalid port in listen address: {value!r}") from None
    if not 0 <= port < 65536:
        raise ValueError(f"port out of range in listen address: {value!r}")
    return host, port


@dataclass(frozen=True)
class ExporterConfig:
    """Immutable exporter settings, built once at startup"""

    address: str = DEFAULTS['olric_address']
    timeout: float = 1.0
    listen_address: str = DEFAULTS['listen_address']
    telemetry_path: str = DEFAULTS['telemetry_path']
    log_level: str = DEFAULTS['log_level']
    probe: str = DEFAULTS['olric_probe']
    namespace: str = NAMESPACE
    logger: logging.Logger = field(
        default_factory=lambda: logging.getLogger('olric_exporter'),
        compare=False, repr=False)

    def __post_init__(self):
        try:
            parse_address(self.address)
        except ValueError as e:
            raise ConfigError(f"olric address: {e}") from e
        if not math.isfinite(self.timeout) or self.timeout <= 0:
            raise ConfigError(f"olric timeout must be positive and finite: {self.timeout}")
        try:
            parse_listen_address(self.listen_address)
        except ValueError as e:
            raise ConfigError(str(e)) from e
        if not self.telemetry_path.startswith('/'):
            raise ConfigError(f"telemetry path must start with '/': {self.telemetry_path!r}")
        if self.telemetry_path == '/':
            raise ConfigError("telemetry path cannot be '/', it serves the landing page")
        if self.log_level not in LOG_LEVELS:
            raise ConfigError(f"unknown log level: {self.log_level!r}")
        if self.probe not in PROBES:
            raise ConfigError(f"unknown probe: {self.probe!r}")


def load_config_file(path: str) -> Dict[str, Any]:
    """Load settings from a YAML file"""
    try:
        with open(path, 'r') as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        raise ConfigError(f"Configuration file not found: {path}") from None
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML configuration: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError("Configuration file must contain a mapping")

    unknown = sorted(set(data) - set(DEFAULTS))
    if unknown:
        raise ConfigError(f"Unknown configuration keys: {', '.join(unknown)}")
    return data


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='olric_exporter',
        description='Prometheus exporter for Olric',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Scrape a local Olric node
  %(prog)s --olric.address localhost:3320

  # Use a YAML configuration file, overriding the listen address
  %(prog)s -c olric_exporter.yaml --web.listen-address :9151
        """
    )

    # Defaults live in DEFAULTS so that explicit flags can override the file
    parser.add_argument('--olric.address', dest='olric_address',
                        help=f"Olric server address (default: {DEFAULTS['olric_address']})")
    parser.add_argument('--olric.timeout', dest='olric_timeout',
                        help=f"Olric connect and query timeout (default: {DEFAULTS['olric_timeout']})")
    parser.add_argument('--olric.probe', dest='olric_probe', choices=PROBES,
                        help=f"Command used to check the server (default: {DEFAULTS['olric_probe']})")
    parser.add_argument('--web.listen-address', dest='listen_address',
                        help=f"Address to listen on for web interface and telemetry (default: {DEFAULTS['listen_address']})")
    parser.add_argument('--web.telemetry-path', dest='telemetry_path',
                        help=f"Path under which to expose metrics (default: {DEFAULTS['telemetry_path']})")
    parser.add_argument('--log.level', dest='log_level', choices=list(LOG_LEVELS),
                        help=f"Only log messages with the given severity or above (default: {DEFAULTS['log_level']})")
    parser.add_argument('-c', '--config.file', dest='config_file',
                        help='Path to YAML configuration file')
    parser.add_argument('--version', action='version',
                        version=f"%(prog)s {__version__}")
    return parser


def resolve_settings(args: argparse.Namespace) -> Dict[str, Any]:
    """Merge defaults, config file values and explicit flags, in that order"""
    settings = dict(DEFAULTS)
    if args.config_file:
        settings.update(load_config_file(args.config_file))
    for key in DEFAULTS:
        value = getattr(args, key, None)
        if value is not None:
            settings[key] = value
    return settings


def build_config(settings: Dict[str, Any], logger: Optional[logging.Logger] = None) -> ExporterConfig:
    try:
        timeout = parse_duration(settings['olric_timeout'])
    except ValueError as e:
        raise ConfigError(f"olric timeout: {e}") from e

    kwargs = {}
    if logger is not None:
        kwargs['logger'] = logger

    return ExporterConfig(
        address=str(settings['olric_address']),
        timeout=timeout,
        listen_address=str(settings['listen_address']),
        telemetry_path=str(settings['telemetry_path']),
        log_level=str(settings['log_level']).lower(),
        probe=str(settings['olric_probe']),
        **kwargs
    )
