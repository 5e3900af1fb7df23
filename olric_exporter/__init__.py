#!/usr/bin/env python3
"""
Olric Exporter - Prometheus exporter for Olric

Probes a single Olric node on every scrape and exposes the result as the
``olric_up`` gauge.
"""

__version__ = '1.0.0'

from .config import ExporterConfig
from .olric_client import OlricClient, OlricConnectionError, OlricQueryError
from .olric_collector import OlricCollector

__all__ = [
    'ExporterConfig',
    'OlricClient',
    'OlricCollector',
    'OlricConnectionError',
    'OlricQueryError',
]
