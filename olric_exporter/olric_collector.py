#!/usr/bin/env python3
"""
Olric Collector

Custom prometheus-client collector that probes the configured Olric node on
every scrape and reports the result as a single ``<namespace>_up`` gauge.
"""

import asyncio
from typing import Iterable, List

from prometheus_client.core import GaugeMetricFamily, Metric

from .config import ExporterConfig
from .olric_client import OlricClient, OlricConnectionError, OlricQueryError

UP_DOCUMENTATION = 'Could the Olric server be reached.'


class OlricCollector:
    """Reports whether the Olric server answers, one fresh connection per scrape"""

    def __init__(self, config: ExporterConfig):
        self.config = config
        self.logger = config.logger
        self.up_name = f"{config.namespace}_up"

    def describe(self) -> List[Metric]:
        return [GaugeMetricFamily(self.up_name, UP_DOCUMENTATION)]

    def collect(self) -> Iterable[Metric]:
        yield GaugeMetricFamily(self.up_name, UP_DOCUMENTATION, value=self.probe())

    def probe(self) -> float:
        """Run one connect + query cycle on a private event loop"""
        loop = asyncio.new_event_loop()
        try:
            return loop.run_until_complete(self._probe())
        finally:
            loop.close()

    async def _probe(self) -> float:
        client = OlricClient.from_address(self.config.address, timeout=self.config.timeout)
        try:
            try:
                await client.connect()
            except OlricConnectionError as e:
                self.logger.error(f"Failed to connect to Olric at {self.config.address}: {e}")
                return 0.0

            try:
                if self.config.probe == 'ping':
                    await client.ping()
                else:
                    await client.stats()
            except OlricQueryError as e:
                self.logger.error(
                    f"Failed to collect {self.config.probe} from Olric at {self.config.address}: {e}")
                return 0.0
            except Exception as e:
                self.logger.error(
                    f"Unexpected error probing Olric at {self.config.address}: {e}", exc_info=True)
                return 0.0
        finally:
            await client.close()

        self.logger.debug(f"Olric at {self.config.address} is up")
        return 1.0
