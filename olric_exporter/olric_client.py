#!/usr/bin/env python3
"""
Olric Client - Minimal async client for Olric cluster nodes

Speaks RESP (the Redis serialization protocol used by Olric) over a single
TCP connection. Only the commands the exporter needs are implemented.
"""

import asyncio
import json
import logging
from typing import Any, Dict, List, Tuple

DEFAULT_PORT = 3320

# Deepest array nesting accepted in a reply
MAX_REPLY_DEPTH = 32


class OlricError(Exception):
    """Base class for Olric client errors"""


class OlricConnectionError(OlricError):
    """Raised when the connection to the Olric node cannot be established"""


class OlricQueryError(OlricError):
    """Raised when a command sent to the Olric node fails"""


def parse_address(addr: str) -> Tuple[str, int]:
    """Split a host:port address, falling back to the default Olric port"""
    addr = addr.strip()
    if not addr:
        raise ValueError("empty address")

    if addr.startswith('['):
        # [::1]:3320
        host, sep, rest = addr[1:].partition(']')
        if not sep:
            raise ValueError(f"invalid address: {addr}")
        if not rest:
            return host, DEFAULT_PORT
        if not rest.startswith(':'):
            raise ValueError(f"invalid address: {addr}")
        port_str = rest[1:]
    elif addr.count(':') == 1:
        host, port_str = addr.rsplit(':', 1)
    else:
        return addr, DEFAULT_PORT

    try:
        port = int(port_str)
    except ValueError:
        raise ValueError(f"invalid port in address: {addr}") from None
    if not 0 < port < 65536:
        raise ValueError(f"port out of range in address: {addr}")
    return host or 'localhost', port


class OlricClient:
    """Async Olric client for liveness checks"""

    def __init__(self, host: str = 'localhost', port: int = DEFAULT_PORT, timeout: float = 1.0):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.logger = logging.getLogger(__name__)
        self._reader = None
        self._writer = None

    @classmethod
    def from_address(cls, address: str, timeout: float = 1.0) -> 'OlricClient':
        host, port = parse_address(address)
        return cls(host, port, timeout=timeout)

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    @property
    def connected(self) -> bool:
        return self._writer is not None and not self._writer.is_closing()

    async def connect(self):
        """Open the connection, bounded by the client timeout"""
        if self.connected:
            return
        try:
            self._reader, self._writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port),
                timeout=self.timeout
            )
        except asyncio.TimeoutError:
            raise OlricConnectionError(
                f"timed out connecting to {self.address} after {self.timeout}s") from None
        except OSError as e:
            raise OlricConnectionError(f"failed to connect to {self.address}: {e}") from e
        self.logger.debug(f"Connected to {self.address}")

    async def _send_command(self, *args) -> Any:
        """Send a command and return the decoded reply"""
        if not self.connected:
            raise OlricQueryError(f"not connected to {self.address}")

        command = f"*{len(args)}\r\n".encode()
        for arg in args:
            data = str(arg).encode('utf-8')
            command += b"$%d\r\n%s\r\n" % (len(data), data)

        try:
            self._writer.write(command)
            await asyncio.wait_for(self._writer.drain(), timeout=self.timeout)
            return await self._read_reply()
        except asyncio.TimeoutError:
            raise OlricQueryError(
                f"timed out waiting for {args[0]} reply from {self.address}") from None
        except asyncio.IncompleteReadError:
            raise OlricQueryError(f"connection closed by {self.address}") from None
        except (OSError, ValueError) as e:
            raise OlricQueryError(f"{args[0]} failed on {self.address}: {e}") from e

    async def _read_line(self) -> bytes:
        line = await asyncio.wait_for(self._reader.readline(), timeout=self.timeout)
        if not line:
            raise OlricQueryError(f"connection closed by {self.address}")
        if not line.endswith(b'\r\n'):
            raise OlricQueryError(f"truncated reply from {self.address}")
        return line[:-2]

    async def _read_reply(self, depth: int = 0) -> Any:
        """Decode a single RESP reply"""
        line = await self._read_line()
        prefix, payload = line[:1], line[1:]

        if prefix == b'+':
            return payload.decode('utf-8', errors='replace')
        if prefix == b'-':
            raise OlricQueryError(payload.decode('utf-8', errors='replace'))
        if prefix == b':':
            return int(payload)
        if prefix == b'$':
            length = int(payload)
            if length < 0:
                return None
            data = await asyncio.wait_for(self._reader.readexactly(length + 2), timeout=self.timeout)
            return data[:-2]
        if prefix == b'*':
            count = int(payload)
            if count < 0:
                return None
            if depth >= MAX_REPLY_DEPTH:
                raise OlricQueryError(f"reply from {self.address} nested deeper than {MAX_REPLY_DEPTH} levels")
            items: List[Any] = []
            for _ in range(count):
                items.append(await self._read_reply(depth + 1))
            return items

        raise OlricQueryError(f"unexpected reply from {self.address}: {line[:32]!r}")

    async def ping(self) -> bool:
        """Send PING and check for PONG"""
        reply = await self._send_command('PING')
        if isinstance(reply, bytes):
            reply = reply.decode('utf-8', errors='replace')
        if reply != 'PONG':
            raise OlricQueryError(f"unexpected PING reply from {self.address}: {reply!r}")
        return True

    async def stats(self) -> Dict[str, Any]:
        """Fetch node statistics (STATS returns a JSON document)"""
        reply = await self._send_command('STATS')
        if reply is None:
            raise OlricQueryError(f"empty STATS reply from {self.address}")
        if isinstance(reply, str):
            reply = reply.encode('utf-8')
        if not isinstance(reply, bytes):
            raise OlricQueryError(f"unexpected STATS reply type from {self.address}: {type(reply).__name__}")

        try:
            stats = json.loads(reply)
        except (ValueError, RecursionError) as e:
            raise OlricQueryError(f"invalid STATS payload from {self.address}: {e}") from e
        if not isinstance(stats, dict):
            raise OlricQueryError(f"invalid STATS payload from {self.address}: not an object")
        return stats

    async def close(self):
        """Close the connection"""
        writer, self._writer, self._reader = self._writer, None, None
        if writer is None:
            return
        writer.close()
        try:
            await asyncio.wait_for(writer.wait_closed(), timeout=self.timeout)
        except (OSError, asyncio.TimeoutError) as e:
            self.logger.debug(f"Error closing connection to {self.address}: {e}")

    async def __aenter__(self) -> 'OlricClient':
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

