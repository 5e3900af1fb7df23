"""Pytest fixtures: a fake Olric node speaking RESP on a local port."""

import json
import socket
import socketserver
import threading

import pytest


STATS_PAYLOAD = {
    "cmdline": ["olric-server", "-c", "olricd.yaml"],
    "release_version": "0.5.4",
    "uptime_seconds": 42,
    "member": {"name": "127.0.0.1:3320", "id": 1, "birthdate": 1600000000},
    "partitions": {},
}


class FakeOlricHandler(socketserver.StreamRequestHandler):

    def _read_command(self):
        line = self.rfile.readline()
        if not line:
            return None
        count = int(line[1:].strip())
        args = []
        for _ in range(count):
            length = int(self.rfile.readline()[1:].strip())
            args.append(self.rfile.read(length + 2)[:-2].decode("utf-8"))
        return args

    def handle(self):
        while True:
            try:
                command = self._read_command()
            except (ConnectionError, ValueError):
                return
            if command is None:
                return
            self.server.commands.append(command)
            reply = self.server.reply_for(command)
            if reply is None:
                continue
            try:
                self.wfile.write(reply)
            except ConnectionError:
                return


class FakeOlricServer(socketserver.ThreadingMixIn, socketserver.TCPServer):
    daemon_threads = True
    allow_reuse_address = True

    def __init__(self):
        super().__init__(("127.0.0.1", 0), FakeOlricHandler)
        # ok | error | garbage | silent | nested | deep_json
        self.mode = "ok"
        self.commands = []

    @property
    def address(self):
        return "%s:%d" % self.server_address

    def reply_for(self, command):
        name = command[0].upper()
        if self.mode == "silent":
            return None
        if self.mode == "error":
            return b"-ERR internal failure\r\n"
        if self.mode == "nested":
            return b"*1\r\n" * 5000 + b":1\r\n"
        if name == "PING":
            return b"+PONG\r\n"
        if name == "STATS":
            if self.mode == "garbage":
                body = b"not json"
            elif self.mode == "deep_json":
                body = b"[" * 100000
            else:
                body = json.dumps(STATS_PAYLOAD).encode("utf-8")
            return b"$%d\r\n%s\r\n" % (len(body), body)
        return b"-ERR unknown command\r\n"


@pytest.fixture
def olric_server():
    server = FakeOlricServer()
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server
    server.shutdown()
    server.server_close()
    thread.join(timeout=5)


@pytest.fixture
def closed_address():
    """An address with nothing listening on it"""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return "127.0.0.1:%d" % port
