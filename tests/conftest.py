"""Shared pytest fixtures for the iptables-loki test suite."""

import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest

VYOS_LINE = (
    "May 23 12:31:53 vyos kernel: [213370.255870] [OUTSIDE-LOCAL-default-D]"
    "IN=pppoe0 OUT= MAC= SRC=125.166.96.62 DST=80.80.80.80 LEN=143 TOS=0x00 "
    "PREC=0x00 TTL=110 ID=9398 PROTO=UDP SPT=1025 DPT=7140 LEN=123"
)

UBNT_LINE = (
    "Aug  6 13:26:46 ubnt kernel: [WAN-IN-V6-default-D]IN=tun0 OUT=bond1 "
    "MAC=00:00 TUNNEL=224.61.82.50->81.81.82.82 "
    "SRC=240e:00f7:4f01:000c:0000:0000:0000:0002 "
    "DST=2a01:be30:3411:0330:0051:00ff:fe23:f991 LEN=64 TC=0 HOPLIMIT=241 "
    "FLOWLBL=0 PROTO=TCP SPT=8695 DPT=8086 WINDOW=29200 RES=0x00 SYN URGP=0"
)


class LokiReceiver:
    """Minimal HTTP endpoint that records push bodies and answers with *status*."""

    def __init__(self):
        self.status = 204
        self.response_body = b""
        self.requests: list[tuple[dict, bytes]] = []
        self._lock = threading.Lock()

        receiver = self

        class Handler(BaseHTTPRequestHandler):
            def do_POST(self):
                length = int(self.headers.get("Content-Length", 0))
                body = self.rfile.read(length)
                with receiver._lock:
                    receiver.requests.append((dict(self.headers), body))
                self.send_response(receiver.status)
                self.send_header("Content-Length", str(len(receiver.response_body)))
                self.end_headers()
                if receiver.response_body:
                    self.wfile.write(receiver.response_body)

            def log_message(self, format, *args):
                pass

        self._server = ThreadingHTTPServer(("127.0.0.1", 0), Handler)
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)

    @property
    def url(self) -> str:
        host, port = self._server.server_address[:2]
        return f"http://{host}:{port}/loki/api/v1/push"

    @property
    def bodies(self) -> list[bytes]:
        with self._lock:
            return [body for _, body in self.requests]

    def start(self):
        self._thread.start()

    def stop(self):
        self._server.shutdown()
        self._server.server_close()


@pytest.fixture()
def loki_receiver():
    receiver = LokiReceiver()
    receiver.start()
    yield receiver
    receiver.stop()


@pytest.fixture()
def vyos_line() -> str:
    return VYOS_LINE


@pytest.fixture()
def ubnt_line() -> str:
    return UBNT_LINE
