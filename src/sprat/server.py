"""
Development server: static files from the site root, plus live reload over
Server-Sent Events.
"""
from __future__ import annotations

import argparse
import errno
import hashlib
import http.server
import mimetypes
import os
import pathlib
import queue
import re
import threading
import typing
if typing.TYPE_CHECKING:
    from socketserver import _AfInetAddress

from .core import SpratException
from .pretty_utils import print_with_style


INDEX_FILE = 'index.html'
# Default used by nginx
DEFAULT_MIME_TYPE = 'application/octet-stream'
RELOAD_PATH = '/__sprat/reload'
RELOAD_SCRIPT = (
    '<script>new EventSource("' + RELOAD_PATH + '")'
    '.addEventListener("reload", function () { location.reload(); });</script>'
)
KEEPALIVE_SECONDS = 15.0
_BODY_END = re.compile(rb'</body\s*>', re.IGNORECASE)
# WSAEADDRINUSE on Windows
_ADDR_IN_USE = {errno.EADDRINUSE, 10048}


class PortInUseError(SpratException):
    def __init__(self, host: str, port: int):
        self.host = host
        self.port = port
        super().__init__(f'Port {port} on {host} is already in use')


class ReloadBroadcaster:
    """
    Fans reload notifications out to every connected live-reload client. Each
    client owns a queue; None tells it to disconnect.
    """
    def __init__(self):
        self._lock = threading.Lock()
        self._clients: set[queue.Queue[str | None]] = set()

    def __len__(self):
        with self._lock:
            return len(self._clients)

    def connect(self) -> queue.Queue[str | None]:
        client: queue.Queue[str | None] = queue.Queue()
        with self._lock:
            self._clients.add(client)
        return client

    def disconnect(self, client: queue.Queue[str | None]):
        with self._lock:
            self._clients.discard(client)

    def broadcast(self, event: str = 'reload') -> int:
        """
        Push @event to every client, returning how many were connected.
        """
        with self._lock:
            clients = list(self._clients)
        for client in clients:
            client.put(event)
        return len(clients)

    def close(self):
        with self._lock:
            clients = list(self._clients)
            self._clients.clear()
        for client in clients:
            client.put(None)


class ThreadedHTTPServer(http.server.ThreadingHTTPServer):
    """
    A simple HTTP server that handles each request in a separate thread.
    """
    RequestHandlerClass: typing.Type[http.server.SimpleHTTPRequestHandler]
    # Two servers sharing a port would split requests between them.
    allow_reuse_port = False

    def __init__(self,
                 server_address: _AfInetAddress,
                 RequestHandlerClass: typing.Type[http.server.SimpleHTTPRequestHandler],
                 directory: str | pathlib.Path = '.',
                 bind_and_activate: bool = True,
                 live_reload: bool = True) -> None:
        super().__init__(server_address, RequestHandlerClass, bind_and_activate)
        self.directory = str(pathlib.Path(directory).resolve())
        self.live_reload = live_reload
        self.broadcaster = ReloadBroadcaster()

    def finish_request(self, request, client_address) -> None:
        self.RequestHandlerClass(request, client_address, self, directory=self.directory)


class Handler(http.server.SimpleHTTPRequestHandler):
    server: ThreadedHTTPServer

    def log_message(self, format, *args):
        print_with_style(f'{self.address_string()} - {format % args}', style='dim')

    def get_etag(self, file_path):
        """
        Generate an etag for a file based on its path and modification time.
        """
        mtime = os.path.getmtime(file_path)
        file_size = os.path.getsize(file_path)
        file_info = f"{file_size}-{mtime}"
        return hashlib.md5(file_info.encode('utf-8')).hexdigest()

    def inject_reload_script(self, data: bytes) -> bytes:
        script = RELOAD_SCRIPT.encode('utf-8')
        matches = list(_BODY_END.finditer(data))
        if not matches:
            return data + script
        pos = matches[-1].start()
        return data[:pos] + script + data[pos:]

    def serve_events(self):
        """
        Hold the connection open as an event stream until the server stops or
        the client goes away.
        """
        client = self.server.broadcaster.connect()
        try:
            self.send_response(200)
            self.send_header('Content-Type', 'text/event-stream')
            self.send_header('Cache-Control', 'no-cache')
            self.end_headers()
            self.wfile.write(b': connected\n\n')
            self.wfile.flush()
            while True:
                try:
                    event = client.get(timeout=KEEPALIVE_SECONDS)
                except queue.Empty:
                    self.wfile.write(b': keepalive\n\n')
                    self.wfile.flush()
                    continue
                if event is None:
                    break
                self.wfile.write(f'event: {event}\ndata: {event}\n\n'.encode('utf-8'))
                self.wfile.flush()
        except (BrokenPipeError, ConnectionResetError):
            self.close_connection = True
        finally:
            self.server.broadcaster.disconnect(client)

    def do_GET(self):
        if self.server.live_reload and self.path.split('?', 1)[0] == RELOAD_PATH:
            return self.serve_events()
        try:
            # Get the etag for the file
            file_path = pathlib.Path(self.translate_path(self.path))
            if file_path.is_dir():
                file_path /= INDEX_FILE

            # Double-check that we haven't escaped the directory.
            # self.translate_path() should discard any suspicious path
            # components, but it's better to be safe.
            if not file_path.is_relative_to(self.directory):
                return self.send_error(403, 'Forbidden')

            etag = self.get_etag(file_path)
            # Check if the client already has the file
            if 'If-None-Match' in self.headers and self.headers['If-None-Match'] == etag:
                self.send_response(304)
                self.end_headers()
                return

            mime_type, _enc = mimetypes.guess_type(file_path)
            mime_type = mime_type or DEFAULT_MIME_TYPE
            if mime_type == 'text/html' and self.server.live_reload:
                data = self.inject_reload_script(file_path.read_bytes())
                self.send_response(200)
                self.send_header('Content-type', mime_type)
                self.send_header('Content-Length', str(len(data)))
                self.send_header('ETag', etag)
                self.end_headers()
                self.wfile.write(data)
                return

            with open(file_path, 'rb') as file:
                self.send_response(200)
                self.send_header('Content-type', mime_type)
                self.send_header('Content-Length', str(os.fstat(file.fileno()).st_size))
                self.send_header('ETag', etag)
                self.end_headers()
                # Serve the file in chunks to avoid reading the entire file
                # into memory
                chunk_size = 8192
                while True:
                    chunk = file.read(chunk_size)
                    if not chunk:
                        break
                    self.wfile.write(chunk)
        except FileNotFoundError:
            self.send_error(404, f'File Not Found: {self.path}')


class DevServer:
    """
    An explicitly started and stopped development server for @root. Port 0
    picks a free port; read `port` after `start()` to find out which.
    """
    def __init__(self,
                 root: str | pathlib.Path,
                 port: int,
                 host: str = 'localhost',
                 live_reload: bool = True):
        self.root = pathlib.Path(root)
        self.host = host
        self.requested_port = port
        self.live_reload = live_reload
        self.httpd: ThreadedHTTPServer | None = None
        self._thread: threading.Thread | None = None

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, *exc_info):
        self.stop()

    @property
    def port(self) -> int:
        if self.httpd:
            return self.httpd.server_address[1]
        return self.requested_port

    @property
    def url(self):
        return f'http://{self.host}:{self.port}/'

    def bind(self) -> ThreadedHTTPServer:
        """
        Create the listening server, raising PortInUseError if the port is
        taken.
        """
        self.root.mkdir(parents=True, exist_ok=True)
        try:
            return ThreadedHTTPServer(
                (self.host, self.requested_port),
                Handler,
                directory=self.root,
                live_reload=self.live_reload,
            )
        except OSError as e:
            if e.errno in _ADDR_IN_USE or getattr(e, 'winerror', None) in _ADDR_IN_USE:
                raise PortInUseError(self.host, self.requested_port) from e
            raise

    def start(self):
        if self.httpd:
            return
        self.httpd = self.bind()
        self._thread = threading.Thread(target=self.httpd.serve_forever, daemon=True)
        self._thread.start()
        print_with_style(f'Serving {self.root} at {self.url}', style='cyan')

    def stop(self):
        if not (httpd := self.httpd):
            return
        self.httpd = None
        httpd.broadcaster.close()
        httpd.shutdown()
        httpd.server_close()
        if self._thread:
            self._thread.join()
            self._thread = None

    def wait(self, interval: float = 0.5):
        """
        Block until the server stops, waking up every @interval seconds so
        KeyboardInterrupt gets through.
        """
        while self._thread and self._thread.is_alive():
            self._thread.join(interval)

    def notify_reload(self, *_args: typing.Any) -> int:
        """
        Tell every connected browser to reload. Accepts and ignores extra
        arguments so it can be used directly as a watch callback.
        """
        if not self.httpd:
            return 0
        return self.httpd.broadcaster.broadcast('reload')


def serve(port: int, directory: str | pathlib.Path, host: str = 'localhost'):
    server = DevServer(directory, port, host)
    with server.bind() as httpd:
        server.httpd = httpd
        print_with_style(f'Serving at {server.url}', style='cyan')
        try:
            httpd.serve_forever()
        finally:
            httpd.broadcaster.close()
            server.httpd = None


def main(arguments: list[str] | None = None):
    parser = argparse.ArgumentParser(description='Serve a directory with live reload.')
    parser.add_argument('-p', '--port',
                        help='port to serve from',
                        type=int,
                        default=4000)
    parser.add_argument('-d', '--directory',
                        help='directory to serve',
                        type=pathlib.Path,
                        default='.')
    args = parser.parse_args(arguments)
    serve(args.port, args.directory)


if __name__ == '__main__':
    main()
