# (c) 2026 IdentKit contributors
# Licensed under the MIT license: http://www.opensource.org/licenses/mit-license.php
"""
A throwaway ident server, for tests and demos only.

    >>> from identkit.client import IdentClient
    >>> server = IdentTestServer(lambda server_port, client_port:
    ...                          ('AwesomeOS', 'foo'))
    >>> server.start()
    >>> client = IdentClient(port=server.port)
    >>> client.query('127.0.0.1', 80, '127.0.0.1', 4321).username
    'foo'
    >>> server.stop()

``lookup(server_port, client_port)`` returns an ``(os, username)`` pair,
raises an ``identkit.errors.ProtocolError`` (its ``token`` is sent back
in an ``ERROR`` reply), or returns None to never answer at all.  A
fixed ``reply`` string is sent back verbatim instead, which is handy
for testing broken servers.
"""

import logging
import socketserver
import threading

from identkit.errors import ProtocolError

log = logging.getLogger(__name__)


class IdentRequestHandler(socketserver.StreamRequestHandler):

    def handle(self):
        line = self.rfile.readline(1001).decode('ascii', 'replace').strip()
        self.server.queries.append(line)
        reply = self.server.make_reply(line)
        if reply is None:
            # hold the connection open without answering
            self.server.stopping.wait(self.server.hang)
            return
        self.wfile.write(reply.encode('utf-8') + b'\r\n')


class IdentTestServer(socketserver.ThreadingMixIn, socketserver.TCPServer):

    allow_reuse_address = True
    daemon_threads = True

    def __init__(self, lookup=None, host='127.0.0.1', port=0, reply=None,
                 hang=30):
        socketserver.TCPServer.__init__(self, (host, port),
                                        IdentRequestHandler)
        self.lookup = lookup
        self.reply = reply
        self.hang = hang
        self.queries = []
        self.stopping = threading.Event()
        self.thread = None

    @property
    def port(self):
        return self.server_address[1]

    def make_reply(self, line):
        if self.reply is not None:
            return self.reply
        parts = line.split(',')
        try:
            server_port, client_port = [int(p) for p in parts]
        except ValueError:
            return '%s : ERROR : INVALID-PORT' % line
        pair = '%d , %d' % (server_port, client_port)
        if self.lookup is None:
            return '%s : ERROR : UNKNOWN-ERROR' % pair
        try:
            result = self.lookup(server_port, client_port)
        except ProtocolError as e:
            return '%s : ERROR : %s' % (pair, e.token or 'UNKNOWN-ERROR')
        if result is None:
            return None
        opsys, username = result
        return '%s : USERID : %s : %s' % (pair, opsys, username)

    def start(self):
        self.thread = threading.Thread(
            target=self.serve_forever, name='ident test server %d' % self.port)
        self.thread.daemon = True
        self.thread.start()
        log.debug('ident test server listening on %s:%d', *self.server_address)

    def stop(self):
        self.stopping.set()
        self.shutdown()
        self.server_close()
        if self.thread is not None:
            self.thread.join()

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, *exc_info):
        self.stop()


def serve(lookup, host='127.0.0.1', port=0, **kw):
    """
    Start an ``IdentTestServer`` in a background thread and return it.
    """
    server = IdentTestServer(lookup, host=host, port=port, **kw)
    server.start()
    return server


__all__ = ['IdentTestServer', 'serve']
