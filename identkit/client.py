# (c) 2026 IdentKit contributors
# Licensed under the MIT license: http://www.opensource.org/licenses/mit-license.php
"""
Ident (RFC 1413) client

Asks the ident server on the far end of a TCP connection which user
owns that connection::

    client = IdentClient(timeout=2)
    response = client.query(local_addr, local_port,
                            remote_addr, remote_port)
    print(response.username, response.os)

``query`` blocks and raises an ``IdentError`` subclass when the lookup
fails.  ``lookup`` returns immediately with a
``concurrent.futures.Future``; the future (and the optional
``callback``) always gets a ``Response``, failed or not, and never an
exception.  Both run the same exchange:

1. connect to port 113 on the remote host,
2. send ``<remote port>,<local port>\\r\\n`` (from the server's point of
   view our port is the foreign one),
3. read one line and close the connection.

The timeout covers the whole exchange and is counted from the moment
the lookup was requested.  Nothing is retried.

This is not authentication: anyone who controls the remote host
controls the answer.
"""

from concurrent import futures
import logging
import socket
import threading
import time

from identkit.errors import (
    IdentError, IdentTimeoutError, TransportError, ProtocolError,
    protocol_error)
from identkit.response import Response

log = logging.getLogger(__name__)

IDENT_PORT = 113
DEFAULT_TIMEOUT = 2
# RFC 1413 says replies are at most 1000 characters
MAX_REPLY_LENGTH = 1000

SUCCESS_TYPES = ('USERID', 'USERINFO')


def default_connect(address, timeout, source_address=None):
    """
    Open the TCP connection to the ident server; anything with the same
    signature returning a socket-like object can be given to
    ``IdentClient(connect=...)``.
    """
    return socket.create_connection(address, timeout, source_address)


def _decode(data):
    try:
        return data.decode('utf-8')
    except UnicodeDecodeError:
        return data.decode('latin-1')


def parse_reply(line, local_port, remote_port, remote_address=None):
    """
    Parse one reply line (without the line ending) from an ident server
    that was asked about ``remote_port,local_port``.

    Returns a successful ``Response``, or raises ``ProtocolError`` for
    an ``ERROR`` reply or a reply that makes no sense.
    """
    if isinstance(line, bytes):
        line = _decode(line)
    line = line.strip()
    if not line:
        raise ProtocolError('empty reply', remote_address)
    parts = line.split(':', 3)
    if len(parts) < 3:
        raise ProtocolError('could not parse reply %r' % line,
                            remote_address)
    ports = parts[0].split(',')
    try:
        reply_ports = [int(p.strip()) for p in ports]
    except ValueError:
        reply_ports = None
    if reply_ports != [remote_port, local_port]:
        raise ProtocolError(
            'reply %r does not match port pair %d,%d'
            % (line, remote_port, local_port), remote_address)
    reply_type = parts[1].strip().upper()
    if reply_type == 'ERROR':
        token = parts[2].strip().upper()
        if not token:
            raise ProtocolError('ERROR reply without a token',
                                remote_address)
        raise protocol_error(token, remote_address, token=token)
    if reply_type not in SUCCESS_TYPES:
        raise ProtocolError('unknown reply type %r' % parts[1].strip(),
                            remote_address)
    if len(parts) != 4:
        raise ProtocolError('could not parse reply %r' % line,
                            remote_address)
    opsys = parts[2]
    charset = None
    if ',' in opsys:
        opsys, charset = opsys.split(',', 1)
        charset = charset.strip() or None
    opsys = opsys.strip()
    username = parts[3].strip()
    if not opsys or not username:
        raise ProtocolError('reply %r has an empty field' % line,
                            remote_address)
    return Response.success(username, opsys, remote_address,
                            charset=charset)


class IdentClient(object):
    """
    Ident client

    Parameters:

        ``timeout``

            Default number of seconds a lookup may take, connection
            included.  Each call may override it.

        ``port``

            The remote ident port, 113 unless you are testing.

        ``connect``

            Callable ``connect((host, port), timeout, source_address)``
            returning a connected socket; defaults to
            ``socket.create_connection``.

        ``max_workers``

            Size of the thread pool that runs non-blocking lookups.
    """

    def __init__(self, timeout=DEFAULT_TIMEOUT, port=IDENT_PORT,
                 connect=None, max_workers=None):
        self.timeout = timeout
        self.port = port
        self.connect = connect or default_connect
        self.max_workers = max_workers
        self._executor = None
        self._lock = threading.Lock()

    def __repr__(self):
        return '<%s port=%s timeout=%s>' % (
            self.__class__.__name__, self.port, self.timeout)

    def _get_executor(self):
        with self._lock:
            if self._executor is None:
                self._executor = futures.ThreadPoolExecutor(
                    max_workers=self.max_workers,
                    thread_name_prefix='identkit')
            return self._executor

    def close(self):
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=True)

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def lookup(self, local_addr, local_port, remote_addr, remote_port,
               timeout=None, callback=None):
        """
        Start a lookup and return a future for its ``Response``.
        ``callback``, if given, is called with the ``Response`` once it
        is ready (usually in a worker thread).
        """
        if timeout is None:
            timeout = self.timeout
        local_port = int(local_port)
        remote_port = int(remote_port)
        deadline = time.monotonic() + timeout
        future = self._get_executor().submit(
            self._lookup_response, local_addr, local_port,
            remote_addr, remote_port, timeout, deadline)
        if callback is not None:
            future.add_done_callback(lambda f: callback(f.result()))
        return future

    def query(self, local_addr, local_port, remote_addr, remote_port,
              timeout=None):
        """
        Look up the owner of the connection, waiting for the answer.
        Raises ``TransportError``, ``IdentTimeoutError`` or
        ``ProtocolError`` if there is no usable answer.
        """
        if timeout is None:
            timeout = self.timeout
        future = self.lookup(local_addr, local_port, remote_addr,
                             remote_port, timeout=timeout)
        try:
            response = future.result(timeout)
        except futures.TimeoutError:
            future.cancel()
            raise IdentTimeoutError(
                'no ident reply from %s within %s seconds'
                % (remote_addr, timeout), remote_addr)
        if not response.is_success:
            raise response.exception()
        return response

    def _lookup_response(self, *args):
        try:
            return self.exchange(*args)
        except IdentError as e:
            log.info('ident lookup failed: %s', e)
            return Response.from_exception(e)

    def exchange(self, local_addr, local_port, remote_addr, remote_port,
                 timeout, deadline=None):
        """
        Do the whole protocol exchange in the calling thread; returns a
        ``Response`` or raises an ``IdentError``.
        """
        if deadline is None:
            deadline = time.monotonic() + timeout
        log.debug('ident query %s:%s for %d,%d', remote_addr, self.port,
                  remote_port, local_port)
        source_address = None
        if local_addr:
            source_address = (local_addr, 0)
        try:
            sock = self.connect((remote_addr, self.port), timeout,
                                source_address)
        except socket.timeout:
            raise IdentTimeoutError(
                'timeout connecting to %s:%s' % (remote_addr, self.port),
                remote_addr)
        except OSError as e:
            raise TransportError(
                'cannot connect to %s:%s: %s' % (remote_addr, self.port, e),
                remote_addr)
        try:
            try:
                self._settimeout(sock, deadline, remote_addr)
                request = '%d,%d\r\n' % (remote_port, local_port)
                sock.sendall(request.encode('ascii'))
                line = self._read_line(sock, deadline, remote_addr)
            except socket.timeout:
                raise IdentTimeoutError(
                    'timeout waiting for ident reply from %s' % remote_addr,
                    remote_addr)
            except OSError as e:
                raise TransportError(
                    'error talking to %s:%s: %s' % (remote_addr, self.port, e),
                    remote_addr)
        finally:
            sock.close()
        return parse_reply(line, local_port, remote_port, remote_addr)

    def _settimeout(self, sock, deadline, remote_addr):
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise IdentTimeoutError(
                'timeout waiting for ident reply from %s' % remote_addr,
                remote_addr)
        sock.settimeout(remaining)

    def _read_line(self, sock, deadline, remote_addr):
        # room for the line and its CRLF, no more
        limit = MAX_REPLY_LENGTH + 2
        data = b''
        while b'\n' not in data:
            if len(data) >= limit:
                raise self._too_long(remote_addr)
            self._settimeout(sock, deadline, remote_addr)
            chunk = sock.recv(limit - len(data))
            if not chunk:
                raise ProtocolError(
                    'remote host %s closed the connection' % remote_addr,
                    remote_addr)
            data += chunk
        line = data.split(b'\n', 1)[0].rstrip(b'\r')
        if len(line) > MAX_REPLY_LENGTH:
            raise self._too_long(remote_addr)
        return line

    def _too_long(self, remote_addr):
        return ProtocolError(
            'reply from %s is longer than %d bytes'
            % (remote_addr, MAX_REPLY_LENGTH), remote_addr)


__all__ = ['IdentClient', 'parse_reply', 'default_connect', 'IDENT_PORT',
           'DEFAULT_TIMEOUT']
