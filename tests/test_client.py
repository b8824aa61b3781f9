import socket
import threading
import time

import pytest

from identkit.client import IdentClient, parse_reply
from identkit.debug.testserver import IdentTestServer
from identkit.errors import (
    IdentTimeoutError, TransportError, ProtocolError, NoUser, HiddenUser)


class FakeSocket(object):

    def __init__(self, reply=b'', error=None):
        self.reply = reply
        self.error = error
        self.sent = b''
        self.timeouts = []
        self.closed = False

    def settimeout(self, timeout):
        self.timeouts.append(timeout)

    def sendall(self, data):
        self.sent += data

    def recv(self, size):
        if self.error is not None:
            raise self.error
        data, self.reply = self.reply[:size], self.reply[size:]
        return data

    def close(self):
        self.closed = True


class FakeConnect(object):

    def __init__(self, sock=None, error=None):
        self.sock = sock
        self.error = error
        self.calls = []

    def __call__(self, address, timeout, source_address=None):
        self.calls.append((address, timeout, source_address))
        if self.error is not None:
            raise self.error
        return self.sock


def fake_client(reply=b'', error=None, connect_error=None, **kw):
    sock = FakeSocket(reply, error)
    connect = FakeConnect(sock, connect_error)
    return IdentClient(connect=connect, **kw), connect, sock


def test_parse_userid():
    r = parse_reply('4321 , 80 : USERID : UNIX : bob', 80, 4321, '10.0.0.1')
    assert r.is_success
    assert r.username == 'bob'
    assert r.os == 'UNIX'
    assert r.charset is None
    assert r.remote_address == '10.0.0.1'


def test_parse_userinfo_synonym():
    r = parse_reply(b'4321,80:USERINFO:AwesomeOS:foo', 80, 4321)
    assert (r.username, r.os) == ('foo', 'AwesomeOS')


def test_parse_charset():
    r = parse_reply('4321, 80 : USERID : UNIX , UTF-8 : bob', 80, 4321)
    assert r.os == 'UNIX'
    assert r.charset == 'UTF-8'


def test_parse_username_with_colons():
    r = parse_reply('4321,80:USERID:OTHER:we:ird', 80, 4321)
    assert r.username == 'we:ird'


def test_parse_numeric_username():
    r = parse_reply('4321,80:USERID:UNIX:1000', 80, 4321)
    assert r.username == '1000'


def test_parse_error_tokens():
    with pytest.raises(NoUser) as info:
        parse_reply('4321 , 80 : ERROR : NO-USER', 80, 4321)
    assert info.value.token == 'NO-USER'
    assert info.value.kind == 'protocol'
    with pytest.raises(HiddenUser):
        parse_reply('4321,80:ERROR:HIDDEN-USER', 80, 4321)
    with pytest.raises(ProtocolError) as info:
        parse_reply('4321,80:ERROR:X-GO-AWAY', 80, 4321)
    assert info.value.token == 'X-GO-AWAY'


@pytest.mark.parametrize('line', [
    '',
    'garbage',
    '4321,80:USERID',
    '4321,80:USERID:UNIX',
    '4321,80:USERID:UNIX:',
    '4321,80:USERID::bob',
    '4321,80:USERID: : ',
    '4321,80:ERROR:',
    '4321,80:WHATEVER:UNIX:bob',
    '1234,80:USERID:UNIX:bob',
    'x,y:USERID:UNIX:bob',
    ])
def test_parse_bad_replies(line):
    with pytest.raises(ProtocolError):
        parse_reply(line, 80, 4321)


def test_query_sends_swapped_ports():
    client, connect, sock = fake_client(b'4321 , 80 : USERID : UNIX : bob\r\n')
    with client:
        r = client.query('10.0.0.2', 80, '10.0.0.1', 4321)
    assert r.username == 'bob'
    assert sock.sent == b'4321,80\r\n'
    assert sock.closed
    assert connect.calls[0][0] == ('10.0.0.1', 113)
    assert connect.calls[0][2] == ('10.0.0.2', 0)


def test_configured_timeout_reaches_transport():
    client, connect, sock = fake_client(b'4321,80:USERID:UNIX:bob\n',
                                        timeout=4)
    with client:
        client.query('10.0.0.2', 80, '10.0.0.1', 4321)
    assert connect.calls == [(('10.0.0.1', 113), 4, ('10.0.0.2', 0))]
    for timeout in sock.timeouts:
        assert 0 < timeout <= 4


def test_per_call_timeout_override():
    client, connect, sock = fake_client(b'4321,80:USERID:UNIX:bob\n',
                                        timeout=4)
    with client:
        client.query(None, 80, '10.0.0.1', 4321, timeout=7)
    assert connect.calls == [(('10.0.0.1', 113), 7, None)]


def test_configured_port():
    client, connect, sock = fake_client(b'4321,80:USERID:UNIX:bob\n',
                                        port=1130)
    with client:
        client.query(None, 80, '10.0.0.1', 4321)
    assert connect.calls[0][0] == ('10.0.0.1', 1130)


def test_string_ports():
    client, connect, sock = fake_client(b'4321,80:USERID:UNIX:bob\n')
    with client:
        r = client.query(None, '80', '10.0.0.1', '4321')
    assert r.username == 'bob'
    assert sock.sent == b'4321,80\r\n'


def test_connection_refused():
    client, connect, sock = fake_client(
        connect_error=ConnectionRefusedError('refused'))
    with client:
        with pytest.raises(TransportError) as info:
            client.query(None, 80, '10.0.0.1', 4321)
    assert info.value.kind == 'transport'
    assert info.value.remote_address == '10.0.0.1'


def test_connect_timeout():
    client, connect, sock = fake_client(connect_error=socket.timeout())
    with client:
        with pytest.raises(IdentTimeoutError):
            client.query(None, 80, '10.0.0.1', 4321)


def test_read_timeout():
    client, connect, sock = fake_client(error=socket.timeout())
    with client:
        with pytest.raises(IdentTimeoutError):
            client.query(None, 80, '10.0.0.1', 4321)
    assert sock.closed


def test_connection_reset():
    client, connect, sock = fake_client(error=ConnectionResetError())
    with client:
        with pytest.raises(TransportError):
            client.query(None, 80, '10.0.0.1', 4321)


def test_closed_before_full_line():
    client, connect, sock = fake_client(b'4321,80:USERID:UNIX:bob')
    with client:
        with pytest.raises(ProtocolError):
            client.query(None, 80, '10.0.0.1', 4321)
    assert sock.closed


def test_reply_too_long():
    client, connect, sock = fake_client(b'x' * 5000)
    with client:
        with pytest.raises(ProtocolError):
            client.query(None, 80, '10.0.0.1', 4321)


def long_reply(length):
    prefix = b'4321,80:USERID:UNIX:'
    return prefix + b'a' * (length - len(prefix)) + b'\r\n'


def test_reply_at_length_limit():
    client, connect, sock = fake_client(long_reply(1000))
    with client:
        response = client.query(None, 80, '10.0.0.1', 4321)
    assert response.username == 'a' * 980


@pytest.mark.parametrize('length', [1001, 1120])
def test_long_reply_with_line_ending(length):
    client, connect, sock = fake_client(long_reply(length))
    with client:
        with pytest.raises(ProtocolError):
            client.query(None, 80, '10.0.0.1', 4321)
    assert sock.closed


def test_error_reply_blocking_raises():
    client, connect, sock = fake_client(b'4321,80:ERROR:NO-USER\r\n')
    with client:
        with pytest.raises(NoUser):
            client.query(None, 80, '10.0.0.1', 4321)


def test_error_reply_nonblocking_delivers_response():
    client, connect, sock = fake_client(b'4321,80:ERROR:NO-USER\r\n')
    results = []
    done = threading.Event()

    def callback(response):
        results.append(response)
        done.set()
    with client:
        future = client.lookup(None, 80, '10.0.0.1', 4321, callback=callback)
        response = future.result(5)
        assert done.wait(5)
    assert not response.is_success
    assert response.error_kind == 'protocol'
    assert response.token == 'NO-USER'
    assert results == [response]
    assert isinstance(response.exception(), NoUser)


def test_nonblocking_transport_failure():
    client, connect, sock = fake_client(
        connect_error=ConnectionRefusedError('refused'))
    with client:
        response = client.lookup(None, 80, '10.0.0.1', 4321).result(5)
    assert not response.is_success
    assert response.error_kind == 'transport'


def test_exchange_in_calling_thread():
    client, connect, sock = fake_client(b'4321,80:USERID:UNIX:bob\n')
    r = client.exchange(None, 80, '10.0.0.1', 4321, 2)
    assert r.username == 'bob'


def test_server_round_trip():
    seen = []

    def lookup(server_port, client_port):
        seen.append((server_port, client_port))
        return ('AwesomeOS', 'foo')
    with IdentTestServer(lookup) as server:
        with IdentClient(port=server.port) as client:
            r = client.query('127.0.0.1', 80, '127.0.0.1', 4321)
    assert r.is_success
    assert r.username == 'foo'
    assert r.os == 'AwesomeOS'
    assert r.remote_address == '127.0.0.1'
    assert seen == [(4321, 80)]
    assert server.queries == ['4321,80']


def test_server_error_reply():
    def lookup(server_port, client_port):
        raise NoUser('nobody')
    with IdentTestServer(lookup) as server:
        with IdentClient(port=server.port) as client:
            with pytest.raises(NoUser):
                client.query('127.0.0.1', 80, '127.0.0.1', 4321)
            response = client.lookup('127.0.0.1', 80,
                                     '127.0.0.1', 4321).result(5)
    assert not response.is_success
    assert response.error_kind


def test_server_never_replies():
    with IdentTestServer(lambda s, c: None, hang=10) as server:
        with IdentClient(port=server.port) as client:
            start = time.monotonic()
            with pytest.raises(IdentTimeoutError):
                client.query('127.0.0.1', 80, '127.0.0.1', 4321, timeout=1)
            elapsed = time.monotonic() - start
    assert 0.5 < elapsed < 3


def test_nothing_listening():
    s = socket.socket()
    s.bind(('127.0.0.1', 0))
    port = s.getsockname()[1]
    s.close()
    with IdentClient(port=port) as client:
        with pytest.raises(TransportError):
            client.query(None, 80, '127.0.0.1', 4321)


def test_concurrent_lookups_are_independent():
    def lookup(server_port, client_port):
        return ('UNIX', 'user%d' % server_port)
    with IdentTestServer(lookup) as server:
        with IdentClient(port=server.port) as client:
            futures = [client.lookup('127.0.0.1', 80, '127.0.0.1', port)
                       for port in (5001, 5002, 5003)]
            names = [f.result(5).username for f in futures]
    assert names == ['user5001', 'user5002', 'user5003']
