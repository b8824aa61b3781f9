from identkit.auth.cookie import (
    CookieSigner, SameUserCookieHandler, make_cookie_filter)
from identkit.auth.ident import SameUserHandler
from identkit.identity import ServerIdentity
from identkit.response import Response
from identkit.wsgilib import raw_interactive, header_value


class CountingClient(object):

    def __init__(self, username):
        self.username = username
        self.calls = 0

    def query(self, local_addr, local_port, remote_addr, remote_port,
              timeout=None):
        self.calls += 1
        return Response.success(self.username, 'UNIX', remote_addr)


def ok_app(environ, start_response):
    start_response('200 OK', [('Content-Type', 'text/plain')])
    return [b'secret place']


def cookie_of(headers):
    value = header_value(headers, 'Set-Cookie')
    if value is None:
        return None
    return value.split(';')[0]


def test_sign_and_auth():
    signer = CookieSigner('secret')
    cookie = signer.sign('127.0.0.1;1')
    assert '/' not in cookie and '=' not in cookie
    assert signer.auth(cookie) == '127.0.0.1;1'


def test_auth_rejects_tampering():
    signer = CookieSigner('secret')
    cookie = signer.sign('127.0.0.1;0')
    assert CookieSigner('other').auth(cookie) is None
    assert signer.auth(cookie[:-4] + 'AAAA') is None
    assert signer.auth('not base64 at all!') is None
    assert signer.auth('') is None


def test_auth_rejects_expired():
    signer = CookieSigner('secret', timeout=-5)
    assert signer.auth(signer.sign('127.0.0.1;1')) is None


def test_random_secret():
    signer = CookieSigner()
    assert len(signer.secret) == 32
    assert signer.auth(signer.sign('x')) == 'x'


def test_caches_decision():
    client = CountingClient('alice')
    app = SameUserCookieHandler(
        SameUserHandler(ok_app, client=client,
                        identity=ServerIdentity('alice', 1000)),
        secret='secret')
    status, headers, body, errors = raw_interactive(app)
    assert status.startswith('200')
    assert client.calls == 1
    cookie = cookie_of(headers)
    assert cookie.startswith('IDENT_SAME_USER=')
    assert 'HttpOnly' in header_value(headers, 'Set-Cookie')

    status, headers, body, errors = raw_interactive(app, HTTP_COOKIE=cookie)
    assert status.startswith('200')
    assert client.calls == 1
    assert cookie_of(headers) is None


def test_cached_denial():
    client = CountingClient('mallory')
    app = SameUserCookieHandler(
        SameUserHandler(ok_app, client=client,
                        identity=ServerIdentity('alice', 1000)),
        secret='secret')
    status, headers, body, errors = raw_interactive(app)
    assert status.startswith('403')
    cookie = cookie_of(headers)
    status, headers, body, errors = raw_interactive(app, HTTP_COOKIE=cookie)
    assert status.startswith('403')
    assert client.calls == 1


def test_cookie_bound_to_address():
    seen = []

    def app(environ, start_response):
        seen.append(environ.get('identkit.same_user'))
        return ok_app(environ, start_response)
    handler = SameUserCookieHandler(app, secret='secret')
    cookie = 'IDENT_SAME_USER=' + handler.signer.sign('10.0.0.1;1')
    raw_interactive(handler, HTTP_COOKIE=cookie)
    raw_interactive(handler, HTTP_COOKIE=cookie, REMOTE_ADDR='10.0.0.1')
    assert seen == [None, True]


def test_no_decision_no_cookie():
    app = SameUserCookieHandler(ok_app, secret='secret')
    status, headers, body, errors = raw_interactive(app)
    assert cookie_of(headers) is None


def test_secure_cookie():
    def app(environ, start_response):
        environ['identkit.same_user'] = True
        return ok_app(environ, start_response)
    handler = SameUserCookieHandler(app, secret='secret')
    status, headers, body, errors = raw_interactive(
        handler, wsgi__url_scheme='https')
    assert header_value(headers, 'Set-Cookie').endswith('; Secure')


def test_filter_factory():
    handler = make_cookie_filter(ok_app, {'secret': 'from-global'},
                                 cookie_name='sameuser', timeout='5')
    assert handler.cookie_name == 'sameuser'
    assert handler.signer.secret == b'from-global'
    assert handler.signer.timeout == 5
