# (c) 2026 IdentKit contributors
# Licensed under the MIT license: http://www.opensource.org/licenses/mit-license.php
"""
Ident (RFC 1413) identification

``AuthIdentHandler`` asks the ident server on the client's host who
owns the connection a request came in on, stores the answer in
``environ['identkit.ident']`` and, when there is an answer, sets
``REMOTE_USER``.  ``SameUserHandler`` only lets a request through if it
comes over the loopback address from the user who started the server::

    app = AuthIdentHandler(app, timeout=4)
    private_app = SameUserHandler(private_app)

The connection is taken from ``REMOTE_ADDR``, ``REMOTE_PORT``,
``SERVER_ADDR`` and ``SERVER_PORT``; use a server that provides
``REMOTE_PORT``.  Without ``SERVER_ADDR`` the ident connection is made
from whatever address the operating system picks.

The ident protocol tells you what the *remote host* claims.  Do not use
it to authenticate anybody on a network you don't trust.
"""

from concurrent import futures
import logging

from paste.deploy import converters

from identkit.client import IdentClient, DEFAULT_TIMEOUT, IDENT_PORT
from identkit.errors import IdentError, TRANSPORT
from identkit.httpexceptions import (
    HTTPForbidden, HTTPNotFound, HTTPInternalServerError)
from identkit.identity import (
    get_server_identity, same_user, LOOPBACK_ADDRESS)
from identkit.response import Response
from identkit.wsgilib import get_endpoints

log = logging.getLogger(__name__)

ENVIRON_CLIENT = 'identkit.client'
ENVIRON_RESPONSE = 'identkit.ident'
ENVIRON_SAME_USER = 'identkit.same_user'

_default_client = None


def _get_client(environ, client=None):
    global _default_client
    if client is not None:
        return client
    if ENVIRON_CLIENT in environ:
        return environ[ENVIRON_CLIENT]
    if _default_client is None:
        _default_client = IdentClient()
    return _default_client


def ident(environ, timeout=None, client=None, callback=None):
    """
    Ask the client's ident server who owns this request's connection.

    Without a ``callback`` this waits and returns a ``Response``,
    raising an ``IdentError`` if the server can't be reached, doesn't
    answer in time, or answers with an error.  With a ``callback`` it
    returns a future at once; the callback gets a ``Response`` (which
    may be a failed one) and nothing is raised.

    A successful answer, whichever way it was asked for, is kept in
    ``environ['identkit.ident']`` before the callback runs or the
    future resolves, so asking again during the same request doesn't
    query the server twice; in that case a callback is called right
    away.
    """
    cached = environ.get(ENVIRON_RESPONSE)
    if cached is not None and not cached.is_success:
        cached = None
    if callback is not None:
        if cached is not None:
            future = futures.Future()
            future.set_result(cached)
            callback(cached)
            return future
        client = _get_client(environ, client)
        future = futures.Future()

        def done(response):
            if response.is_success:
                environ[ENVIRON_RESPONSE] = response
            try:
                callback(response)
            finally:
                future.set_result(response)
        client.lookup(*get_endpoints(environ), timeout=timeout,
                      callback=done)
        return future
    if cached is not None:
        return cached
    client = _get_client(environ, client)
    response = client.query(*get_endpoints(environ), timeout=timeout)
    environ[ENVIRON_RESPONSE] = response
    return response


def ident_same_user(environ, timeout=None, client=None, identity=None):
    """
    True if and only if the request came over the loopback address from
    the user who started this server.  Errors talking to the ident
    server are logged and give False; nothing is raised.
    """
    if environ.get(ENVIRON_SAME_USER) is not None:
        return environ[ENVIRON_SAME_USER]
    if environ.get('REMOTE_ADDR') != LOOPBACK_ADDRESS:
        return False
    try:
        response = ident(environ, timeout=timeout, client=client)
    except (IdentError, KeyError, ValueError) as e:
        log.error('ident error: %s', e)
        return False
    return same_user(response, identity)


class AuthIdentHandler(object):
    """
    Ident identification middleware

    Parameters:

        ``application``

            The application to call.  ``environ['identkit.ident']`` is
            always a ``Response`` by the time it runs; a failed one if
            the lookup failed.

        ``client``

            An ``IdentClient``; by default one is made from ``timeout``
            and ``port``.

        ``set_remote_user``

            If true (the default) a successful lookup sets
            ``REMOTE_USER`` and ``AUTH_TYPE``, unless ``REMOTE_USER`` is
            already set.
    """

    auth_type = 'ident'

    def __init__(self, application, client=None, timeout=DEFAULT_TIMEOUT,
                 port=IDENT_PORT, set_remote_user=True):
        self.application = application
        self.client = client or IdentClient(timeout=timeout, port=port)
        self.set_remote_user = set_remote_user

    def __call__(self, environ, start_response):
        environ[ENVIRON_CLIENT] = self.client
        try:
            response = ident(environ, client=self.client)
        except IdentError as e:
            environ['wsgi.errors'].write('ident error: %s\n' % e)
            response = Response.from_exception(e)
        except (KeyError, ValueError) as e:
            environ['wsgi.errors'].write(
                'ident error: connection endpoints unavailable: %s\n' % e)
            response = Response.failure(
                TRANSPORT, 'connection endpoints unavailable',
                environ.get('REMOTE_ADDR'))
        environ[ENVIRON_RESPONSE] = response
        if (response.is_success and self.set_remote_user
            and not environ.get('REMOTE_USER')):
            environ['REMOTE_USER'] = response.username
            environ['AUTH_TYPE'] = self.auth_type
        return self.application(environ, start_response)


class SameUserHandler(object):
    """
    Only let the user who started this server through

    Requests that don't come over 127.0.0.1, or whose ident answer names
    somebody else, get a 403 (or a 404 if ``not_found`` is true, to hide
    the resource altogether).  If the ident server can't be asked, the
    answer is a 500.

    The server's identity is looked up when the middleware is created;
    if it can't be found, ``identkit.errors.InitializationError`` is
    raised right there.

    A decision already present in ``environ['identkit.same_user']``
    (from ``identkit.auth.cookie``, say) is used as is.  A decision made
    here is stored there.
    """

    def __init__(self, application, client=None, timeout=DEFAULT_TIMEOUT,
                 port=IDENT_PORT, identity=None, not_found=False):
        self.application = application
        self.client = client or IdentClient(timeout=timeout, port=port)
        self.identity = identity or get_server_identity()
        self.not_found = not_found

    def __call__(self, environ, start_response):
        environ[ENVIRON_CLIENT] = self.client
        decision = environ.get(ENVIRON_SAME_USER)
        if decision is None:
            try:
                decision = self.is_same_user(environ)
            except IdentError as e:
                log.error('ident error: %s', e)
                environ['wsgi.errors'].write('ident error: %s\n' % e)
                exc = HTTPInternalServerError(
                    detail='Could not identify the remote user.',
                    comment=str(e))
                return exc.wsgi_application(environ, start_response)
            environ[ENVIRON_SAME_USER] = decision
        if not decision:
            log.info('denied %s: not the server user',
                     environ.get('REMOTE_ADDR'))
            if self.not_found:
                exc = HTTPNotFound()
            else:
                exc = HTTPForbidden()
            return exc.wsgi_application(environ, start_response)
        return self.application(environ, start_response)

    def is_same_user(self, environ):
        if environ.get('REMOTE_ADDR') != LOOPBACK_ADDRESS:
            return False
        try:
            response = ident(environ, client=self.client)
        except (KeyError, ValueError) as e:
            raise IdentError('connection endpoints unavailable: %s' % e,
                             environ.get('REMOTE_ADDR'))
        return same_user(response, self.identity)


def _timeout(global_conf, timeout):
    if timeout is None:
        timeout = global_conf.get('ident_timeout', DEFAULT_TIMEOUT)
    return float(timeout)


def make_ident_filter(app, global_conf, timeout=None, port=IDENT_PORT,
                      set_remote_user=True):
    """
    Paste Deploy entry point for ``AuthIdentHandler``::

        [filter:ident]
        use = egg:IdentKit#ident
        timeout = 4
        port = 113
        set_remote_user = true

    ``timeout`` defaults to ``ident_timeout`` from ``[DEFAULT]``, then
    to 2 seconds.
    """
    return AuthIdentHandler(
        app, timeout=_timeout(global_conf, timeout),
        port=converters.asint(port),
        set_remote_user=converters.asbool(set_remote_user))


def make_same_user_filter(app, global_conf, timeout=None, port=IDENT_PORT,
                          not_found=False):
    """
    Paste Deploy entry point for ``SameUserHandler``::

        [filter:same_user]
        use = egg:IdentKit#same_user
        not_found = true
    """
    return SameUserHandler(
        app, timeout=_timeout(global_conf, timeout),
        port=converters.asint(port),
        not_found=converters.asbool(not_found))


middleware = AuthIdentHandler

__all__ = ['AuthIdentHandler', 'SameUserHandler', 'ident',
           'ident_same_user', 'make_ident_filter', 'make_same_user_filter']
