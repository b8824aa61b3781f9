# (c) 2005 Ian Bicking and contributors; written for Paste (http://pythonpaste.org)
# Licensed under the MIT license: http://www.opensource.org/licenses/mit-license.php
"""
Cookie-cached same-user decisions

``SameUserHandler`` does an ident lookup for every request.  Put this
middleware in front of it to remember the decision in a signed session
cookie instead::

    app = SameUserCookieHandler(SameUserHandler(app), secret='...')

The cookie carries the decision and the address it was made for, and
expires on the server side after ``timeout`` minutes.  A cookie
presented from another address is ignored.  Two requests that both
arrive without a cookie each do their own lookup; whichever response
comes back last sets the cookie.

Anyone who gets hold of the cookie and can connect from the same
address passes as the server user until it expires.  Leave this out if
that matters to you.
"""

import base64
import binascii
import hashlib
import hmac
import os
import time

from paste.deploy import converters

from identkit.auth.ident import ENVIRON_SAME_USER
from identkit.wsgilib import get_cookies


def make_time(value):
    """ return a human readable timestamp """
    return time.strftime("%Y%m%d%H%M", time.gmtime(value))

_signature_size = hashlib.sha256().digest_size
_header_size = _signature_size + len(make_time(time.time()))


class CookieSigner(object):
    """
    This class converts content into a timed and digitally signed
    cookie, as well as having the facility to reverse this procedure.

    The timeout is handled on the server side, so the cookie itself
    stays a session cookie.  The timeout is specified in minutes.
    """

    def __init__(self, secret=None, timeout=None):
        self.timeout = timeout or 30
        if secret is None:
            secret = os.urandom(32)
        elif isinstance(secret, str):
            secret = secret.encode('utf-8')
        self.secret = secret

    def _digest(self, data):
        return hmac.new(self.secret, data, hashlib.sha256).digest()

    def sign(self, content):
        """
        Sign the content returning a valid cookie value (that does not
        need to be escaped and quoted).
        """
        data = (make_time(time.time() + 60 * self.timeout).encode('ascii')
                + content.encode('utf-8'))
        cookie = base64.b64encode(self._digest(data) + data).decode('ascii')
        return cookie.replace("/", "_").replace("=", "~")

    def auth(self, cookie):
        """
        Check the signature and the expiration time; return the content,
        or None if either is no good.
        """
        try:
            decoded = base64.b64decode(
                cookie.replace("_", "/").replace("~", "="))
        except (binascii.Error, ValueError):
            return None
        signature = decoded[:_signature_size]
        data = decoded[_signature_size:]
        if not hmac.compare_digest(signature, self._digest(data)):
            # Restarted with a different secret, or forged.
            return None
        expires = data[:_header_size - _signature_size]
        content = data[_header_size - _signature_size:]
        try:
            if int(expires) <= int(make_time(time.time())):
                return None
            return content.decode('utf-8')
        except ValueError:
            return None


class SameUserCookieHandler(object):
    """
    Remembers ``environ['identkit.same_user']`` in a signed cookie.

    Parameters:

        ``cookie_name``  name of the cookie, ``IDENT_SAME_USER`` by default
        ``secret``       signing secret; a random one (good until the
                         process restarts) if not given
        ``timeout``      minutes a decision is trusted, 30 by default
    """

    signer_class = CookieSigner

    def __init__(self, application, cookie_name=None, secret=None,
                 timeout=None, signer=None):
        self.application = application
        self.cookie_name = cookie_name or 'IDENT_SAME_USER'
        self.signer = signer or self.signer_class(secret, timeout)

    def restore(self, environ):
        """
        Return the decision cached in the request's cookie for this
        client address, or None.
        """
        jar = get_cookies(environ)
        if self.cookie_name not in jar:
            return None
        content = self.signer.auth(jar[self.cookie_name].value)
        if not content:
            return None
        address, _, value = content.rpartition(';')
        if address != environ.get('REMOTE_ADDR') or value not in ('0', '1'):
            return None
        return value == '1'

    def __call__(self, environ, start_response):
        restored = self.restore(environ)
        if restored is not None:
            environ[ENVIRON_SAME_USER] = restored

        def response_hook(status, response_headers, exc_info=None):
            decision = environ.get(ENVIRON_SAME_USER)
            if restored is None and decision is not None:
                content = self.signer.sign('%s;%d' % (
                    environ.get('REMOTE_ADDR', ''), int(decision)))
                cookie = '%s=%s; Path=/; HttpOnly' % (self.cookie_name,
                                                      content)
                if environ.get('wsgi.url_scheme') == 'https':
                    cookie += '; Secure'
                response_headers.append(('Set-Cookie', cookie))
            return start_response(status, response_headers, exc_info)
        return self.application(environ, response_hook)


def make_cookie_filter(app, global_conf, cookie_name=None, secret=None,
                       timeout=None):
    """
    Paste Deploy entry point for ``SameUserCookieHandler``::

        [filter:same_user_cookie]
        use = egg:IdentKit#same_user_cookie
        secret = something long and random
        timeout = 30

    ``secret`` defaults to ``secret`` from ``[DEFAULT]``.
    """
    if secret is None:
        secret = global_conf.get('secret')
    if timeout is not None:
        timeout = converters.asint(timeout)
    return SameUserCookieHandler(app, cookie_name=cookie_name,
                                 secret=secret, timeout=timeout)


middleware = SameUserCookieHandler

__all__ = ['CookieSigner', 'SameUserCookieHandler', 'make_cookie_filter']
