# (c) 2026 IdentKit contributors
# Licensed under the MIT license: http://www.opensource.org/licenses/mit-license.php
"""
Ident exceptions

Request-scoped failures are subclasses of ``IdentError``; each one
carries a ``kind`` matching ``Response.error_kind``::

  Exception
    IdentError
      TransportError            'transport'
      IdentTimeoutError         'timeout'
      ProtocolError             'protocol'
        InvalidPort             INVALID-PORT
        NoUser                  NO-USER
        HiddenUser              HIDDEN-USER
        UnknownError            UNKNOWN-ERROR
      InitializationError

``InitializationError`` is raised while resolving the identity of this
process, never while answering a request.
"""

TRANSPORT = 'transport'
TIMEOUT = 'timeout'
PROTOCOL = 'protocol'

ERROR_KINDS = (TRANSPORT, TIMEOUT, PROTOCOL)


class IdentError(Exception):
    """
    Base class for ident failures.

    Attributes:

       ``kind``
           one of ``'transport'``, ``'timeout'`` or ``'protocol'``

       ``remote_address``
           the host whose ident server was queried, if known
    """

    kind = None

    def __init__(self, message, remote_address=None):
        Exception.__init__(self, message)
        self.message = message
        self.remote_address = remote_address

    def __repr__(self):
        return '<%s %r; remote_address=%s>' % (
            self.__class__.__name__, self.message, self.remote_address)


class TransportError(IdentError):
    """
    The ident port on the remote host could not be reached (refused,
    unreachable, or an invalid address).
    """
    kind = TRANSPORT


class IdentTimeoutError(IdentError):
    """
    The connection or the reply did not complete in time.
    """
    kind = TIMEOUT


class ProtocolError(IdentError):
    """
    The remote server answered, but the answer was an ``ERROR`` reply
    or could not be understood.  ``token`` holds the server's error
    token when there was one.
    """
    kind = PROTOCOL
    token = None

    def __init__(self, message, remote_address=None, token=None):
        IdentError.__init__(self, message, remote_address)
        if token is not None:
            self.token = token


class InvalidPort(ProtocolError):
    """
    The server did not accept the port pair we sent.
    """
    token = 'INVALID-PORT'


class NoUser(ProtocolError):
    """
    The connection is not in use, or is not owned by an identifiable
    user.
    """
    token = 'NO-USER'


class HiddenUser(ProtocolError):
    """
    The owner is known but the server was asked not to reveal it.
    """
    token = 'HIDDEN-USER'


class UnknownError(ProtocolError):
    token = 'UNKNOWN-ERROR'


class InitializationError(IdentError):
    """
    The name of the user running this process could not be determined.
    """


_token_errors = {}
for _cls in (InvalidPort, NoUser, HiddenUser, UnknownError):
    _token_errors[_cls.token] = _cls
del _cls


def protocol_error(message, remote_address=None, token=None):
    """
    Return the ``ProtocolError`` subclass instance for ``token``; tokens
    outside RFC 1413 (``X-...`` and friends) give a plain
    ``ProtocolError`` which keeps the token.
    """
    cls = _token_errors.get(token, ProtocolError)
    return cls(message, remote_address, token=token)


def make_error(kind, message, remote_address=None, token=None):
    if kind == PROTOCOL:
        return protocol_error(message, remote_address, token)
    if kind == TIMEOUT:
        return IdentTimeoutError(message, remote_address)
    if kind == TRANSPORT:
        return TransportError(message, remote_address)
    raise ValueError('Unknown error kind: %r' % (kind,))


__all__ = ['IdentError', 'TransportError', 'IdentTimeoutError',
           'ProtocolError', 'InvalidPort', 'NoUser', 'HiddenUser',
           'UnknownError', 'InitializationError', 'make_error',
           'protocol_error', 'ERROR_KINDS']
