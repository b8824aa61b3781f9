# (c) 2026 IdentKit contributors
# Licensed under the MIT license: http://www.opensource.org/licenses/mit-license.php
"""
The result of one ident query.

A ``Response`` is built once per query attempt, successful or not, and
never changes afterwards.  For a successful query ``username`` and
``os`` are what the remote ident server reported::

    >>> r = Response.success('bob', 'UNIX', '127.0.0.1')
    >>> r.is_success, r.username, r.os
    (True, 'bob', 'UNIX')

A failed query has ``error_kind`` set to ``'transport'``, ``'timeout'``
or ``'protocol'``::

    >>> r = Response.failure('protocol', 'NO-USER', '10.0.0.1', token='NO-USER')
    >>> r.is_success, r.error_kind
    (False, 'protocol')
"""

from collections import namedtuple

from identkit import errors

_fields = ('username', 'os', 'charset', 'remote_address',
           'error_kind', 'error', 'token')


class Response(namedtuple('Response', _fields)):

    __slots__ = ()

    @classmethod
    def success(cls, username, os, remote_address, charset=None):
        return cls(username, os, charset, remote_address, None, None, None)

    @classmethod
    def failure(cls, kind, error, remote_address, token=None):
        if kind not in errors.ERROR_KINDS:
            raise ValueError('Unknown error kind: %r' % (kind,))
        return cls(None, None, None, remote_address, kind, error, token)

    @classmethod
    def from_exception(cls, exc):
        """
        Turn a request-scoped ``IdentError`` into a failed response.
        """
        return cls.failure(exc.kind, exc.message, exc.remote_address,
                           token=getattr(exc, 'token', None))

    @property
    def is_success(self):
        return self.error_kind is None

    def exception(self):
        """
        The ``IdentError`` this response stands for, or None if the
        query succeeded.
        """
        if self.is_success:
            return None
        return errors.make_error(self.error_kind, self.error,
                                 self.remote_address, self.token)

    def same_user(self, identity=None):
        """
        True if this response names the user running this process, and
        the connection came over the loopback address.  See
        ``identkit.identity.same_user``.
        """
        from identkit.identity import same_user
        return same_user(self, identity)

    def __str__(self):
        if self.is_success:
            return '%s (%s)' % (self.username, self.os)
        return 'ident %s error: %s' % (self.error_kind, self.error)


__all__ = ['Response']
