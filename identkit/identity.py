# (c) 2026 IdentKit contributors
# Licensed under the MIT license: http://www.opensource.org/licenses/mit-license.php
"""
Who is running this process, and is the remote user the same person?

The server identity is looked up once per process (the first call to
``get_server_identity``) and never changes afterwards.  ``same_user``
is a plain function of a ``Response`` and that identity, so callers
may cache its answer however they like.
"""

from collections import namedtuple
import logging
import os
import re
import threading

try:
    import pwd
except ImportError:
    # Windows
    pwd = None

from identkit.errors import InitializationError

log = logging.getLogger(__name__)

LOOPBACK_ADDRESS = '127.0.0.1'

_numeric_re = re.compile(r'^[0-9]+\Z')

ServerIdentity = namedtuple('ServerIdentity', ['username', 'uid'])


def resolve_server_identity(environ=None):
    """
    Look up the name (and, on POSIX, the real uid) of the user running
    this process.  ``environ`` defaults to ``os.environ`` and is only
    consulted where the user database can't answer.
    """
    if environ is None:
        environ = os.environ
    uid = None
    username = None
    if pwd is not None and hasattr(os, 'getuid'):
        uid = os.getuid()
        try:
            username = pwd.getpwuid(uid).pw_name
        except KeyError:
            # uid without a passwd entry (common in containers)
            for name in ('LOGNAME', 'USER', 'USERNAME'):
                username = environ.get(name)
                if username:
                    break
    else:
        username = environ.get('USERNAME')
    if not username:
        raise InitializationError('could not determine server username')
    return ServerIdentity(username, uid)


_identity = None
_identity_lock = threading.Lock()


def get_server_identity():
    """
    Return the process-wide ``ServerIdentity``, resolving it on the
    first call.  A failed resolution is not remembered; the next call
    tries (and most likely fails) again.
    """
    global _identity
    if _identity is not None:
        return _identity
    with _identity_lock:
        if _identity is None:
            identity = resolve_server_identity()
            log.debug('Server identity resolved: %s (uid %s)',
                      identity.username, identity.uid)
            _identity = identity
    return _identity


def _reset_server_identity():
    # for tests
    global _identity
    with _identity_lock:
        _identity = None


def same_user(response, identity=None):
    """
    True if and only if ``response`` names the user running this
    process.  Only connections over the loopback address (127.0.0.1)
    can match; a failed response never matches.

    The username matches either by name, or, where the server has a
    uid, as a string of digits equal to that uid.
    """
    if not response.is_success:
        return False
    if response.remote_address != LOOPBACK_ADDRESS:
        return False
    if identity is None:
        identity = get_server_identity()
    username = response.username
    if username == identity.username:
        return True
    if (identity.uid is not None
        and username is not None
        and _numeric_re.match(username)
        and int(username) == identity.uid):
        return True
    return False


__all__ = ['ServerIdentity', 'resolve_server_identity',
           'get_server_identity', 'same_user', 'LOOPBACK_ADDRESS']
