# (c) 2026 IdentKit contributors
# Licensed under the MIT license: http://www.opensource.org/licenses/mit-license.php
"""
Tools for asking a remote ident (RFC 1413) server who owns a TCP
connection, and for deciding whether that user is the one running this
process.
"""

from identkit.errors import (
    IdentError, TransportError, IdentTimeoutError, ProtocolError,
    InitializationError)
from identkit.response import Response
from identkit.client import IdentClient
from identkit.identity import (
    ServerIdentity, get_server_identity, same_user)

__all__ = ['IdentClient', 'Response', 'ServerIdentity',
           'get_server_identity', 'same_user', 'IdentError',
           'TransportError', 'IdentTimeoutError', 'ProtocolError',
           'InitializationError']
