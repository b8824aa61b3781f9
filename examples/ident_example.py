"""
Shows the ident answer for your connection at ``/``, and a page only
the user running this script may see at ``/private``.

Needs an ident server (identd, oidentd, ...) on the client's host.
"""

import html
from wsgiref.simple_server import make_server, WSGIRequestHandler

from identkit.auth.ident import AuthIdentHandler, SameUserHandler
from identkit.httpexceptions import HTTPNotFound


class RequestHandler(WSGIRequestHandler):
    # wsgiref leaves out the ports the ident query needs
    def get_environ(self):
        environ = WSGIRequestHandler.get_environ(self)
        environ['REMOTE_PORT'] = str(self.client_address[1])
        environ['SERVER_ADDR'] = self.connection.getsockname()[0]
        return environ


def index(environ, start_response):
    ident = environ['identkit.ident']
    if ident.is_success:
        rows = [('username', ident.username), ('os', ident.os)]
    else:
        rows = [('error', '%s: %s' % (ident.error_kind, ident.error))]
    rows.append(('local', '%s:%s' % (environ.get('SERVER_ADDR'),
                                     environ['SERVER_PORT'])))
    rows.append(('remote', '%s:%s' % (environ['REMOTE_ADDR'],
                                      environ['REMOTE_PORT'])))
    body = ['<!DOCTYPE html>\n<html><head><title>ident test</title></head>'
            '<body><table>\n']
    for name, value in rows:
        body.append('<tr><td>%s:</td><td>%s</td></tr>\n'
                    % (name, html.escape(str(value))))
    body.append('</table></body></html>\n')
    start_response('200 OK', [('Content-Type', 'text/html; charset=utf-8')])
    return [''.join(body).encode('utf-8')]


def private(environ, start_response):
    start_response('200 OK', [('Content-Type', 'text/plain')])
    return [b'secret place\n']


def make_app():
    pages = {
        '/': AuthIdentHandler(index),
        '/private': SameUserHandler(private),
        }

    def dispatch(environ, start_response):
        page = pages.get(environ.get('PATH_INFO') or '/')
        if page is None:
            return HTTPNotFound().wsgi_application(environ, start_response)
        return page(environ, start_response)
    return dispatch


if __name__ == '__main__':
    server = make_server('127.0.0.1', 8080, make_app(),
                         handler_class=RequestHandler)
    print('serving on http://127.0.0.1:8080/')
    server.serve_forever()
