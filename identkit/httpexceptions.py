# (c) 2005 Ian Bicking and contributors; written for Paste (http://pythonpaste.org)
# Licensed under the MIT license: http://www.opensource.org/licenses/mit-license.php
"""
HTTP exceptions

The ident middleware refuses a request by answering with one of the
exceptions below, used as a WSGI application::

    return HTTPForbidden().wsgi_application(environ, start_response)

Only the codes the ident middleware needs are defined::

  Exception
    HTTPException
      HTTPError
        HTTPClientError
          403 - HTTPForbidden
          404 - HTTPNotFound
        HTTPServerError
          500 - HTTPInternalServerError
"""

import html
import re

_tag_re = re.compile(r'<.*?>', re.S)


def strip_html(s):
    return _tag_re.sub('', s)


class HTTPException(Exception):
    """
    Base class for all HTTP exceptions

    Attributes:

       ``code``
           the HTTP status code for the exception

       ``title``
           remainder of the status line (stuff after the code)

       ``explanation``
           a plain-text explanation of the error message

       ``detail``
           a plain-text message customization, shown after the
           explanation

       ``comment``
           additional information which is hidden from end-users
           (it only shows up in an HTML comment)

    Parameters:

       ``detail``     a plain-text override of the default ``detail``
       ``headers``    a list of (k,v) header pairs
       ``comment``    a plain-text additional information which is
                      usually stripped/hidden for end-users
    """

    code = None
    title = None
    explanation = ''
    detail = ''
    comment = ''
    template = "%(explanation)s\n<br/>%(detail)s\n<!-- %(comment)s -->"
    server_name = 'WSGI server'

    def __init__(self, detail=None, headers=None, comment=None):
        assert self.code, "Do not directly instantiate abstract exceptions."
        assert isinstance(headers, (type(None), list))
        self.headers = headers or []
        if detail is not None:
            self.detail = detail
        if comment is not None:
            self.comment = comment
        Exception.__init__(self, "%s %s\n%s\n%s\n" % (
            self.code, self.title, self.explanation, self.detail))

    def make_body(self, template, escfunc):
        args = {'explanation': escfunc(self.explanation),
                'detail': escfunc(self.detail),
                'comment': escfunc(self.comment)}
        return template % args

    def plain(self, environ):
        """ text/plain representation of the exception """
        body = self.make_body(strip_html(self.template), lambda s: s)
        return '%s %s\n%s\n' % (self.code, self.title, body)

    def html(self, environ):
        """ text/html representation of the exception """
        body = self.make_body(self.template, html.escape)
        return ('<html><head><title>%(title)s</title></head>\n'
                '<body>\n'
                '<h1>%(title)s</h1>\n'
                '<p>%(body)s</p>\n'
                '<hr noshade>\n'
                '<div align="right">%(server)s</div>\n'
                '</body></html>\n'
                % {'title': self.title,
                   'code': self.code,
                   'server': self.server_name,
                   'body': body})

    def wsgi_application(self, environ, start_response, exc_info=None):
        """
        This exception as a WSGI application
        """
        if 'html' in environ.get('HTTP_ACCEPT', ''):
            content_type = 'text/html; charset=utf-8'
            content = self.html(environ)
        else:
            content_type = 'text/plain; charset=utf-8'
            content = self.plain(environ)
        content = content.encode('utf-8')
        headers = [('Content-Type', content_type),
                   ('Content-Length', str(len(content)))]
        headers.extend(self.headers)
        start_response('%s %s' % (self.code, self.title), headers,
                       exc_info)
        return [content]

    __call__ = wsgi_application

    def __repr__(self):
        return '<%s %s; code=%s>' % (self.__class__.__name__,
                                     self.title, self.code)


class HTTPError(HTTPException):
    """
    This is an exception which indicates that an error has occured,
    and that any work in progress should not be committed.
    """


class HTTPClientError(HTTPError):
    """
    The client is presumed to be in error; no traceback is warranted.
    Unless specialized, this is a '400 Bad Request'
    """
    code = 400
    title = 'Bad Request'
    explanation = 'The server could not understand your request.'


class HTTPForbidden(HTTPClientError):
    code = 403
    title = 'Forbidden'
    explanation = ('Access was denied to this resource.')


class HTTPNotFound(HTTPClientError):
    code = 404
    title = 'Not Found'
    explanation = ('The resource could not be found.')


class HTTPServerError(HTTPError):
    """
    The server is presumed to be in error.  Unless specialized, this is
    a '500 Internal Server Error'
    """
    code = 500
    title = 'Internal Server Error'
    explanation = ('An internal server error occurred.')

HTTPInternalServerError = HTTPServerError


__all__ = ['HTTPException', 'HTTPError', 'HTTPClientError',
           'HTTPForbidden', 'HTTPNotFound',
           'HTTPServerError', 'HTTPInternalServerError']
