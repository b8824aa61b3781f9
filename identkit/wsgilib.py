# (c) 2005 Ian Bicking and contributors; written for Paste (http://pythonpaste.org)
# Licensed under the MIT license: http://www.opensource.org/licenses/mit-license.php

"""
WSGI helpers used by the ident middleware and its tests.
"""

from http.cookies import SimpleCookie
from io import BytesIO, StringIO
from urllib.parse import urlsplit

__all__ = ['get_cookies', 'get_endpoints', 'raw_interactive',
           'dump_environ', 'header_value']


def get_cookies(environ):
    """
    Gets a cookie object (which is a dictionary-like object) from the
    request environment; caches this value in case get_cookies is
    called again for the same request.
    """
    header = environ.get('HTTP_COOKIE', '')
    if 'identkit.cookies' in environ:
        cookies, check_header = environ['identkit.cookies']
        if check_header == header:
            return cookies
    cookies = SimpleCookie()
    cookies.load(header)
    environ['identkit.cookies'] = (cookies, header)
    return cookies


def get_endpoints(environ):
    """
    Return ``(local_addr, local_port, remote_addr, remote_port)`` for
    the connection a request came in on.  Not every server provides
    ``REMOTE_PORT`` or ``SERVER_ADDR``; a missing port raises
    ``KeyError``, a missing ``SERVER_ADDR`` gives a local address of
    None.  ``SERVER_NAME`` is a host name, not the address the
    connection came in on, so it is not used.
    """
    local_addr = environ.get('SERVER_ADDR') or None
    return (local_addr, int(environ['SERVER_PORT']),
            environ['REMOTE_ADDR'], int(environ['REMOTE_PORT']))


def header_value(headers, name):
    """
    Returns the header's value, or None if no such header.  If a
    header appears more than once, all the values of the headers
    are joined with ','.
    """
    name = name.lower()
    result = [value for header, value in headers
              if header.lower() == name]
    if result:
        return ','.join(result)
    else:
        return None


def raw_interactive(application, path='', **environ):
    """
    Runs the application in a fake environment.  Returns
    ``(status, headers, body, errors)``; ``body`` is bytes.
    """
    errors = StringIO()
    basic_environ = {
        # mandatory CGI variables
        'REQUEST_METHOD': 'GET',     # always mandatory
        'SCRIPT_NAME': '',           # may be empty if app is at the root
        'PATH_INFO': '',             # may be empty if at root of app
        'SERVER_NAME': 'localhost',  # always mandatory
        'SERVER_PORT': '80',         # always mandatory
        'SERVER_PROTOCOL': 'HTTP/1.0',
        'REMOTE_ADDR': '127.0.0.1',
        'REMOTE_PORT': '4321',
        # mandatory wsgi variables
        'wsgi.version': (1, 0),
        'wsgi.url_scheme': 'http',
        'wsgi.input': BytesIO(b''),
        'wsgi.errors': errors,
        'wsgi.multithread': False,
        'wsgi.multiprocess': False,
        'wsgi.run_once': False,
        }
    if path:
        (_, _, path_info, query, fragment) = urlsplit(str(path))
        basic_environ['PATH_INFO'] = path_info
        if query:
            basic_environ['QUERY_STRING'] = query
    for name, value in environ.items():
        name = name.replace('__', '.')
        basic_environ[name] = value
    data = {}
    output = BytesIO()
    headers_set = []
    headers_sent = []

    def start_response(status, headers, exc_info=None):
        if exc_info:
            try:
                if headers_sent:
                    # Re-raise original exception only if headers sent
                    raise exc_info[1].with_traceback(exc_info[2])
            finally:
                # avoid dangling circular reference
                exc_info = None
        elif headers_set:
            # You cannot set the headers more than once, unless the
            # exc_info is provided.
            raise AssertionError("Headers already set and no exc_info!")
        headers_set.append(True)
        data['status'] = status
        data['headers'] = headers
        return output.write
    app_iter = application(basic_environ, start_response)
    try:
        for s in app_iter:
            headers_sent.append(True)
            if not headers_set:
                raise AssertionError("Content sent w/o headers!")
            output.write(s)
    finally:
        if hasattr(app_iter, 'close'):
            app_iter.close()
    return (data['status'], data['headers'], output.getvalue(),
            errors.getvalue())


def dump_environ(environ, start_response):
    """
    Application which simply dumps the current environment
    variables out as a plain text response.
    """
    output = []
    for k in sorted(environ):
        v = str(environ[k]).replace("\n", "\n    ")
        output.append("%s: %s\n" % (k, v))
    output = "".join(output).encode('utf-8')
    headers = [('Content-Type', 'text/plain; charset=utf-8'),
               ('Content-Length', str(len(output)))]
    start_response("200 OK", headers)
    return [output]
