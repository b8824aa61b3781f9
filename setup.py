__version__ = "0.1"

from setuptools import setup, find_packages

setup(name="IdentKit",
      version=__version__,
      description="Ident (RFC 1413) lookups for a Web Server Gateway Interface stack",
      long_description="""\
Asks the ident server on a client's host which user owns the TCP
connection a request came in on, and decides whether that is the user
who started the server.

Includes these features...

Client
------

* Blocking and non-blocking (future/callback) ident lookups, in
  ``identkit.client``

* The same-user decision, in ``identkit.identity``

Middleware
----------

* Put the ident answer in the environment and set ``REMOTE_USER``, in
  ``identkit.auth.ident``

* Only let the user who started the server in, also in
  ``identkit.auth.ident``

* Remember that decision in a signed cookie, in ``identkit.auth.cookie``

Testing
-------

* A throwaway threaded ident server, in ``identkit.debug.testserver``

The ident protocol reports what the remote host claims.  It is not
suitable for authentication on networks you don't trust.
""",
      classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python",
        "Programming Language :: Python :: 3",
        "Topic :: Internet :: WWW/HTTP",
        "Topic :: Internet :: WWW/HTTP :: WSGI :: Middleware",
        "Topic :: Software Development :: Libraries :: Python Modules",
        ],
      keywords='web wsgi ident rfc1413 middleware',
      license="MIT",
      packages=find_packages(exclude=['examples', 'tests']),
      python_requires='>=3.7',
      install_requires=['PasteDeploy'],
      zip_safe=False,
      extras_require={
        'testing': ['pytest'],
        },
      entry_points="""
      [paste.filter_app_factory]
      ident = identkit.auth.ident:make_ident_filter
      same_user = identkit.auth.ident:make_same_user_filter
      same_user_cookie = identkit.auth.cookie:make_cookie_filter
      """,
      )
