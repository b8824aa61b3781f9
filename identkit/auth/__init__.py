"""
Package for identification of requests.

Each module is a single-focused middleware component; putting them
together into a usable system is up to a higher-level framework.
"""
