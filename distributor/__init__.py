"""Distributor: incremental file distribution for build artifacts and assets.

Declare a source root and its destinations once, then re-run cheaply:
only files that changed since the last successful sync are copied, and
destinations that already hold identical bytes are left untouched.
"""

__version__ = "1.0.0"
__app_name__ = "Distributor"
