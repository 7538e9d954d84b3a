# eventvalidate/core/limiter.py
"""
Rate limiter configuration module.
Separated to avoid circular imports.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

# Keyed by client IP; door scanners behind one NAT share a bucket
limiter = Limiter(key_func=get_remote_address)
