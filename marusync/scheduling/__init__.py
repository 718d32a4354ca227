"""
Background scheduling for MaruSync.
"""

from .scheduler import TokenRefreshScheduler, TOKEN_REFRESH_JOB_ID

__all__ = ["TokenRefreshScheduler", "TOKEN_REFRESH_JOB_ID"]
