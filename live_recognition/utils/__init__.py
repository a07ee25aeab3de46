"""
Utility modules package.
"""

from .async_loop import EventLoopThread

__all__ = [
    'EventLoopThread',
]
