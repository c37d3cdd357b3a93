"""
Sockets Package
"""
from smarttryout.sockets.exam_events import register_socket_events

__all__ = ['register_socket_events']
