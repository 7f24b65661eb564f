"""
Networking core: the listening socket, per-client connections (with
their TLS handshake), and the worker pool that serves them.

    SocketServer ──accept──► Connection ──submit──► ThreadPool ──► worker
"""

from .connection import Connection, ConnectionState
from .socket_server import SocketServer
from .thread_pool import ThreadPool, Task, Worker, WorkerState

__all__ = [
    "Connection",
    "ConnectionState",
    "SocketServer",
    "ThreadPool",
    "Task",
    "Worker",
    "WorkerState",
]
