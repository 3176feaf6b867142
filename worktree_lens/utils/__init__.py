"""Helpers shared by the engine and services."""

from .threading import get_optimal_worker_count, get_threading_info, start_daemon_thread

__all__ = ["get_optimal_worker_count", "get_threading_info", "start_daemon_thread"]
