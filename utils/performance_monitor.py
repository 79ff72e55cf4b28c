# utils/performance_monitor.py

import os
import platform
import time
from contextlib import contextmanager
from typing import Dict

import psutil

_PROCESS_STARTED = time.time()


class PerformanceMonitor:
    """
    Resource figures for health checks and maintenance reports
    """

    @staticmethod
    def get_system_info() -> dict:
        """Get current system information"""
        memory = psutil.virtual_memory()

        return {
            'cpu_count': psutil.cpu_count(logical=False),
            'cpu_count_logical': psutil.cpu_count(logical=True),
            'memory_total_gb': memory.total / (1024**3),
            'memory_available_gb': memory.available / (1024**3),
            'memory_percent': memory.percent,
            'python_version': platform.python_version(),
        }

    @staticmethod
    def get_process_info() -> dict:
        """Memory and uptime of the running server process"""
        process = psutil.Process(os.getpid())
        memory = process.memory_info()

        return {
            'uptime_seconds': int(time.time() - _PROCESS_STARTED),
            'memory_rss_mb': round(memory.rss / (1024**2)),
            'memory_vms_mb': round(memory.vms / (1024**2)),
            'threads': process.num_threads(),
        }

    @staticmethod
    def get_disk_usage(path: str) -> Dict[str, float]:
        """Free space on the volume holding `path`"""
        usage = psutil.disk_usage(path)
        return {
            'total_gb': usage.total / (1024**3),
            'free_gb': usage.free / (1024**3),
            'percent': usage.percent,
        }


@contextmanager
def timed(results: dict, key: str = 'elapsed_ms'):
    """Store the block's wall time in milliseconds under results[key]"""
    start = time.perf_counter()
    try:
        yield results
    finally:
        results[key] = round((time.perf_counter() - start) * 1000)
