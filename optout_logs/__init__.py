"""
optout_logs - Markdown audit log for opt-out sessions

Usage:
    from optout_logs import create_run_logger

    run_logger = create_run_logger(brokers=["Spokeo"], log_dir="logs")
    run_logger.log_heading("Spokeo")
    run_logger.log_kv("phase", "fill")
    run_logger.finalize(successful=1, failed=0, duration_s=42.0)
"""

from .run_logger import RunLogger, create_run_logger

__all__ = [
    'RunLogger',
    'create_run_logger',
]

__version__ = '0.1.0'
