"""Logging setup for worktree-lens.

Three sinks depending on how we run:
  - one-shot commands log to stderr
  - the TUI owns the terminal, so it logs to ``~/.worktree-lens/worktree-lens.log``
  - the hook handler runs inside the agent and must never write to the
    terminal; it logs warnings to ``hooks.log`` in the same directory
"""
import logging
import sys
from pathlib import Path

LOG_FILE_NAME = 'worktree-lens.log'
HOOK_LOG_FILE_NAME = 'hooks.log'

# Third-party loggers that are noisy below WARNING
QUIET_LOGGERS = ('watchdog', 'git.cmd', 'git.util', 'asyncio')

LEVEL_COLORS = {
    logging.DEBUG: '\033[36m',
    logging.INFO: '\033[32m',
    logging.WARNING: '\033[33m',
    logging.ERROR: '\033[31m',
    logging.CRITICAL: '\033[35m',
}
RESET = '\033[0m'


class ColoredFormatter(logging.Formatter):
    """Colours the level name when stderr is a terminal."""

    def __init__(self, fmt=None, datefmt=None, use_color=None):
        super().__init__(fmt=fmt, datefmt=datefmt)
        self.use_color = sys.stderr.isatty() if use_color is None else use_color

    def format(self, record):
        if not self.use_color or record.levelno not in LEVEL_COLORS:
            return super().format(record)
        # Format a copy so file handlers sharing the record see the plain name
        colored = logging.makeLogRecord(record.__dict__)
        colored.levelname = f"{LEVEL_COLORS[record.levelno]}{record.levelname}{RESET}"
        return super().format(colored)


def get_log_dir() -> Path:
    """Directory holding the worktree-lens log files."""
    return Path.home() / '.worktree-lens'


def _file_handler(name: str, level: int, mode: str) -> logging.Handler:
    log_dir = get_log_dir()
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_dir / name, mode=mode)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(
        fmt='%(asctime)s - %(name)s - %(threadName)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    ))
    return handler


def setup_logging(verbose: bool = False, debug: bool = False, tui_mode: bool = False) -> None:
    """
    Configure logging for the application.

    Args:
        verbose: Show INFO messages
        debug: Show DEBUG messages, and also write them to the log file
        tui_mode: Log only to the log file
    """
    if debug:
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    else:
        level = logging.WARNING

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG if tui_mode else level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    if tui_mode or debug:
        # Truncated per run; the TUI log is only useful for the current session
        root_logger.addHandler(_file_handler(LOG_FILE_NAME, logging.DEBUG, mode='w'))

    if not tui_mode:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        if debug:
            fmt = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        else:
            fmt = '[%(name)s] %(message)s'
        console_handler.setFormatter(ColoredFormatter(fmt=fmt, datefmt='%Y-%m-%d %H:%M:%S'))
        root_logger.addHandler(console_handler)


def setup_hook_logging() -> None:
    """Log hook handler problems to a file, never to stdout or stderr."""
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.WARNING)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    try:
        root_logger.addHandler(_file_handler(HOOK_LOG_FILE_NAME, logging.WARNING, mode='a'))
    except OSError:
        root_logger.addHandler(logging.NullHandler())


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger for a module, dropping the package prefix for shorter names.

    ``worktree_lens.services.watcher`` logs as ``watcher``.
    """
    for prefix in ('worktree_lens.', 'services.'):
        if name.startswith(prefix):
            name = name[len(prefix):]
    return logging.getLogger(name)
