import logging
import logging.handlers
import sys
import traceback
from pathlib import Path
from types import TracebackType

from tutorslots.config import Settings

LOG_LINE_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
LOG_FILE_NAME = "tutorslots.log"
DEFAULT_LOG_DIR = Path(__file__).resolve().parents[2] / "logs"

# Loggers that would otherwise duplicate or drown the service's own lines.
_QUIETED_LOGGERS = {"uvicorn.access": logging.WARNING, "sqlalchemy.pool": logging.WARNING, "asyncio": logging.WARNING}

_active_log_path: Path | None = None


class ShortTracebackFormatter(logging.Formatter):
  """Console formatter that keeps the exception header and only the innermost frames."""

  def __init__(self, fmt: str, *, keep_frames: int = 4) -> None:
    super().__init__(fmt)
    self.keep_frames = keep_frames

  def formatException(self, ei: tuple[type[BaseException] | None, BaseException | None, TracebackType | None]) -> str:  # noqa: N802
    lines = traceback.format_exception(*ei)
    if len(lines) <= self.keep_frames + 2:
      return "".join(lines)
    return "".join([lines[0], "  ...\n", *lines[-(self.keep_frames + 1) :]])


def _backup_name(default_name: str) -> str:
  """Rotate to tutorslots-1.log rather than tutorslots.log.1 so backups keep their extension."""
  stem, _, index = default_name.rpartition(".")
  if index.isdigit() and stem.endswith(".log"):
    return f"{stem[:-4]}-{index}.log"
  return default_name


def configure_logging(settings: Settings, *, log_dir: Path = DEFAULT_LOG_DIR) -> Path:
  """Route root, uvicorn and fastapi loggers to stdout plus a rotating file and return the file path."""
  try:
    log_dir.mkdir(parents=True, exist_ok=True)
  except OSError as exc:
    raise RuntimeError(f"Cannot create log directory {log_dir}: {exc}") from exc
  log_path = log_dir / LOG_FILE_NAME

  console = logging.StreamHandler(sys.stdout)
  console.setFormatter(ShortTracebackFormatter(LOG_LINE_FORMAT))
  rotating = logging.handlers.RotatingFileHandler(log_path, encoding="utf-8", maxBytes=settings.log_max_bytes, backupCount=settings.log_backup_count)
  rotating.namer = _backup_name
  rotating.setFormatter(logging.Formatter(LOG_LINE_FORMAT))

  level = logging.DEBUG if settings.debug else logging.INFO
  logging.basicConfig(level=level, handlers=[console, rotating], force=True)
  for name in ("uvicorn", "uvicorn.error", "fastapi"):
    framework_logger = logging.getLogger(name)
    framework_logger.handlers = []
    framework_logger.propagate = True
  for name, quiet_level in _QUIETED_LOGGERS.items():
    logging.getLogger(name).setLevel(quiet_level)
  return log_path


def initialize_logging(settings: Settings, *, log_dir: Path = DEFAULT_LOG_DIR) -> Path:
  """Configure logging once per process and announce the scheduling context."""
  global _active_log_path
  if _active_log_path is not None:
    return _active_log_path

  _active_log_path = configure_logging(settings, log_dir=log_dir)
  logger = logging.getLogger("tutorslots.core.logging")
  logger.info("Logging to %s", _active_log_path)
  logger.info("environment=%s schedule_timezone=%s local_sweeps=%s", settings.environment, settings.schedule_timezone, settings.local_sweeps_enabled)
  return _active_log_path
