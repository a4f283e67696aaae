"""Local .env support so development shells need no exported variables."""

from __future__ import annotations

import os
from collections.abc import Iterable
from pathlib import Path

_QUOTES = ("'", '"')


def default_env_path() -> Path:
  return Path(os.getenv("TUTORSLOTS_ENV_FILE") or Path(__file__).resolve().parents[2] / ".env")


def _unquote(raw: str) -> str:
  if len(raw) >= 2 and raw[0] in _QUOTES and raw[-1] == raw[0]:
    return raw[1:-1]

  # Unquoted values may carry a trailing " # comment".
  return raw.split(" #", 1)[0].rstrip()


def parse_env_lines(lines: Iterable[str]) -> dict[str, str]:
  """Parse KEY=value lines, tolerating blank lines, comments and a leading ``export``."""
  parsed: dict[str, str] = {}
  for line in lines:
    stripped = line.strip()
    if not stripped or stripped.startswith("#"):
      continue
    key, sep, value = stripped.removeprefix("export ").partition("=")
    key = key.strip()
    if sep and key:
      parsed[key] = _unquote(value.strip())
  return parsed


def load_env_file(path: Path, *, override: bool = False) -> dict[str, str]:
  """Copy entries from ``path`` into ``os.environ`` and return the ones applied."""
  if not path.is_file():
    return {}

  applied = {key: value for key, value in parse_env_lines(path.read_text(encoding="utf-8").splitlines()).items() if override or key not in os.environ}
  os.environ.update(applied)
  return applied
