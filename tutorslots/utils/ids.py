"""Identifier utilities."""

from __future__ import annotations

import secrets
import string

_ALPHABET = string.ascii_letters + string.digits


def generate_nanoid(size: int = 16) -> str:
  """Return a short non-sequential id suitable for public references."""
  return "".join(secrets.choice(_ALPHABET) for _ in range(size))


def generate_slot_id() -> str:
  """Return a new time slot identifier."""
  return generate_nanoid()


def generate_booking_id() -> str:
  """Return a new booking identifier."""
  return generate_nanoid()


def generate_penalty_id() -> str:
  """Return a new penalty record identifier."""
  return generate_nanoid()


def generate_template_entry_id() -> str:
  """Return a new weekly template entry identifier."""
  return generate_nanoid()


def attendance_penalty_id(target_id: str, code: str) -> str:
  """Return the fixed ledger id for an attendance penalty so one target yields at most one entry per code."""
  return f"att-{code}-{target_id}"
