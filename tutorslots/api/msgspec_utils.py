"""Utility helpers for msgspec response encoding."""

from __future__ import annotations

from collections.abc import Sequence

import msgspec
from starlette.responses import Response


def encode_msgspec_response(payload: msgspec.Struct | Sequence[msgspec.Struct] | dict[str, object], *, status_code: int = 200) -> Response:
  """Encode msgspec values (a Struct, a list of Structs or a plain mapping) as a JSON HTTP response."""
  encoded = msgspec.json.encode(payload)
  return Response(content=encoded, status_code=status_code, media_type="application/json")
