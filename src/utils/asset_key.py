"""
Cache key derivation for generated assets.

A frame's asset key is the normalized stem of its filename. The key names
the artifact on disk, so the same frame name always maps to the same model.
"""

import re

FALLBACK_ASSET_KEY = "seed3d-asset"

_PATH_SEPARATORS = re.compile(r"[\\/]")
_EXTENSION = re.compile(r"\.[^/.\\]+$")
_NON_ALPHANUMERIC = re.compile(r"[^a-z0-9]+")


def slugify(value: str) -> str:
    """Lowercase and collapse every run of non-alphanumerics into one hyphen."""
    return _NON_ALPHANUMERIC.sub("-", value.lower()).strip("-")


def derive_asset_key(raw_name: str | None) -> str:
    """
    Derive a filesystem-safe cache key from a raw name.

    Only the last path segment is used and its extension is dropped, so
    ``"frames/My Frame_01.PNG"`` and ``"my-frame-01.png"`` both become
    ``"my-frame-01"``. Empty input, or input that normalizes to nothing,
    yields ``FALLBACK_ASSET_KEY``.
    """
    trimmed = (raw_name or "").strip()
    if not trimmed:
        return FALLBACK_ASSET_KEY

    file_name = _PATH_SEPARATORS.split(trimmed)[-1] or trimmed
    without_ext = _EXTENSION.sub("", file_name)
    return slugify(without_ext) or FALLBACK_ASSET_KEY
