"""Fuzzy matching of probed model identifiers against the model catalog."""

from __future__ import annotations

import re

from .models import ModelMetadata, ModelsRegistry

WEIGHT_FILE_SUFFIX_RE = re.compile(r"\.gguf$", re.IGNORECASE)


def normalize_model_name(name: str) -> str:
    """Last path segment, weight-file extension removed, lowercased."""
    last = name.split("/")[-1]
    return WEIGHT_FILE_SUFFIX_RE.sub("", last).lower()


def is_same_model(a: str, b: str) -> bool:
    """Loose comparison: either normalized name contains the other."""
    left = normalize_model_name(a)
    right = normalize_model_name(b)
    if not left or not right:
        return False
    return left in right or right in left


def find_model_metadata(model_name: str, registry: ModelsRegistry) -> ModelMetadata | None:
    """Return the catalog entry best matching ``model_name``, or None.

    Exact normalized equality anywhere in the catalog wins over substring
    containment; within each pass the first declared entry wins.
    """
    probe = normalize_model_name(model_name)
    if not probe:
        return None

    normalized = [
        (normalize_model_name(key), meta) for key, meta in registry.models.items()
    ]
    for key, meta in normalized:
        if key and key == probe:
            return meta
    for key, meta in normalized:
        if key and (key in probe or probe in key):
            return meta
    return None
