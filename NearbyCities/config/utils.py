"""Helpers for the NearbyCities configuration system."""

from typing import Any, Dict


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """
    Recursively merge two dictionaries, with override values taking precedence.

    Nested mappings are merged key by key. Lists and scalars in ``override``
    replace the base value outright. Neither input is modified.

    Example:
        >>> deep_merge({'search': {'radius_km': 100, 'strict_radius': False}},
        ...            {'search': {'strict_radius': True}})
        {'search': {'radius_km': 100, 'strict_radius': True}}
    """
    result = dict(base)

    for key, value in override.items():
        if isinstance(result.get(key), dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value

    return result
