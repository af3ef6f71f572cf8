"""Upstream path rewriting.

Both rewriters take the route prefix and the inbound path (without query
string) and are total: a path that does not start with the prefix is
returned unchanged.
"""

from collections.abc import Callable

from core.request_types import RouteConfig


def strip_prefix(prefix: str, path: str) -> str:
    """Remove exactly one leading ``prefix``.

    ``/api/workouts`` -> ``/workouts``; ``/api`` -> ``""`` (the host root).
    Matching is case-sensitive.
    """
    if not path.startswith(prefix):
        return path
    return path[len(prefix):]


def canonicalize_prefix(prefix: str, path: str) -> str:
    """Make sure the path starts with ``prefix + "/"``.

    Only the leading prefix and at most one following slash are touched, so
    ``/auth`` -> ``/auth/``, ``/auth/login`` is kept and a nested
    ``/auth/auth/x`` is kept as-is.
    """
    if not path.startswith(prefix):
        return path
    rest = path[len(prefix):]
    return f"{prefix}/{rest.removeprefix('/')}"


REWRITERS: dict[str, Callable[[str, str], str]] = {
    "strip": strip_prefix,
    "canonical": canonicalize_prefix,
}


def rewrite_path(route: RouteConfig, path: str) -> str:
    """Apply the route's rewrite to an inbound path."""
    return route.path_rewrite(path)
