"""Request routing logic - maps inbound path prefixes to route configs."""

from functools import partial
from types import MappingProxyType

from core.config import Config, RouteSettings
from core.exceptions import ConfigurationError
from core.paths import REWRITERS
from core.request_types import RouteConfig, UpstreamTarget


def build_target(config: Config) -> UpstreamTarget:
    return UpstreamTarget(scheme=config.upstream.scheme, host=config.upstream.host)


def build_route(settings: RouteSettings, config: Config) -> RouteConfig:
    """Turn route settings into an immutable RouteConfig."""
    prefix = settings.prefix
    if not prefix.startswith("/") or prefix.endswith("/"):
        raise ConfigurationError(
            f"Route prefix must start with '/' and not end with one: {prefix!r}"
        )

    forced = {
        "Origin": config.upstream.origin,
        "Peloton-Platform": config.upstream.platform,
    }
    # Header names are case-insensitive; a route override replaces the default
    for key, value in settings.forced_headers.items():
        for existing in [name for name in forced if name.lower() == key.lower()]:
            del forced[existing]
        forced[key] = value
    return RouteConfig(
        prefix=prefix,
        path_rewrite=partial(REWRITERS[settings.rewrite], prefix),
        forced_headers=MappingProxyType(forced),
        cookie_domain_rewrites=MappingProxyType(dict(settings.cookie_domain_rewrites)),
    )


class RouteTable:
    """Prefix lookup over the registered routes."""

    def __init__(self, routes: list[RouteConfig]):
        prefixes = [route.prefix for route in routes]
        for prefix in prefixes:
            overlapping = [
                other for other in prefixes
                if other != prefix and other.startswith(prefix + "/")
            ]
            if overlapping or prefixes.count(prefix) > 1:
                raise ConfigurationError(f"Route prefixes must be disjoint: {prefix!r}")
        self._routes = tuple(routes)

    @classmethod
    def from_config(cls, config: Config) -> "RouteTable":
        return cls([build_route(settings, config) for settings in config.routes])

    @property
    def routes(self) -> tuple[RouteConfig, ...]:
        return self._routes

    def match(self, method: str, path: str) -> RouteConfig | None:
        """Return the route owning ``path``, or None when nothing matches.

        A prefix owns itself and anything below it on a segment boundary,
        so ``/api`` matches ``/api`` and ``/api/x`` but not ``/apix``. All
        methods are forwarded.
        """
        for route in self._routes:
            if path == route.prefix or path.startswith(route.prefix + "/"):
                return route
        return None
