"""FlixMap: TMDB to FlixHQ mapping service and skip segment registry."""

__version__ = "1.0.0"
