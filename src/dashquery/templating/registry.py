"""Templater registry with plugin discovery via entry points.

Built-in templaters are always available. Third-party packages can add
their own through the `dashquery.templaters` entry point group.
"""

from importlib.metadata import entry_points
from typing import Dict, List, Type

from rich.console import Console

from dashquery.templating.base import NoOpTemplater, Templater, TemplaterError
from dashquery.templating.dollar import DollarTemplater
from dashquery.templating.jinja import JinjaTemplater

ENTRY_POINT_GROUP = "dashquery.templaters"

BUILTIN_TEMPLATERS: Dict[str, Type[Templater]] = {
    "none": NoOpTemplater,
    "dollar": DollarTemplater,
    "jinja": JinjaTemplater,
}

console = Console(stderr=True)

_templater_cache: Dict[str, Type[Templater]] = {}
_discovery_done: bool = False


def _discover_templaters() -> None:
    """Load built-in templaters, then any registered through entry points."""
    global _discovery_done

    if _discovery_done:
        return

    for name, templater_class in BUILTIN_TEMPLATERS.items():
        _templater_cache.setdefault(name, templater_class)

    for ep in entry_points(group=ENTRY_POINT_GROUP):
        if ep.name in _templater_cache:
            continue
        try:
            templater_class = ep.load()
        except Exception as e:
            console.print(
                f"[yellow]Warning:[/yellow] Could not load templater '{ep.name}': {e}"
            )
            continue
        if isinstance(templater_class, type) and issubclass(templater_class, Templater):
            _templater_cache[ep.name] = templater_class

    _discovery_done = True


def get_templater(name: str) -> Templater:
    """Get a templater instance by name.

    Args:
        name: The name of the templater (e.g., "dollar", "jinja", "none").

    Returns:
        A new instance of the requested templater.

    Raises:
        TemplaterError: If the templater is not found.
    """
    _discover_templaters()

    if name not in _templater_cache:
        available = ", ".join(sorted(_templater_cache.keys()))
        raise TemplaterError(
            f"Unknown templater '{name}'. Available templaters: {available or 'none'}"
        )

    return _templater_cache[name]()


def list_templaters() -> List[str]:
    """List all available templater names, sorted."""
    _discover_templaters()
    return sorted(_templater_cache.keys())


def register_templater(name: str, templater_class: Type[Templater]) -> None:
    """Register a templater programmatically.

    Args:
        name: The name to register the templater under.
        templater_class: The templater class to register.

    Raises:
        ValueError: If templater_class is not a subclass of Templater.
    """
    if not isinstance(templater_class, type) or not issubclass(
        templater_class, Templater
    ):
        raise ValueError(f"{templater_class} must be a subclass of Templater")

    _discover_templaters()
    _templater_cache[name] = templater_class


def clear_registry() -> None:
    """Forget registered templaters; built-ins come back on next use."""
    global _discovery_done
    _templater_cache.clear()
    _discovery_done = False
