"""Plugin discovery, registration and hook dispatch.

Plugins are pip-installed packages exposing an entry point in the
``formctl.plugins`` group, or objects registered directly (tests, embedding
applications). Entry points may name a class; it is instantiated before
any hook runs so that ``self`` is bound.
"""

from __future__ import annotations

import inspect
import logging
from typing import Any

import pluggy

from formctl.plugins.hookspecs import FormctlHookSpec

PROJECT_NAME = "formctl"
ENTRYPOINT_GROUP = "formctl.plugins"
_IMPL_ATTR = f"{PROJECT_NAME}_impl"

logger = logging.getLogger(__name__)


class PluginManager:
    """Owns the pluggy manager for the ``formctl`` hook specs."""

    def __init__(self) -> None:
        self._pm = pluggy.PluginManager(PROJECT_NAME)
        self._pm.add_hookspecs(FormctlHookSpec)
        self._loaded = False

    @property
    def is_loaded(self) -> bool:
        """Whether entry-point discovery has run."""
        return self._loaded

    @property
    def hook(self) -> pluggy.HookRelay:
        return self._pm.hook

    @property
    def hook_names(self) -> list[str]:
        """Names of the lifecycle hooks plugins may implement."""
        return sorted(name for name in vars(FormctlHookSpec) if not name.startswith("_"))

    def discover_and_load(self) -> list[str]:
        """Load entry-point plugins and return every registered plugin name."""
        count = self._pm.load_setuptools_entrypoints(ENTRYPOINT_GROUP)
        self._normalize_plugin_instances()
        self._loaded = True
        logger.debug("loaded %d entry-point plugin(s)", count)
        return self.list_plugin_names()

    def register_plugin(self, plugin: object, name: str | None = None) -> None:
        name = name or plugin.__class__.__name__
        self._pm.register(plugin, name=name)
        logger.debug("registered plugin %s", name)

    def unregister(self, plugin: object) -> None:
        self._pm.unregister(plugin)

    def get_plugins(self) -> list[object]:
        return list(self._pm.get_plugins())

    def list_plugin_names(self) -> list[str]:
        return [self._pm.get_name(p) or p.__class__.__name__ for p in self._pm.get_plugins()]

    def dispatch(self, hook_name: str, payload: dict[str, Any]) -> str | None:
        """Call every implementation of *hook_name* with *payload*.

        Returns a warning message when an implementation raises, else None.
        An unknown hook name is a programming error and raises ValueError.
        """
        if hook_name not in self.hook_names:
            msg = f"Unknown hook {hook_name!r}"
            raise ValueError(msg)
        try:
            getattr(self._pm.hook, hook_name)(**payload)
        except Exception:
            logger.debug("hook %s failed", hook_name, exc_info=True)
            return f"Hook dispatch failed for {hook_name}"
        return None

    def _normalize_plugin_instances(self) -> None:
        """Swap plugin classes registered by entry points for instances."""
        for plugin in self.get_plugins():
            if not (inspect.isclass(plugin) and _implements_hooks(plugin)):
                continue
            name = self._pm.get_name(plugin) or plugin.__name__
            self._pm.unregister(plugin)
            try:
                instance = plugin()
            except Exception:
                logger.warning("cannot instantiate plugin %s; skipped", name, exc_info=True)
                continue
            self._pm.register(instance, name=name)


def _implements_hooks(cls: type) -> bool:
    """True when *cls* carries at least one ``@hookimpl`` method."""
    return any(
        getattr(getattr(cls, attr, None), _IMPL_ATTR, None)
        for attr in dir(cls)
        if not attr.startswith("_")
    )
