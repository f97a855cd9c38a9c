"""BaseService — abstract foundation for store-backed formctl services.

Every service receives a :class:`FormStore` at construction time. The
store provides transactional database access, the authority clock, the
query cache and the plugin manager. Services own their transaction
boundaries via ``self._store.transaction()``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from formctl.infrastructure.store import FormStore
    from formctl.plugins.manager import PluginManager


class BaseService:
    """Abstract base for service-layer classes.

    Usage::

        class VersionService(BaseService):
            def create_version(self, form_id: str, ...) -> ServiceResult:
                with self._store.transaction() as txn:
                    ...
    """

    def __init__(self, store: FormStore) -> None:
        self._store = store

    @property
    def store(self) -> FormStore:
        return self._store

    def _dispatch_event(
        self,
        hook_name: str,
        payload: dict[str, Any],
        warnings: list[str],
    ) -> None:
        """Call plugin hook *hook_name*. No-op if plugins are not initialized.

        INVARIANT: Plugin failures are warnings, never errors.
        """
        dispatch_hook(self._store.plugin_manager, hook_name, payload, warnings)


def dispatch_hook(
    plugin_manager: PluginManager | None,
    hook_name: str,
    payload: dict[str, Any],
    warnings: list[str],
) -> None:
    """Call *hook_name* on *plugin_manager*, turning failures into *warnings*."""
    if plugin_manager is None:
        return
    warning = plugin_manager.dispatch(hook_name, payload)
    if warning is not None:
        warnings.append(warning)
