"""Litestar plugin for litestar-crews.

This module provides the CrewsPlugin, which builds a ``CrewServices`` container
for a Litestar application, ties its lifecycle to the app's startup and
shutdown hooks, and exposes its components through dependency injection.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from litestar.di import Provide
from litestar.plugins import InitPluginProtocol

from litestar_crews.approvals.manager import ApprovalGateManager
from litestar_crews.engine.executor import WorkflowExecutor
from litestar_crews.engine.registry import WorkerRegistry
from litestar_crews.recovery.manager import RecoveryManager
from litestar_crews.services import CrewServices
from litestar_crews.state.manager import StateManager

if TYPE_CHECKING:
    from collections.abc import Callable

    from litestar.config.app import AppConfig

    from litestar_crews.config import EngineSettings
    from litestar_crews.core.definition import Step
    from litestar_crews.core.protocols import EventBus, StateStore, Worker

__all__ = ["CrewsPlugin", "CrewsPluginConfig"]


@dataclass
class CrewsPluginConfig:
    """Configuration for the CrewsPlugin.

    Attributes:
        worker: The worker capability. Defaults to an empty ``WorkerRegistry``.
        store: Durable store. Defaults to an ``InMemoryStore``.
        settings: Engine tunables. Defaults to ``EngineSettings()``.
        event_bus: Optional event bus for the executor.
        approval_policy: Optional policy marking extra steps for approval.
        dependency_key_executor: DI key of the WorkflowExecutor.
        dependency_key_state_manager: DI key of the StateManager.
        dependency_key_approvals: DI key of the ApprovalGateManager.
        dependency_key_recovery: DI key of the RecoveryManager.
        dependency_key_services: DI key of the whole CrewServices container.
    """

    worker: Worker | None = None
    store: StateStore | None = None
    settings: EngineSettings | None = None
    event_bus: EventBus | None = None
    approval_policy: Callable[[int, Step], bool] | None = None
    dependency_key_executor: str = "crew_executor"
    dependency_key_state_manager: str = "crew_state_manager"
    dependency_key_approvals: str = "crew_approvals"
    dependency_key_recovery: str = "crew_recovery"
    dependency_key_services: str = "crew_services"


class CrewsPlugin(InitPluginProtocol):
    """Litestar plugin for crew workflow orchestration.

    Example:
        Basic usage::

            from litestar import Litestar, post
            from litestar_crews import CrewsPlugin, CrewsPluginConfig, WorkerRegistry, WorkflowExecutor

            workers = WorkerRegistry()
            workers.register("researcher", research, name="Researcher")


            @post("/crews/{run_id:str}")
            async def run_crew(run_id: str, data: dict, crew_executor: WorkflowExecutor) -> dict:
                result = await crew_executor.execute(run_id, data["name"], data["workflow"], data["input"])
                return result.to_dict()


            app = Litestar(
                route_handlers=[run_crew],
                plugins=[CrewsPlugin(config=CrewsPluginConfig(worker=workers))],
            )
    """

    __slots__ = ("_config", "_services")

    def __init__(self, config: CrewsPluginConfig | None = None) -> None:
        """Initialize the plugin.

        Args:
            config: Optional configuration for the plugin.
        """
        self._config = config or CrewsPluginConfig()
        self._services: CrewServices | None = None

    @property
    def services(self) -> CrewServices:
        """Get the service container.

        Raises:
            RuntimeError: If accessed before plugin initialization.
        """
        if self._services is None:
            msg = "CrewsPlugin has not been initialized. Access services after app initialization."
            raise RuntimeError(msg)
        return self._services

    def on_app_init(self, app_config: AppConfig) -> AppConfig:
        """Build the services and register them with the app.

        Args:
            app_config: The Litestar application configuration.

        Returns:
            The modified application configuration.
        """
        config = self._config
        self._services = CrewServices.create(
            config.worker if config.worker is not None else WorkerRegistry(),
            config.store,
            config.settings,
            event_bus=config.event_bus,
            approval_policy=config.approval_policy,
        )

        app_config.on_startup.append(self._services.startup)
        app_config.on_shutdown.append(self._services.shutdown)

        def provide_services() -> CrewServices:
            return self.services

        def provide_executor() -> WorkflowExecutor:
            return self.services.executor

        def provide_state_manager() -> StateManager:
            return self.services.state_manager

        def provide_approvals() -> ApprovalGateManager:
            return self.services.approvals

        def provide_recovery() -> RecoveryManager:
            return self.services.recovery

        app_config.dependencies[config.dependency_key_services] = Provide(provide_services, sync_to_thread=False)
        app_config.dependencies[config.dependency_key_executor] = Provide(provide_executor, sync_to_thread=False)
        app_config.dependencies[config.dependency_key_state_manager] = Provide(
            provide_state_manager,
            sync_to_thread=False,
        )
        app_config.dependencies[config.dependency_key_approvals] = Provide(provide_approvals, sync_to_thread=False)
        app_config.dependencies[config.dependency_key_recovery] = Provide(provide_recovery, sync_to_thread=False)

        return app_config
