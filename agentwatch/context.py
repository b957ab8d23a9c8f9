"""AppContext: wires config, collaborators and services together."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from agentwatch.config import AppConfig, load_config
from agentwatch.services.session_registry import SessionRegistry

if TYPE_CHECKING:
    from pathlib import Path

    from agentwatch.infra.agents.claude_code import ClaudeCodeProcessManager
    from agentwatch.infra.oracle.registry import OraclePair
    from agentwatch.infra.projects import ProjectResolver
    from agentwatch.infra.signal.client import SignalClient
    from agentwatch.infra.signal.daemon import SignalDaemon
    from agentwatch.services.blocker_assessor import BlockerAssessor
    from agentwatch.services.bubble_router import BubbleRouter
    from agentwatch.services.bubble_service import BubbleService
    from agentwatch.services.orchestrator_service import OrchestratorService
    from agentwatch.services.realtime_interventor import RealtimeInterventor
    from agentwatch.services.session_monitor import SessionMonitor
    from agentwatch.services.signal_service import SignalService

logger = logging.getLogger(__name__)


class AppContext:
    """Central wiring for all application dependencies.

    Owns the process-wide SessionRegistry. Services are created lazily
    on first access.
    """

    def __init__(self, config: AppConfig | None = None, config_path: Path | None = None) -> None:
        self.config = config or load_config(config_path)
        self.registry = SessionRegistry()
        self._agents: ClaudeCodeProcessManager | None = None
        self._projects: ProjectResolver | None = None
        self._oracles: OraclePair | None = None
        self._signal_daemon: SignalDaemon | None = None
        self._signal_client: SignalClient | None = None
        self._assessor: BlockerAssessor | None = None
        self._interventor: RealtimeInterventor | None = None
        self._bubbles: BubbleService | None = None
        self._monitor: SessionMonitor | None = None
        self._router: BubbleRouter | None = None
        self._orchestrator: OrchestratorService | None = None
        self._signal_service: SignalService | None = None

    async def close(self) -> None:
        if self._signal_service:
            await self._signal_service.stop()
        if self._agents:
            await self._agents.stop_all()
        logger.info("AppContext closed")

    @property
    def agents(self) -> ClaudeCodeProcessManager:
        if self._agents is None:
            from agentwatch.infra.agents.claude_code import ClaudeCodeProcessManager

            self._agents = ClaudeCodeProcessManager(program=self.config.agent.program)
        return self._agents

    @property
    def projects(self) -> ProjectResolver:
        if self._projects is None:
            from agentwatch.infra.projects import ProjectResolver

            self._projects = ProjectResolver(self.config.projects)
        return self._projects

    @property
    def oracles(self) -> OraclePair:
        if self._oracles is None:
            from agentwatch.infra.oracle.registry import get_oracles

            self._oracles = get_oracles(self.config)
        return self._oracles

    @property
    def signal_daemon(self) -> SignalDaemon:
        if self._signal_daemon is None:
            from agentwatch.infra.signal.daemon import SignalDaemon

            self._signal_daemon = SignalDaemon(
                account=self.config.signal.account,
                http_url=self.config.signal.http_url,
            )
        return self._signal_daemon

    @property
    def signal_client(self) -> SignalClient:
        if self._signal_client is None:
            from agentwatch.infra.signal.client import SignalClient

            self._signal_client = SignalClient(
                http_url=self.config.signal.http_url,
                account=self.config.signal.account,
                daemon=self.signal_daemon,
            )
        return self._signal_client

    @property
    def assessor(self) -> BlockerAssessor:
        if self._assessor is None:
            from agentwatch.services.blocker_assessor import BlockerAssessor

            self._assessor = BlockerAssessor(
                self.oracles.assessment, timeout=self.config.oracle.timeout
            )
        return self._assessor

    @property
    def interventor(self) -> RealtimeInterventor:
        if self._interventor is None:
            from agentwatch.services.realtime_interventor import RealtimeInterventor

            self._interventor = RealtimeInterventor(
                self.oracles.intervention, timeout=self.config.oracle.timeout
            )
        return self._interventor

    @property
    def bubbles(self) -> BubbleService:
        if self._bubbles is None:
            from agentwatch.services.bubble_service import BubbleService

            self._bubbles = BubbleService(self.signal_client, self.registry)
        return self._bubbles

    @property
    def monitor(self) -> SessionMonitor:
        if self._monitor is None:
            from agentwatch.services.session_monitor import SessionMonitor

            self._monitor = SessionMonitor(
                registry=self.registry,
                agents=self.agents,
                bubbles=self.bubbles,
                assessor=self.assessor,
                interventor=self.interventor,
                detection=self.config.detection,
                agent_config=self.config.agent,
            )
        return self._monitor

    @property
    def router(self) -> BubbleRouter:
        if self._router is None:
            from agentwatch.services.bubble_router import BubbleRouter

            self._router = BubbleRouter(
                registry=self.registry,
                agents=self.agents,
                projects=self.projects,
                transport=self.signal_client,
                monitor=self.monitor,
            )
        return self._router

    @property
    def orchestrator(self) -> OrchestratorService:
        if self._orchestrator is None:
            from agentwatch.services.orchestrator_service import OrchestratorService

            self._orchestrator = OrchestratorService(
                config=self.config,
                registry=self.registry,
                projects=self.projects,
                monitor=self.monitor,
                agents=self.agents,
            )
        return self._orchestrator

    @property
    def signal_service(self) -> SignalService:
        if self._signal_service is None:
            from agentwatch.infra.signal.handler import SignalMessageHandler
            from agentwatch.services.signal_service import SignalService

            signal_config = self.config.signal
            handler = SignalMessageHandler(
                router=self.router,
                orchestrator=self.orchestrator,
                allowed_senders=signal_config.allowed_senders,
                dm_policy=signal_config.dm_policy,
            )
            self._signal_service = SignalService(
                config=signal_config,
                client=self.signal_client,
                handler=handler,
                daemon=self.signal_daemon,
            )
        return self._signal_service
