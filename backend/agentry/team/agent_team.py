"""
Agent Team for agentry

The composition root: owns the registries of tools, commands, hooks,
services, packages and agent types, creates and tracks agents, and runs the
team-wide service loops.
"""

import asyncio
import logging
from typing import Dict, Iterable, List, Optional, Union

from ..agent.agent import Agent, AgentStatus
from ..agent.config import AgentConfig, WorkHandler
from ..core.cancellation import AbortSignal
from ..core.config import Settings, get_settings
from ..core.errors import AgentConfigNotFoundError
from .contracts import Command, Hook, Service, Tool
from .package import AgentPackage
from .registry import Registry

logger = logging.getLogger(__name__)


class AgentTeam:
    """Registry, factory and directory for agents"""

    def __init__(self, settings: Optional[Settings] = None, chat_handler: Optional[WorkHandler] = None):
        self.settings = settings or get_settings()
        policy = self.settings.duplicate_policy

        self.tools: Registry[Tool] = Registry("Tool", policy)
        self.commands: Registry[Command] = Registry("Command", policy)
        self.hooks: Registry[Hook] = Registry("Hook", policy)
        self.services: Registry[Service] = Registry("Service", policy)
        self.agent_configs: Registry[AgentConfig] = Registry("Agent type", policy)
        self.packages: Registry[AgentPackage] = Registry("Package", policy)
        self.chat_handler = chat_handler

        self._agents: Dict[str, Agent] = {}
        self._run_signal: Optional[AbortSignal] = None
        self._service_tasks: List[asyncio.Task] = []

    # Registration

    def add_packages(self, packages: Union[AgentPackage, Iterable[AgentPackage]]) -> List[str]:
        """
        Install packages in the order given. A package already installed
        under the same name is skipped. Returns the names newly installed.
        """
        if isinstance(packages, AgentPackage):
            packages = [packages]

        installed = []
        for package in packages:
            if package.name in self.packages:
                logger.debug(f"Package '{package.name}' already installed; skipping")
                continue

            for tool in package.tools:
                self.register_tool(tool)
            for command in package.commands:
                self.register_command(command)
            for hook in package.hooks:
                self.register_hook(hook)
            for service in package.services:
                self.register_service(service)
            for config in package.agent_configs:
                self.register_agent_config(config)
            if package.chat_handler is not None:
                if self.chat_handler is not None:
                    logger.warning(f"Package '{package.name}' replaces the team chat handler")
                self.chat_handler = package.chat_handler
            if package.install is not None:
                package.install(self)

            self.packages.register(package.name, package)
            installed.append(package.name)
            logger.info(f"Installed package {package.name} {package.version}")
        return installed

    def register_tool(self, tool: Tool):
        self.tools.register(tool.name, tool)

    def register_command(self, command: Command):
        self.commands.register(command.name, command)

    def register_hook(self, hook: Hook):
        self.hooks.register(hook.name, hook)

    def register_service(self, service: Service):
        self.services.register(service.name, service)

    def register_agent_config(self, config: AgentConfig):
        self.agent_configs.register(config.name, config)

    def get_agent_configs(self) -> List[AgentConfig]:
        return self.agent_configs.all()

    # Agents

    async def create_agent(self, agent_type: str, parent: Optional[Agent] = None) -> Agent:
        """
        Create and initialize an agent of the named type. Initialization
        failures propagate as FatalInitializationError.
        """
        config = self.agent_configs.get(agent_type)
        if config is None:
            raise AgentConfigNotFoundError(agent_type)

        agent = Agent(self, config, parent=parent)
        await agent.initialize()
        self._agents[agent.id] = agent
        logger.info(f"Created agent {agent.id} of type {agent_type}")
        return agent

    def get_agents(self) -> List[Agent]:
        return list(self._agents.values())

    def get_agent(self, agent_id: str) -> Optional[Agent]:
        return self._agents.get(agent_id)

    async def delete_agent(self, agent: Union[Agent, str], reason: Optional[str] = None) -> bool:
        """
        Exit the agent and drop it from the directory. Called from inside the
        agent's own input handling, the exit is deferred until that input
        completes and False is returned.
        """
        if isinstance(agent, str):
            agent = self._agents.get(agent)
            if agent is None:
                return False

        await agent.shutdown(reason)
        if agent.status != AgentStatus.EXITED:
            return False

        removed = self._agents.pop(agent.id, None) is not None
        if removed:
            logger.info(f"Deleted agent {agent.id}")
        return removed

    # Team lifecycle

    async def start(self):
        """Run every service's run() loop in the background"""
        if self._run_signal is not None:
            return
        self._run_signal = AbortSignal()
        for service in self.services.all():
            task = asyncio.create_task(self._run_service(service, self._run_signal))
            self._service_tasks.append(task)
        logger.info(f"Agent team started with {len(self._service_tasks)} services")

    async def shutdown(self):
        """Delete every agent and stop the service loops"""
        for agent in self.get_agents():
            await self.delete_agent(agent, reason="Team shutting down")

        if self._run_signal is not None:
            self._run_signal.abort("Team shutting down")
        tasks, self._service_tasks = self._service_tasks, []
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._run_signal = None
        logger.info("Agent team stopped")

    async def _run_service(self, service: Service, signal: AbortSignal):
        try:
            await service.run(signal)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Service {service.name} run loop failed: {e}")
