"""
Built-in slash commands

Install with ``team.add_packages(builtin_package())``.
"""

from typing import List

from .core.errors import CommandNotFoundError
from .state.slice import ResetScope, parse_scopes
from .team.contracts import Command
from .team.package import AgentPackage


class HelpCommand(Command):
    name = "help"
    description = "List commands, or show help for one command"

    def execute(self, args: str, agent):
        commands = agent.team.commands
        if args:
            command = commands.get(args.lstrip('/'))
            if command is None:
                raise CommandNotFoundError(args.lstrip('/'))
            lines = command.help()
        else:
            lines = ["Available commands:"]
            for name in sorted(commands.keys()):
                lines.append(f"  /{name} - {commands.get(name).description}")
        agent.info_message("\n".join(lines))

    def help(self) -> List[str]:
        return ["/help [command] - list commands, or show help for one command"]


class ResetCommand(Command):
    name = "reset"
    description = "Reset agent state (scopes: chat, memory, settings, all)"

    def execute(self, args: str, agent):
        scopes = parse_scopes(args.split()) if args else {ResetScope.CHAT}
        agent.reset(scopes)
        agent.info_message(f"Reset {', '.join(sorted(scope.value for scope in scopes))}")

    def help(self) -> List[str]:
        return [
            "/reset [scope...] - reset agent state",
            "  scopes: chat (default), memory, settings, all"
        ]


class ExitCommand(Command):
    name = "exit"
    description = "Exit this agent"

    def execute(self, args: str, agent):
        agent.info_message("Exiting agent")
        agent.request_exit()


class CheckpointCommand(Command):
    name = "checkpoint"
    description = "Show a checkpoint of this agent's state"

    def execute(self, args: str, agent):
        checkpoint = agent.generate_checkpoint(label=args or None)
        agent.info_message(checkpoint.to_json())


def builtin_package() -> AgentPackage:
    return AgentPackage(
        name="agentry-builtins",
        description="Built-in agent commands",
        commands=[HelpCommand(), ResetCommand(), ExitCommand(), CheckpointCommand()]
    )
