"""
Tests for the Agent lifecycle, input dispatch and tool execution
"""

import asyncio
import logging

import pytest
from pydantic import BaseModel

from agentry import Agent, AgentConfig, AgentStatus, AgentTeam, Command, EventType, Hook, Settings, Tool
from agentry.core.errors import (
    AgentExitedError,
    AgentStateError,
    FatalInitializationError,
    ToolExecutionError,
)
from agentry.state import CommandHistoryState

from sample_slices import CounterService, CounterState, counter_config, wait_until


class IncrementCommand(Command):
    name = "inc"
    description = "Increment the counter"

    def execute(self, args, agent):
        amount = int(args) if args else 1
        agent.mutate_state(CounterState, lambda s: setattr(s, 'value', s.value + amount))


class FailCommand(Command):
    name = "fail"
    description = "Always fails"

    async def execute(self, args, agent):
        raise RuntimeError("command exploded")


class AddInput(BaseModel):
    a: int
    b: int


class AddTool(Tool):
    name = "add"
    description = "Add two numbers"
    input_schema = AddInput

    async def execute(self, input, agent):
        return input.a + input.b


class SlowTool(Tool):
    name = "slow"
    description = "Never finishes on its own"

    def __init__(self):
        self.cancelled = False

    async def execute(self, input, agent):
        try:
            await asyncio.sleep(30)
        except asyncio.CancelledError:
            self.cancelled = True
            raise


class BrokenTool(Tool):
    name = "broken"
    description = "Raises"

    async def execute(self, input, agent):
        raise ValueError("bad tool")


class LeaveTool(Tool):
    name = "leave"
    description = "Deletes the agent that runs it"

    async def execute(self, input, agent):
        return await agent.team.delete_agent(agent, reason="tool asked to leave")


class RecordingHook(Hook):
    def __init__(self, name):
        self.name = name
        self.calls = []

    async def before_input(self, agent, message):
        self.calls.append(('before', message))

    async def after_input(self, agent, message):
        self.calls.append(('after', message))


async def echo_handler(agent, message, signal):
    agent.chat_output(f"echo: {message}")


async def hanging_handler(agent, message, signal):
    await asyncio.sleep(30)


def types_since(agent, sequence):
    return [envelope.type for envelope in agent.bus.history(since=sequence)]


@pytest.fixture
def counter_team(team):
    team.register_service(CounterService())
    team.register_command(IncrementCommand())
    team.register_command(FailCommand())
    team.register_agent_config(counter_config(work_handler=echo_handler))
    team.register_agent_config(counter_config(name="hanging", work_handler=hanging_handler))
    return team


class TestAgentLifecycle:
    """Test cases for agent initialization and exit"""

    @pytest.mark.asyncio
    async def test_initialize_reaches_idle(self, counter_team):
        agent = await counter_team.create_agent("counter")

        assert agent.status == AgentStatus.IDLE
        assert agent.get_state(CounterState).value == 0
        assert agent.bus.history()[-1].type == EventType.STATE_IDLE
        assert counter_team.get_agent(agent.id) is agent

    @pytest.mark.asyncio
    async def test_initial_commands_run_before_idle(self, counter_team):
        counter_team.register_agent_config(counter_config(name="primed", initial_commands=["inc 5", "/inc"]))
        agent = await counter_team.create_agent("primed")

        assert agent.get_state(CounterState).value == 6
        assert agent.get_state(CommandHistoryState).commands == ["/inc 5", "/inc"]

    @pytest.mark.asyncio
    async def test_failing_initial_command_is_fatal(self, counter_team):
        service = counter_team.services.get("counter")
        counter_team.register_agent_config(counter_config(name="doomed", initial_commands=["/fail"]))

        with pytest.raises(FatalInitializationError) as exc_info:
            await counter_team.create_agent("doomed")

        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert counter_team.get_agents() == []
        assert service.attached == service.detached

    @pytest.mark.asyncio
    async def test_exit_closes_the_bus(self, counter_team):
        agent = await counter_team.create_agent("counter")
        cursor = agent.events()

        await counter_team.delete_agent(agent, reason="done")
        received = [envelope async for envelope in cursor]

        assert agent.status == AgentStatus.EXITED
        assert [e.type for e in received] == [EventType.STATE_EXIT]
        assert received[0].data['reason'] == "done"
        with pytest.raises(AgentExitedError):
            await agent.handle_input("hello")

    @pytest.mark.asyncio
    async def test_status_report(self, counter_team):
        agent = await counter_team.create_agent("counter")
        status = agent.get_status()

        assert status['status'] == "idle"
        assert status['type'] == "counter"
        assert set(status['slices']) == {"command_history", "counter", "notes"}


    @pytest.mark.asyncio
    async def test_failed_exit_is_logged(self, counter_team, monkeypatch, caplog):
        agent = await counter_team.create_agent("counter")

        async def refuse(agent, reason=None):
            raise RuntimeError("directory unavailable")

        monkeypatch.setattr(counter_team, "delete_agent", refuse)
        with caplog.at_level(logging.ERROR, logger="agentry"):
            agent.request_exit()
            await wait_until(lambda: agent._exit_task is None)

        assert any("failed to exit" in record.getMessage() for record in caplog.records)
        monkeypatch.undo()

    def test_exit_request_without_event_loop_is_deferred(self):
        agent = Agent(AgentTeam(settings=Settings()), AgentConfig(name="offline"))
        agent.status = AgentStatus.IDLE

        agent.request_exit()

        assert agent._exit_requested is True
        assert agent._exit_task is None


class TestInputDispatch:
    """Test cases for handle_input"""

    @pytest.mark.asyncio
    async def test_command_input(self, counter_team):
        agent = await counter_team.create_agent("counter")
        start = agent.bus.next_sequence

        await agent.handle_input("/inc 3")

        assert agent.get_state(CounterState).value == 3
        assert types_since(agent, start) == [
            EventType.INPUT_RECEIVED, EventType.STATE_BUSY, EventType.STATE_IDLE
        ]

    @pytest.mark.asyncio
    async def test_chat_input_goes_to_work_handler(self, counter_team):
        agent = await counter_team.create_agent("counter")
        start = agent.bus.next_sequence

        await agent.handle_input("hello")

        chat = [e for e in agent.bus.history(since=start) if e.type == EventType.OUTPUT_CHAT]
        assert [e.data['content'] for e in chat] == ["echo: hello"]

    @pytest.mark.asyncio
    async def test_team_chat_handler_is_the_fallback(self, team):
        seen = []
        team.chat_handler = lambda agent, message, signal: seen.append(message)
        team.register_agent_config(counter_config(name="plain"))
        agent = await team.create_agent("plain")

        await agent.handle_input("hi there")
        assert seen == ["hi there"]

    @pytest.mark.asyncio
    async def test_unknown_command_reports_error_and_stays_usable(self, counter_team):
        agent = await counter_team.create_agent("counter")
        start = agent.bus.next_sequence

        await agent.handle_input("/nope")

        events = agent.bus.history(since=start)
        errors = [e for e in events if e.type == EventType.SYSTEM_MESSAGE]
        assert errors[0].data['level'] == "error"
        assert errors[0].data['error'] == "CommandNotFoundError"
        assert events[-1].type == EventType.STATE_IDLE
        assert agent.status == AgentStatus.IDLE

        await agent.handle_input("/inc")
        assert agent.get_state(CounterState).value == 1

    @pytest.mark.asyncio
    async def test_command_failure_is_reported(self, counter_team):
        agent = await counter_team.create_agent("counter")
        start = agent.bus.next_sequence

        await agent.handle_input("/fail")

        errors = [e for e in agent.bus.history(since=start) if e.type == EventType.SYSTEM_MESSAGE]
        assert errors[0].data['message'] == "command exploded"
        assert agent.status == AgentStatus.IDLE

    @pytest.mark.asyncio
    async def test_overlapping_input_is_refused(self, counter_team):
        agent = await counter_team.create_agent("hanging")
        first = asyncio.create_task(agent.handle_input("think hard"))
        await wait_until(lambda: agent.status == AgentStatus.BUSY)

        with pytest.raises(AgentStateError):
            await agent.handle_input("and another thing")

        agent.abort()
        await first

    @pytest.mark.asyncio
    async def test_abort_emits_aborted_then_idle(self, counter_team):
        agent = await counter_team.create_agent("hanging")
        start = agent.bus.next_sequence

        task = asyncio.create_task(agent.handle_input("take forever"))
        await wait_until(lambda: agent.status == AgentStatus.BUSY)
        assert agent.abort("user pressed escape") is True
        await asyncio.wait_for(task, timeout=1.0)

        events = agent.bus.history(since=start)
        assert [e.type for e in events] == [
            EventType.INPUT_RECEIVED, EventType.STATE_BUSY, EventType.STATE_ABORTED, EventType.STATE_IDLE
        ]
        assert events[2].data['reason'] == "user pressed escape"
        assert agent.status == AgentStatus.IDLE
        assert agent.abort() is False

    @pytest.mark.asyncio
    async def test_abort_cancels_pending_human_request(self, team):
        async def asking_handler(agent, message, signal):
            await agent.ask_for_confirmation("Proceed?")

        team.register_agent_config(counter_config(name="asker", work_handler=asking_handler))
        agent = await team.create_agent("asker")

        task = asyncio.create_task(agent.handle_input("do it"))
        await wait_until(lambda: agent.correlator.pending_sequences)
        agent.abort()
        await asyncio.wait_for(task, timeout=1.0)

        assert agent.correlator.pending_sequences == []
        assert agent.bus.history()[-2].type == EventType.STATE_ABORTED

    @pytest.mark.asyncio
    async def test_exit_while_waiting_for_human(self, team):
        async def asking_handler(agent, message, signal):
            await agent.ask_for_text("Name?")

        team.register_agent_config(counter_config(name="asker", work_handler=asking_handler))
        agent = await team.create_agent("asker")

        task = asyncio.create_task(agent.handle_input("who am I"))
        await wait_until(lambda: agent.correlator.pending_sequences)
        await team.delete_agent(agent)
        await asyncio.wait_for(task, timeout=1.0)

        types = [e.type for e in agent.bus.history()]
        assert types[-1] == EventType.STATE_EXIT
        assert EventType.STATE_IDLE not in types[types.index(EventType.HUMAN_REQUEST):]
        assert agent.status == AgentStatus.EXITED
        assert agent.correlator.pending_sequences == []

    @pytest.mark.asyncio
    async def test_hooks_run_around_input(self, counter_team):
        everywhere = RecordingHook("everywhere")
        elsewhere = RecordingHook("elsewhere")
        counter_team.register_hook(everywhere)
        counter_team.register_hook(elsewhere)
        counter_team.register_agent_config(counter_config(name="hooked", enabled_hooks=["everywhere"]))
        agent = await counter_team.create_agent("hooked")

        await agent.handle_input("/inc")

        assert everywhere.calls == [('before', "/inc"), ('after', "/inc")]
        assert elsewhere.calls == []


class TestToolExecution:
    """Test cases for execute_tool"""

    @pytest.mark.asyncio
    async def test_validated_input(self, counter_team):
        counter_team.register_tool(AddTool())
        agent = await counter_team.create_agent("counter")

        assert await agent.execute_tool("add", {'a': 2, 'b': 3}) == 5

    @pytest.mark.asyncio
    async def test_invalid_input(self, counter_team):
        counter_team.register_tool(AddTool())
        agent = await counter_team.create_agent("counter")

        with pytest.raises(ToolExecutionError) as exc_info:
            await agent.execute_tool("add", {'a': "two"})
        assert exc_info.value.tool_name == "add"

    @pytest.mark.asyncio
    async def test_unknown_and_failing_tools(self, counter_team):
        counter_team.register_tool(BrokenTool())
        agent = await counter_team.create_agent("counter")

        with pytest.raises(ToolExecutionError):
            await agent.execute_tool("missing")
        with pytest.raises(ToolExecutionError) as exc_info:
            await agent.execute_tool("broken")
        assert isinstance(exc_info.value.__cause__, ValueError)

    def test_function_schema(self):
        schema = AddTool().to_function_schema()
        assert schema['name'] == "add"
        assert set(schema['parameters']['properties']) == {'a', 'b'}

    @pytest.mark.asyncio
    async def test_abort_unwinds_running_tool(self, team):
        slow = SlowTool()
        team.register_tool(slow)

        async def tool_handler(agent, message, signal):
            await agent.execute_tool("slow")

        team.register_agent_config(counter_config(name="tooling", work_handler=tool_handler))
        agent = await team.create_agent("tooling")

        task = asyncio.create_task(agent.handle_input("run it"))
        await wait_until(lambda: agent._tool_tasks)
        agent.abort()
        await asyncio.wait_for(task, timeout=1.0)
        await wait_until(lambda: not agent._tool_tasks)

        assert slow.cancelled is True
        assert agent.status == AgentStatus.IDLE

    @pytest.mark.asyncio
    async def test_tool_can_delete_its_own_agent(self, counter_team):
        counter_team.register_tool(LeaveTool())
        service = counter_team.services.get("counter")
        results = []

        async def leaving_handler(agent, message, signal):
            results.append(await agent.execute_tool("leave"))

        counter_team.register_agent_config(counter_config(name="leaver", work_handler=leaving_handler))
        agent = await counter_team.create_agent("leaver")
        start = agent.bus.next_sequence

        await asyncio.wait_for(agent.handle_input("go"), timeout=1.0)

        assert agent.status == AgentStatus.EXITED
        assert agent.bus.closed
        assert counter_team.get_agent(agent.id) is None
        assert agent.id in service.detached
        assert types_since(agent, start)[-2:] == [EventType.STATE_IDLE, EventType.STATE_EXIT]
        # the deletion was deferred until the input completed
        assert results == [False]
