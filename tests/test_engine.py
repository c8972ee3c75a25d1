"""
Tests for the workflow engine core components.
"""

import pytest
import asyncio
from typing import Any, Dict, List, Optional, Tuple

from flowrunner.engine.conditions import evaluate
from flowrunner.engine.errors import (
    GraphDefinitionError,
    InferenceError,
    MissingStartNode,
    NodeNotFound,
    RunInProgress,
    TraversalLimitExceeded,
    UnknownNodeKind,
)
from flowrunner.engine.executor import _HANDLERS, Executor, execute_workflow, parse_model_output
from flowrunner.engine.graph import WorkflowGraph
from flowrunner.engine.node import DecisionRule, NodeKind, WorkflowNode
from flowrunner.engine.state import ExecutionRecord, ExecutionStatus, LogKind, OutputStore
from flowrunner.engine.variables import parse_template, resolve
from flowrunner.workflows.sentiment_triage import create_sentiment_triage_workflow


# ============================================================
# Helpers
# ============================================================

def node(node_id: str, kind: str, next_nodes: Optional[List[str]] = None, **fields) -> Dict[str, Any]:
    return {"id": node_id, "name": node_id, "nodeType": kind, "nextNodes": next_nodes or [], **fields}


def rule(rule_id: str, condition: str, target: Optional[str], label: Optional[str] = None) -> Dict[str, Any]:
    return {"id": rule_id, "condition": condition, "label": label or rule_id, "targetNodeId": target}


def sentiment_definition(model: Optional[str] = "test-model") -> Dict[str, Any]:
    """Start -> Agentic -> Decision {positive -> End_A, otherwise -> End_B}."""
    return {
        "nodes": [
            node("Start", "start", ["Agentic"]),
            node("Agentic", "agentic", ["Decision"], systemPrompt="Classify.", userPrompt="Text: {Start.input}"),
            node("Decision", "decision", decisions=[
                rule("pos", '{Agentic.sentiment} == "positive"', "End_A", "Positive"),
                rule("neg", '{Agentic.sentiment} == "negative"', "End_B", "Negative"),
            ]),
            node("End_A", "end"),
            node("End_B", "end"),
        ],
        "config": {"defaultModel": model},
    }


def kinds(record: ExecutionRecord) -> List[Tuple[str, str]]:
    return [(e.kind.value, e.node_id) for e in record.log]


def started_nodes(record: ExecutionRecord) -> List[str]:
    return [e.node_id for e in record.log if e.kind == LogKind.NODE_START]


def assert_in_order(record: ExecutionRecord, expected: List[Tuple[str, str]]):
    remaining = iter(kinds(record))
    for item in expected:
        assert item in remaining, f"{item} missing or out of order in {kinds(record)}"


# ============================================================
# Node Tests
# ============================================================

class TestWorkflowNode:
    """Tests for WorkflowNode and NodeKind."""

    def test_kind_parsing(self):
        """Kinds are parsed case-insensitively from strings."""
        assert NodeKind.parse("Decision") == NodeKind.DECISION
        assert NodeKind.parse(NodeKind.END) == NodeKind.END

    def test_unknown_kind(self):
        """Unknown kinds raise UnknownNodeKind."""
        with pytest.raises(UnknownNodeKind, match="loop"):
            WorkflowNode(id="N1", kind="loop")

    def test_label_defaults_to_id(self):
        n = WorkflowNode(id="N1", kind="memory")
        assert n.label == "N1"
        assert n.kind == NodeKind.MEMORY

    def test_empty_id(self):
        with pytest.raises(GraphDefinitionError):
            WorkflowNode(id="", kind="start")

    def test_has_prompts(self):
        assert not WorkflowNode(id="A", kind="agentic").has_prompts
        assert WorkflowNode(id="A", kind="agentic", user_prompt="hi").has_prompts


# ============================================================
# Graph Tests
# ============================================================

class TestWorkflowGraph:
    """Tests for WorkflowGraph."""

    def test_from_definition_edges(self):
        """nextNodes compile to normal edges, decisions to handle-keyed edges."""
        graph = WorkflowGraph.from_definition(sentiment_definition())

        assert list(graph.nodes) == ["Start", "Agentic", "Decision", "End_A", "End_B"]
        assert graph.default_model == "test-model"
        assert [e.target for e in graph.normal_edges("Start")] == ["Agentic"]

        routes = graph.decision_edges("Decision")
        assert set(routes) == {"pos", "neg"}
        assert routes["pos"].target == "End_A"
        assert routes["neg"].label == "Negative"
        assert graph.normal_edges("Decision") == []

    def test_next_node_ids_alias(self):
        graph = WorkflowGraph.from_definition({
            "nodes": [
                {"id": "S", "nodeType": "start", "nextNodeIds": ["E"]},
                {"id": "E", "nodeType": "end"},
            ]
        })
        assert [e.target for e in graph.normal_edges("S")] == ["E"]

    def test_missing_kind_defaults_to_agentic(self):
        graph = WorkflowGraph.from_definition({"nodes": [{"id": "A", "name": "Ask"}]})
        assert graph.get_node("A").kind == NodeKind.AGENTIC
        assert graph.get_node("A").label == "Ask"

    def test_unknown_references_dropped(self):
        """Edges to node ids that do not exist are not created."""
        graph = WorkflowGraph.from_definition({
            "nodes": [
                node("S", "start", ["GHOST"]),
                node("D", "decision", decisions=[rule("r1", '"a" == "a"', "GHOST")]),
            ]
        })
        assert graph.edges == []

    def test_duplicate_ids(self):
        with pytest.raises(GraphDefinitionError, match="already exists"):
            WorkflowGraph.from_definition({"nodes": [node("A", "start"), node("A", "end")]})

    def test_unknown_kind(self):
        with pytest.raises(UnknownNodeKind):
            WorkflowGraph.from_definition({"nodes": [node("A", "teleport")]})

    def test_get_node_not_found(self):
        graph = WorkflowGraph()
        with pytest.raises(NodeNotFound):
            graph.get_node("missing")

    def test_decision_edges_matched_by_handle(self):
        """Two rules pointing at the same target stay distinct."""
        graph = WorkflowGraph()
        graph.add_node(WorkflowNode(id="D", kind="decision"))
        graph.add_node(WorkflowNode(id="E", kind="end"))
        graph.add_edge("D", "E", label="yes", source_handle="r1")
        graph.add_edge("D", "E", label="also yes", source_handle="r2")

        routes = graph.decision_edges("D")
        assert routes["r1"].label == "yes"
        assert routes["r2"].label == "also yes"

    def test_validation(self):
        """Validation reports missing and duplicate start nodes and orphans."""
        assert "Graph must have at least one node" in WorkflowGraph().validate()

        no_start = WorkflowGraph.from_definition({"nodes": [node("A", "end")]})
        assert any("no start node" in p for p in no_start.validate())

        two_starts = WorkflowGraph.from_definition({
            "nodes": [node("S1", "start", ["E"]), node("S2", "start"), node("E", "end")]
        })
        problems = two_starts.validate()
        assert any("2 start nodes" in p for p in problems)
        assert any("S2" in p and "Orphan" in p for p in problems)

        assert WorkflowGraph.from_definition(sentiment_definition()).validate() == []

    def test_mermaid_generation(self):
        mermaid = WorkflowGraph.from_definition(sentiment_definition()).to_mermaid()

        assert mermaid.startswith("graph TD")
        assert "Start --> Agentic" in mermaid
        assert "Decision -->|Positive| End_A" in mermaid
        assert 'Decision{"Decision"}' in mermaid


# ============================================================
# Variable Resolver Tests
# ============================================================

class TestVariableResolver:
    """Tests for {node.path} resolution."""

    def test_string_value_is_quoted(self):
        result = resolve("{A.x}", {"A": {"x": "v"}})
        assert result.text == '"v"'
        assert result.unresolved == []

    def test_unexecuted_node_left_verbatim(self):
        result = resolve("Value: {B.x}", {"A": {"x": "v"}})
        assert result.text == "Value: {B.x}"
        assert result.unresolved == ["{B.x}"]

    def test_missing_field_left_verbatim(self):
        result = resolve("{A.y}", {"A": {"x": "v"}})
        assert result.text == "{A.y}"
        assert result.unresolved == ["{A.y}"]

    def test_nested_path(self):
        outputs = {"A": {"user": {"profile": {"name": "Ada"}}}}
        assert resolve("Hi {A.user.profile.name}!", outputs).text == 'Hi "Ada"!'

    def test_list_index(self):
        outputs = {"A": {"items": [{"name": "first"}, {"name": "second"}]}}
        assert resolve("{A.items.1.name}", outputs).text == '"second"'
        assert resolve("{A.items.5.name}", outputs).unresolved == ["{A.items.5.name}"]

    def test_non_string_values(self):
        outputs = {"A": {"count": 3, "ok": True, "none": None, "data": {"k": 1}}}
        assert resolve("{A.count}", outputs).text == "3"
        assert resolve("{A.ok}", outputs).text == "true"
        assert resolve("{A.none}", outputs).text == "null"
        assert resolve("{A.data}", outputs).text == '{"k": 1}'

    def test_reference_without_path_left_verbatim(self):
        result = resolve("{A}", {"A": {"x": "v"}})
        assert result.text == "{A}"
        assert result.unresolved == ["{A}"]

    def test_json_braces_are_text(self):
        """Braces that do not match the reference grammar are untouched."""
        template = 'Answer as {"sentiment": "positive"} using {A.x}'
        result = resolve(template, {"A": {"x": "v"}})
        assert result.text == 'Answer as {"sentiment": "positive"} using "v"'
        assert result.unresolved == []

    def test_does_not_mutate_outputs(self):
        outputs = {"A": {"x": "v"}}
        resolve("{A.x} {A.y}", outputs)
        assert outputs == {"A": {"x": "v"}}

    def test_template_parsed_once(self):
        template = parse_template("a {B.c} d")
        assert parse_template("a {B.c} d") is template
        assert [r.node_id for r in template.references] == ["B"]
        assert template.references[0].path == ("c",)

    def test_empty_template(self):
        assert resolve("", {}).text == ""

    def test_accented_identifiers(self):
        """Node ids and fields may use non-ASCII letters."""
        outputs = {"NÓ_1": {"sentimento": "positivo"}, "A": {}}

        assert resolve("{NÓ_1.sentimento}", outputs).text == '"positivo"'

        missing = resolve("{A.ausência}", outputs)
        assert missing.text == "{A.ausência}"
        assert missing.unresolved == ["{A.ausência}"]

    def test_float_rendering(self):
        outputs = {"A": {"whole": 1.0, "part": 2.5}}
        assert resolve("{A.whole}", outputs).text == "1"
        assert resolve("{A.part}", outputs).text == "2.5"


# ============================================================
# Condition Evaluator Tests
# ============================================================

class TestConditionEvaluator:
    """Tests for the restricted equality grammar."""

    def test_quoted_equal(self):
        assert evaluate('"a" == "a"', {}).value is True

    def test_quoted_not_equal(self):
        assert evaluate('"a" == "b"', {}).value is False

    def test_resolved_variable(self):
        result = evaluate('{A.x} == "y"', {"A": {"x": "y"}})
        assert result.value is True
        assert result.resolved == '"y" == "y"'

    def test_bare_left_operand(self):
        assert evaluate('yes == "yes"', {}).value is True
        assert evaluate('{A.count} == "3"', {"A": {"count": 3}}).value is True

    def test_unsupported_condition(self):
        result = evaluate('{A.x} > "y"', {"A": {"x": "y"}})
        assert result.value is False
        assert result.supported is False

    def test_unresolved_variable_is_false(self):
        result = evaluate('{A.x} == "y"', {})
        assert result.value is False
        assert result.unresolved == ["{A.x}"]

    def test_integral_float_matches_integer_literal(self):
        assert evaluate('{A.score} == "1"', {"A": {"score": 1.0}}).value is True
        assert evaluate('{A.score} == "1"', {"A": {"score": 1.5}}).value is False


# ============================================================
# State Tests
# ============================================================

class TestRunState:
    """Tests for ExecutionRecord and OutputStore."""

    def test_record_defaults(self):
        record = ExecutionRecord(user_input="hi")
        assert record.status == ExecutionStatus.RUNNING
        assert record.id.startswith("exec_")
        assert record.end_time is None

    def test_finish(self):
        record = ExecutionRecord()
        record.finish(ExecutionStatus.ERROR, error="boom")
        assert not record.is_running
        assert record.end_time is not None
        assert record.to_dict()["status"] == "error"

    def test_snapshot_is_independent(self):
        record = ExecutionRecord()
        copy = record.snapshot()
        record.finish(ExecutionStatus.COMPLETED)
        assert copy.status == ExecutionStatus.RUNNING

    def test_output_store(self):
        store = OutputStore()
        store.store("A", {"x": 1})
        store.store("A", {"x": 2})

        assert store["A"] == {"x": 2}
        assert len(store) == 1

        snapshot = store.snapshot()
        snapshot["A"]["x"] = 99
        assert store["A"]["x"] == 2


class TestParseModelOutput:
    def test_json(self):
        assert parse_model_output('{"sentiment": "positive"}') == {"sentiment": "positive"}

    def test_code_fence(self):
        assert parse_model_output('```json\n{"a": 1}\n```') == {"a": 1}

    def test_raw_fallback(self):
        assert parse_model_output("Hello there") == {"response": "Hello there", "raw": True}


# ============================================================
# Executor Tests
# ============================================================

class TestExecutor:
    """Tests for the Executor."""

    @pytest.mark.asyncio
    async def test_end_to_end_sentiment(self, make_client):
        """Positive sentiment reaches End_A and the log has the expected order."""
        client = make_client(['{"sentiment": "positive"}'])
        executor = Executor(client)

        record = await executor.start(sentiment_definition(), "hello")

        assert record.status == ExecutionStatus.COMPLETED
        assert record.end_time is not None
        assert record.user_input == "hello"
        assert_in_order(record, [
            ("user_input", "USER"),
            ("info", "SYSTEM"),
            ("node_start", "Start"),
            ("node_complete", "Start"),
            ("node_start", "Agentic"),
            ("node_complete", "Agentic"),
            ("node_start", "Decision"),
            ("success", "Decision"),
            ("node_start", "End_A"),
            ("node_complete", "End_A"),
            ("success", "SYSTEM"),
        ])
        assert kinds(record)[0] == ("user_input", "USER")
        assert kinds(record)[-1] == ("success", "SYSTEM")
        assert "End_B" not in started_nodes(record)

        outputs = executor.outputs
        assert outputs["Start"]["input"] == "hello"
        assert outputs["Agentic"] == {"sentiment": "positive"}
        assert outputs["Decision"]["decision"] == "Positive"
        assert outputs["Decision"]["targetNode"] == "End_A"
        assert outputs["End_A"]["finalNode"] is True

        assert client.preloaded == ["test-model"]
        model, system_prompt, user_prompt, output_format = client.calls[0]
        assert model == "test-model"
        assert system_prompt == "Classify."
        assert user_prompt == 'Text: "hello"'
        assert output_format is None

    @pytest.mark.asyncio
    async def test_dfs_order(self, fake_client):
        """Every reachable node runs once, depth-first in declared edge order."""
        definition = {
            "nodes": [
                node("S", "start", ["A", "B"]),
                node("A", "memory", ["C"], context="a"),
                node("B", "memory", ["D"], context="b"),
                node("C", "memory", context="c"),
                node("D", "end"),
            ]
        }
        executor = Executor(fake_client)
        record = await executor.start(definition)

        assert record.status == ExecutionStatus.COMPLETED
        assert started_nodes(record) == ["S", "A", "C", "B", "D"]
        assert set(executor.outputs) == {"S", "A", "B", "C", "D"}
        assert executor.outputs["S"]["status"] == "started"
        assert fake_client.calls == []

    @pytest.mark.asyncio
    async def test_second_matching_rule(self, fake_client):
        """Only the first true rule is taken; false rules are still logged."""
        definition = {
            "nodes": [
                node("S", "start", ["D"]),
                node("D", "decision", decisions=[
                    rule("r1", '"a" == "b"', "E1"),
                    rule("r2", '"a" == "a"', "E2"),
                    rule("r3", '"x" == "x"', "E3"),
                ]),
                node("E1", "end"),
                node("E2", "end"),
                node("E3", "end"),
            ]
        }
        executor = Executor(fake_client)
        record = await executor.start(definition)

        messages = [e.message for e in record.log if e.node_id == "D"]
        assert any('"a" == "b"' in m for m in messages)
        assert not any('"x" == "x"' in m for m in messages)
        assert started_nodes(record) == ["S", "D", "E2"]
        assert executor.outputs["D"]["targetNode"] == "E2"

    @pytest.mark.asyncio
    async def test_decision_without_edge(self, fake_client):
        """A matched rule with no connected node ends the path without error."""
        graph = WorkflowGraph()
        graph.add_node(WorkflowNode(id="S", kind="start"))
        graph.add_node(WorkflowNode(
            id="D", kind="decision",
            decisions=(DecisionRule(id="r1", condition='"a" == "a"', label="Always"),),
        ))
        graph.add_edge("S", "D")

        executor = Executor(fake_client)
        record = await executor.start(graph)

        assert record.status == ExecutionStatus.COMPLETED
        assert executor.outputs["D"] == {
            "decision": "Always",
            "targetNode": None,
            "timestamp": executor.outputs["D"]["timestamp"],
        }
        assert any("no connected node" in e.message for e in record.log)

    @pytest.mark.asyncio
    async def test_no_decision_matches(self, fake_client):
        definition = {
            "nodes": [
                node("S", "start", ["D"]),
                node("D", "decision", decisions=[rule("r1", '"a" == "b"', "E")]),
                node("E", "end"),
            ]
        }
        executor = Executor(fake_client)
        record = await executor.start(definition)

        assert record.status == ExecutionStatus.COMPLETED
        assert executor.outputs["D"]["status"] == "no_decision"
        assert ("warning", "D") in kinds(record)
        assert "E" not in started_nodes(record)

    @pytest.mark.asyncio
    async def test_decision_without_rules(self, fake_client):
        definition = {"nodes": [node("S", "start", ["D"]), node("D", "decision")]}
        executor = Executor(fake_client)
        await executor.start(definition)
        assert executor.outputs["D"]["status"] == "no_decisions"

    @pytest.mark.asyncio
    async def test_unsupported_condition_logged(self, fake_client):
        """An unparseable condition is logged as an error and treated as false."""
        definition = {
            "nodes": [
                node("S", "start", ["D"]),
                node("D", "decision", decisions=[
                    rule("r1", "{S.input} contains hello", "E1"),
                    rule("r2", '{S.input} == "hello"', "E2"),
                ]),
                node("E1", "end"),
                node("E2", "end"),
            ]
        }
        executor = Executor(fake_client)
        record = await executor.start(definition, "hello")

        assert record.status == ExecutionStatus.COMPLETED
        errors = [e for e in record.log if e.kind == LogKind.ERROR]
        assert len(errors) == 1
        assert "Unsupported condition" in errors[0].message
        assert started_nodes(record) == ["S", "D", "E2"]

    @pytest.mark.asyncio
    async def test_unresolved_variable_logged(self, make_client):
        client = make_client(["plain text answer"])
        definition = {
            "nodes": [
                node("S", "start", ["A"]),
                node("A", "agentic", userPrompt="Use {MISSING.value}"),
            ],
            "config": {"defaultModel": "m"},
        }
        executor = Executor(client)
        record = await executor.start(definition)

        assert record.status == ExecutionStatus.COMPLETED
        assert client.calls[0][2] == "Use {MISSING.value}"
        assert any("{MISSING.value}" in e.message and e.kind == LogKind.INFO for e in record.log)
        assert executor.outputs["A"] == {"response": "plain text answer", "raw": True}

    @pytest.mark.asyncio
    async def test_agentic_without_prompts_skipped(self, fake_client):
        definition = {"nodes": [node("S", "start", ["A"]), node("A", "agentic")]}
        executor = Executor(fake_client, default_model="m")
        await executor.start(definition)

        assert executor.outputs["A"] == {"status": "skipped", "reason": "no_prompts"}
        assert fake_client.calls == []

    @pytest.mark.asyncio
    async def test_output_format_passed(self, fake_client):
        definition = {
            "nodes": [
                node("S", "start", ["A"]),
                node("A", "agentic", systemPrompt="sys", outputFormat='{"x": "..."}'),
            ]
        }
        executor = Executor(fake_client, default_model="m")
        await executor.start(definition)
        assert fake_client.calls == [("m", "sys", "", '{"x": "..."}')]

    @pytest.mark.asyncio
    async def test_memory_node(self, make_client):
        client = make_client(['{"topic": "billing"}'])
        definition = {
            "nodes": [
                node("S", "start", ["A"]),
                node("A", "agentic", ["M"], userPrompt="{S.input}"),
                node("M", "memory", context="Topic was {A.topic}"),
            ]
        }
        executor = Executor(client, default_model="m")
        record = await executor.start(definition, "my invoice")

        assert executor.outputs["M"]["context"] == 'Topic was "billing"'
        assert executor.outputs["M"]["stored"] is True
        assert ("database", "M") in kinds(record)

    @pytest.mark.asyncio
    async def test_missing_start_node(self, fake_client):
        executor = Executor(fake_client)
        with pytest.raises(MissingStartNode):
            await executor.start({"nodes": [node("E", "end")]})

        record = executor.current_execution
        assert record.status == ExecutionStatus.ERROR
        assert record.end_time is not None
        assert record.log[-1].kind == LogKind.ERROR
        assert "No start node" in record.error

    @pytest.mark.asyncio
    async def test_multiple_start_nodes(self, fake_client):
        """The first start node runs and a warning is logged."""
        definition = {
            "nodes": [node("S1", "start", ["E"]), node("S2", "start", ["E"]), node("E", "end")]
        }
        executor = Executor(fake_client)
        record = await executor.start(definition)

        assert record.status == ExecutionStatus.COMPLETED
        assert started_nodes(record) == ["S1", "E"]
        assert ("warning", "SYSTEM") in kinds(record)

    @pytest.mark.asyncio
    async def test_unknown_kind_fails_run(self, fake_client):
        executor = Executor(fake_client)
        with pytest.raises(UnknownNodeKind):
            await executor.start({"nodes": [node("S", "start"), node("X", "portal")]})
        assert executor.current_execution.status == ExecutionStatus.ERROR

    @pytest.mark.asyncio
    async def test_preload_failure(self, make_client):
        client = make_client(fail_preload=True)
        executor = Executor(client)

        with pytest.raises(InferenceError):
            await executor.start(sentiment_definition(), "hello")

        record = executor.current_execution
        assert record.status == ExecutionStatus.ERROR
        assert ("error", "OLLAMA") in kinds(record)
        assert started_nodes(record) == []
        assert client.calls == []

    @pytest.mark.asyncio
    async def test_generate_failure(self, make_client):
        client = make_client(fail_generate=True)
        executor = Executor(client)

        with pytest.raises(InferenceError):
            await executor.start(sentiment_definition(), "hello")

        record = executor.current_execution
        assert record.status == ExecutionStatus.ERROR
        assert ("error", "Agentic") in kinds(record)
        assert started_nodes(record) == ["Start", "Agentic"]
        assert "Agentic" not in executor.outputs

    @pytest.mark.asyncio
    async def test_no_model_configured(self, fake_client):
        executor = Executor(fake_client, default_model="")
        with pytest.raises(InferenceError, match="No generation model"):
            await executor.start(sentiment_definition(model=None), "hello")

    @pytest.mark.asyncio
    async def test_missing_edge_target(self, fake_client):
        graph = WorkflowGraph()
        graph.add_node(WorkflowNode(id="S", kind="start"))
        graph.add_edge("S", "GONE")

        executor = Executor(fake_client)
        with pytest.raises(NodeNotFound):
            await executor.start(graph)
        assert executor.current_execution.status == ExecutionStatus.ERROR

    @pytest.mark.asyncio
    async def test_cycle_guard(self, fake_client):
        definition = {
            "nodes": [
                node("S", "start", ["A"]),
                node("A", "memory", ["B"], context="a"),
                node("B", "memory", ["A"], context="b"),
            ]
        }
        executor = Executor(fake_client, max_node_visits=10)

        with pytest.raises(TraversalLimitExceeded):
            await executor.start(definition)

        record = executor.current_execution
        assert record.status == ExecutionStatus.ERROR
        assert len(started_nodes(record)) == 10

    @pytest.mark.asyncio
    async def test_stop_during_generation(self, make_client):
        """Stopping while a node awaits the model halts before the next node."""
        executor: Optional[Executor] = None

        async def stop_now():
            executor.stop()

        client = make_client(['{"sentiment": "positive"}'], on_generate=stop_now)
        executor = Executor(client)
        record = await executor.start(sentiment_definition(), "hello")

        assert record.status == ExecutionStatus.STOPPED
        assert record.end_time is not None

        stop_index = next(
            i for i, e in enumerate(record.log) if e.message == "Execution stopped by user"
        )
        assert all(e.kind != LogKind.NODE_START for e in record.log[stop_index:])
        assert started_nodes(record) == ["Start", "Agentic"]
        assert not any(e.kind == LogKind.SUCCESS and e.node_id == "SYSTEM" for e in record.log)

    @pytest.mark.asyncio
    async def test_stop_when_idle(self, fake_client):
        executor = Executor(fake_client)
        executor.stop()
        assert executor.current_execution is None

        record = await executor.start({"nodes": [node("S", "start")]})
        executor.stop()
        assert executor.current_execution.status == ExecutionStatus.COMPLETED
        assert len(executor.current_execution.log) == len(record.log)

    @pytest.mark.asyncio
    async def test_run_in_progress(self, make_client):
        release = asyncio.Event()
        started = asyncio.Event()

        async def wait_for_release():
            started.set()
            await release.wait()

        client = make_client(['{"sentiment": "negative"}'], on_generate=wait_for_release)
        executor = Executor(client)
        task = asyncio.create_task(executor.start(sentiment_definition(), "meh"))
        await started.wait()

        assert executor.is_running
        with pytest.raises(RunInProgress):
            await executor.start(sentiment_definition(), "again")

        release.set()
        record = await task
        assert record.status == ExecutionStatus.COMPLETED
        assert "End_B" in started_nodes(record)

    @pytest.mark.asyncio
    async def test_cancelled_run_is_stopped(self, make_client):
        """Cancelling the task running a workflow leaves the executor reusable."""
        started = asyncio.Event()

        async def hang():
            started.set()
            await asyncio.Event().wait()

        client = make_client(['{"sentiment": "positive"}'], on_generate=hang)
        executor = Executor(client)
        task = asyncio.create_task(executor.start(sentiment_definition(), "hello"))
        await started.wait()

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        record = executor.current_execution
        assert record.status == ExecutionStatus.STOPPED
        assert record.end_time is not None
        assert record.log[-1].kind == LogKind.WARNING
        assert record.log[-1].message == "Execution cancelled"
        assert not executor.is_running

        client.on_generate = None
        second = await executor.start(sentiment_definition(), "hello again")
        assert second.status == ExecutionStatus.COMPLETED
        assert second.id != record.id

    def test_every_kind_has_a_handler(self):
        assert set(_HANDLERS) == set(NodeKind)

    @pytest.mark.asyncio
    async def test_new_run_replaces_record(self, fake_client):
        executor = Executor(fake_client)
        first = await executor.start({"nodes": [node("S", "start")]}, "one")
        second = await executor.start({"nodes": [node("S", "start")]}, "two")

        assert first.id != second.id
        assert executor.current_execution.id == second.id
        assert executor.outputs["S"]["input"] == "two"

    @pytest.mark.asyncio
    async def test_log_callback(self, make_client):
        """The callback sees every entry, in order, while the run progresses."""
        seen = []
        client = make_client(['{"sentiment": "positive"}'])
        executor = Executor(client, on_log=seen.append)
        record = await executor.start(sentiment_definition(), "hello")

        assert [e.message for e in seen] == [e.message for e in record.log]

    @pytest.mark.asyncio
    async def test_failing_log_callback_does_not_break_run(self, fake_client):
        def broken(entry):
            raise RuntimeError("observer crashed")

        executor = Executor(fake_client, on_log=broken)
        record = await executor.start({"nodes": [node("S", "start", ["E"]), node("E", "end")]})
        assert record.status == ExecutionStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_snapshots_are_read_only_copies(self, fake_client):
        executor = Executor(fake_client)
        await executor.start({"nodes": [node("S", "start")]}, "hi")

        executor.outputs["S"]["input"] = "tampered"
        executor.current_execution.log.clear()

        assert executor.outputs["S"]["input"] == "hi"
        assert len(executor.current_execution.log) > 0


# ============================================================
# Integration Tests
# ============================================================

class TestSentimentTriageWorkflow:
    """Integration tests for the demo workflow."""

    @pytest.mark.asyncio
    async def test_negative_path(self, make_client):
        client = make_client(['{"sentiment": "negative", "reason": "slow"}'])
        graph = create_sentiment_triage_workflow("llama3.2")

        record = await execute_workflow(graph, client, "It keeps crashing")

        assert record.status == ExecutionStatus.COMPLETED
        assert started_nodes(record) == ["START", "CLASSIFY", "ROUTE", "NOTE", "ESCALATE"]
        note = [e for e in record.log if e.node_id == "NOTE" and e.kind == LogKind.NODE_COMPLETE][0]
        assert note.output["context"] == 'Complaint: "It keeps crashing" (reason: "slow")'

    @pytest.mark.asyncio
    async def test_positive_path(self, make_client):
        client = make_client(['```json\n{"sentiment": "positive", "reason": "fast"}\n```'])
        record = await execute_workflow(create_sentiment_triage_workflow("llama3.2"), client, "Great!")

        assert started_nodes(record) == ["START", "CLASSIFY", "ROUTE", "THANK_YOU"]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
