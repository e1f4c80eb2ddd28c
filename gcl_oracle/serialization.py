# gcl_oracle/serialization.py
"""
JSON marshalling at the process boundary.

Input documents
───────────────
    security     {"lattice": [["A", "B"], ...], "classification": {"x": "A"}}
    sign         {"determinism": "Deterministic",
                  "assignment": {"variables": {"x": "Positive"},
                                 "arrays": {"A": ["Zero", "Negative"]}}}
    interpreter  {"determinism": "Deterministic",
                  "assignment": {"variables": {"x": 3}, "arrays": {"A": [1, 2]}},
                  "trace_count": 20}

Determinism and signs are accepted either as bare strings or wrapped as
``{"Case": "..."}``.  Sign analysis output is keyed by node name
(``q▷``, ``q1``, ..., ``q◀``).

Programs are exchanged as AST JSON (parsing surface syntax is not part of
the package).  Every node is an object with a ``"type"`` tag; integers,
identifiers and booleans may be written as bare JSON literals, and a JSON
list of statements is read as their sequential composition::

    [{"type": "Assign", "var": "x", "expr": 1},
     {"type": "If", "guards": [
         {"guard": {"type": "Rel", "op": ">", "left": "x", "right": 0},
          "body": {"type": "Assign", "var": "y", "expr": 1}}]}]
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

from gcl_oracle.ast_nodes import (
    AExpr,
    ArithOp,
    ArrayAssign,
    ArrayRef,
    Assign,
    BExpr,
    BinOp,
    BoolLit,
    Do,
    GuardedCommand,
    If,
    Logic,
    LogicOp,
    Neg,
    Node,
    Not,
    Num,
    Rel,
    RelOp,
    Seq,
    Skip,
    Statement,
    Var,
    seq,
)
from gcl_oracle.concurrency import ParallelConfiguration, ParallelProgramGraph
from gcl_oracle.errors import GclError, MarshalError
from gcl_oracle.interpreter import ExecutionResult, ExplorationResult, Memory
from gcl_oracle.model_checking import CheckedModel
from gcl_oracle.program_graph import (
    Action,
    ArrayAssignAction,
    AssignAction,
    BoolCheck,
    Determinism,
    Edge,
    ProgramGraph,
    SkipAction,
)
from gcl_oracle.security_analysis import (
    SecurityAnalysisInput,
    SecurityAnalysisResult,
    SecurityLattice,
)
from gcl_oracle.sign_analysis import (
    Sign,
    SignAnalysisInput,
    SignAnalysisResult,
    SignAssignment,
    sorted_signs,
)
from gcl_oracle.trace_equivalence import EquivalenceResult, TraceValidation

logger = logging.getLogger(__name__)

JSON = Any


# ═══════════════════════════════════════════════════════════════════════════
# HELPERS
# ═══════════════════════════════════════════════════════════════════════════

def load_json(text: str, what: str = "input") -> JSON:
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise MarshalError(f"{what} is not valid JSON: {exc}") from exc


def dump_json(doc: JSON) -> str:
    return json.dumps(doc, indent=2, ensure_ascii=False)


def _require(doc: Mapping, key: str, what: str) -> JSON:
    if not isinstance(doc, Mapping) or key not in doc:
        raise MarshalError(f"{what}: missing '{key}'")
    return doc[key]


def _case(value: JSON) -> JSON:
    """Unwrap ``{"Case": x}`` to ``x``."""
    if isinstance(value, Mapping) and "Case" in value:
        return value["Case"]
    return value


def _enum(cls: Callable, value: JSON, what: str):
    try:
        return cls(_case(value))
    except ValueError:
        raise MarshalError(f"{what}: unknown value {value!r}") from None


def determinism_from_json(value: JSON) -> Determinism:
    try:
        return Determinism.parse(_case(value))
    except ValueError:
        raise MarshalError(f"unknown determinism {value!r}") from None


def _determinism_field(doc: Mapping) -> Determinism:
    for key in ("determinism", "deterministic"):
        if isinstance(doc, Mapping) and key in doc:
            return determinism_from_json(doc[key])
    return Determinism.DETERMINISTIC


# ═══════════════════════════════════════════════════════════════════════════
# AST
# ═══════════════════════════════════════════════════════════════════════════

def _arith_from_json(doc: JSON) -> AExpr:
    if isinstance(doc, bool):
        raise MarshalError(f"expected an arithmetic expression, got {doc!r}")
    if isinstance(doc, int):
        return Num(doc)
    if isinstance(doc, str):
        return Var(doc)
    kind = _require(doc, "type", "arithmetic expression")
    if kind == "Num":
        return Num(int(_require(doc, "value", "Num")))
    if kind == "Var":
        return Var(str(_require(doc, "name", "Var")))
    if kind == "ArrayRef":
        return ArrayRef(
            str(_require(doc, "array", "ArrayRef")),
            _arith_from_json(_require(doc, "index", "ArrayRef")),
        )
    if kind == "Neg":
        return Neg(_arith_from_json(_require(doc, "expr", "Neg")))
    if kind == "BinOp":
        return BinOp(
            _enum(ArithOp, _require(doc, "op", "BinOp"), "BinOp"),
            _arith_from_json(_require(doc, "left", "BinOp")),
            _arith_from_json(_require(doc, "right", "BinOp")),
        )
    raise MarshalError(f"unknown arithmetic expression type {kind!r}")


def _bool_from_json(doc: JSON) -> BExpr:
    if isinstance(doc, bool):
        return BoolLit(doc)
    kind = _require(doc, "type", "boolean expression")
    if kind == "Bool":
        return BoolLit(bool(_require(doc, "value", "Bool")))
    if kind == "Rel":
        return Rel(
            _enum(RelOp, _require(doc, "op", "Rel"), "Rel"),
            _arith_from_json(_require(doc, "left", "Rel")),
            _arith_from_json(_require(doc, "right", "Rel")),
        )
    if kind == "Not":
        return Not(_bool_from_json(_require(doc, "expr", "Not")))
    if kind == "Logic":
        return Logic(
            _enum(LogicOp, _require(doc, "op", "Logic"), "Logic"),
            _bool_from_json(_require(doc, "left", "Logic")),
            _bool_from_json(_require(doc, "right", "Logic")),
        )
    raise MarshalError(f"unknown boolean expression type {kind!r}")


def _guards_from_json(doc: JSON, what: str) -> Tuple[GuardedCommand, ...]:
    guards = _require(doc, "guards", what)
    if not isinstance(guards, list):
        raise MarshalError(f"{what}: 'guards' must be a list")
    return tuple(
        GuardedCommand(
            _bool_from_json(_require(g, "guard", what)),
            ast_from_json(_require(g, "body", what)),
        )
        for g in guards
    )


def ast_from_json(doc: JSON) -> Statement:
    """Decode a statement from its JSON form."""
    if isinstance(doc, list):
        return seq(*(ast_from_json(item) for item in doc))
    kind = _require(doc, "type", "statement")
    if kind == "Skip":
        return Skip()
    if kind == "Assign":
        return Assign(
            str(_require(doc, "var", "Assign")),
            _arith_from_json(_require(doc, "expr", "Assign")),
        )
    if kind == "ArrayAssign":
        return ArrayAssign(
            str(_require(doc, "array", "ArrayAssign")),
            _arith_from_json(_require(doc, "index", "ArrayAssign")),
            _arith_from_json(_require(doc, "value", "ArrayAssign")),
        )
    if kind == "Seq":
        return Seq(
            ast_from_json(_require(doc, "first", "Seq")),
            ast_from_json(_require(doc, "second", "Seq")),
        )
    if kind == "If":
        return If(_guards_from_json(doc, "If"))
    if kind == "Do":
        return Do(_guards_from_json(doc, "Do"))
    raise MarshalError(f"unknown statement type {kind!r}")


def ast_to_json(node: Node) -> JSON:
    """Encode any AST node in the tagged form read by :func:`ast_from_json`."""
    if isinstance(node, Num):
        return {"type": "Num", "value": node.value}
    if isinstance(node, Var):
        return {"type": "Var", "name": node.name}
    if isinstance(node, ArrayRef):
        return {"type": "ArrayRef", "array": node.array, "index": ast_to_json(node.index)}
    if isinstance(node, Neg):
        return {"type": "Neg", "expr": ast_to_json(node.expr)}
    if isinstance(node, (BinOp, Rel, Logic)):
        return {
            "type": type(node).__name__,
            "op": node.op.value,
            "left": ast_to_json(node.left),
            "right": ast_to_json(node.right),
        }
    if isinstance(node, BoolLit):
        return {"type": "Bool", "value": node.value}
    if isinstance(node, Not):
        return {"type": "Not", "expr": ast_to_json(node.expr)}
    if isinstance(node, Skip):
        return {"type": "Skip"}
    if isinstance(node, Assign):
        return {"type": "Assign", "var": node.var, "expr": ast_to_json(node.expr)}
    if isinstance(node, ArrayAssign):
        return {
            "type": "ArrayAssign",
            "array": node.array,
            "index": ast_to_json(node.index),
            "value": ast_to_json(node.value),
        }
    if isinstance(node, Seq):
        return {"type": "Seq", "first": ast_to_json(node.first), "second": ast_to_json(node.second)}
    if isinstance(node, (If, Do)):
        return {
            "type": type(node).__name__,
            "guards": [
                {"guard": ast_to_json(gc.guard), "body": ast_to_json(gc.body)}
                for gc in node.guards
            ],
        }
    raise MarshalError(f"cannot encode {type(node).__name__}")


# ═══════════════════════════════════════════════════════════════════════════
# PROGRAM GRAPHS
# ═══════════════════════════════════════════════════════════════════════════

def action_to_json(action: Action) -> JSON:
    if isinstance(action, AssignAction):
        return {"type": "Assign", "var": action.var, "expr": ast_to_json(action.expr)}
    if isinstance(action, ArrayAssignAction):
        return {
            "type": "ArrayAssign",
            "array": action.array,
            "index": ast_to_json(action.index),
            "value": ast_to_json(action.value),
        }
    if isinstance(action, BoolCheck):
        return {"type": "BoolCheck", "guard": ast_to_json(action.guard)}
    return {"type": "Skip"}


def action_from_json(doc: JSON) -> Action:
    kind = _require(doc, "type", "action")
    if kind == "Assign":
        return AssignAction(
            str(_require(doc, "var", "Assign")),
            _arith_from_json(_require(doc, "expr", "Assign")),
        )
    if kind == "ArrayAssign":
        return ArrayAssignAction(
            str(_require(doc, "array", "ArrayAssign")),
            _arith_from_json(_require(doc, "index", "ArrayAssign")),
            _arith_from_json(_require(doc, "value", "ArrayAssign")),
        )
    if kind == "BoolCheck":
        return BoolCheck(_bool_from_json(_require(doc, "guard", "BoolCheck")))
    if kind == "Skip":
        return SkipAction()
    raise MarshalError(f"unknown action type {kind!r}")


def graph_to_json(pg: ProgramGraph) -> JSON:
    return {
        "start": pg.start,
        "end": pg.end,
        "determinism": pg.determinism.value if pg.determinism else None,
        "nodes": pg.nodes,
        "edges": [
            {
                "source": e.source,
                "target": e.target,
                "action": action_to_json(e.action),
                "label": str(e.action),
            }
            for e in pg.edges
        ],
    }


def graph_from_json(doc: JSON) -> ProgramGraph:
    """Decode a graph; node ids may be integers or arbitrary strings.

    String ids are numbered densely in order of first appearance, so a
    graph handed over by an external producer can use its own names.
    A graph uses one kind of id throughout; a missing start or end
    defaults to the names ``q▷`` and ``q◀``.
    """
    edges_doc = _require(doc, "edges", "graph")
    if not isinstance(edges_doc, list):
        raise MarshalError("graph: 'edges' must be a list")
    start_raw = doc.get("start", "q▷")
    end_raw = doc.get("end", "q◀")
    raw_ids: List[JSON] = [start_raw, end_raw]
    for e in edges_doc:
        raw_ids.append(_require(e, "source", "edge"))
        raw_ids.append(_require(e, "target", "edge"))
    for raw in raw_ids:
        if isinstance(raw, bool) or not isinstance(raw, (int, str)):
            raise MarshalError(f"graph: invalid node id {raw!r}")
    kinds = {isinstance(raw, str) for raw in raw_ids}
    if len(kinds) > 1:
        raise MarshalError("graph: node ids mix integers and strings")
    by_name = kinds == {True}
    ids: Dict[Union[int, str], int] = {}

    def node_id(raw: Union[int, str]) -> int:
        if not by_name:
            return raw
        # string ids: start and end are registered first
        if raw not in ids:
            ids[raw] = len(ids)
        return ids[raw]

    start = node_id(start_raw)
    end = node_id(end_raw)
    edges = [
        Edge(
            node_id(_require(e, "source", "edge")),
            action_from_json(_require(e, "action", "edge")),
            node_id(_require(e, "target", "edge")),
        )
        for e in edges_doc
    ]
    determinism = doc.get("determinism")
    return ProgramGraph(
        start,
        end,
        edges,
        determinism=determinism_from_json(determinism) if determinism else None,
    )


# ═══════════════════════════════════════════════════════════════════════════
# MEMORY
# ═══════════════════════════════════════════════════════════════════════════

def memory_from_json(doc: JSON) -> Memory:
    if not isinstance(doc, Mapping):
        raise MarshalError("memory must be an object")
    variables = doc.get("variables", {})
    arrays = doc.get("arrays", {})
    try:
        return Memory(
            {str(k): int(v) for k, v in variables.items()},
            {str(k): [int(x) for x in v] for k, v in arrays.items()},
        )
    except (TypeError, ValueError, AttributeError) as exc:
        raise MarshalError(f"malformed memory: {exc}") from exc


def memory_to_json(memory: Memory) -> JSON:
    return memory.to_dict()


# ═══════════════════════════════════════════════════════════════════════════
# SECURITY
# ═══════════════════════════════════════════════════════════════════════════

def security_input_from_json(doc: JSON) -> SecurityAnalysisInput:
    pairs = _require(doc, "lattice", "security input")
    classification = doc.get("classification", {})
    try:
        lattice = SecurityLattice((str(a), str(b)) for a, b in pairs)
    except (TypeError, ValueError) as exc:
        raise MarshalError(f"security input: malformed lattice: {exc}") from exc
    if not isinstance(classification, Mapping):
        raise MarshalError("security input: 'classification' must be an object")
    return SecurityAnalysisInput(
        lattice, {str(k): str(v) for k, v in classification.items()}
    )


def security_result_to_json(result: SecurityAnalysisResult) -> JSON:
    return {
        "actual": [f.as_list() for f in result.actual],
        "allowed": [f.as_list() for f in result.allowed],
        "violations": [f.as_list() for f in result.violations],
    }


# ═══════════════════════════════════════════════════════════════════════════
# SIGNS
# ═══════════════════════════════════════════════════════════════════════════

def sign_assignment_from_json(doc: JSON) -> SignAssignment:
    if not isinstance(doc, Mapping):
        raise MarshalError("sign assignment must be an object")
    variables = {
        str(k): _enum(Sign, v, f"sign of '{k}'")
        for k, v in doc.get("variables", {}).items()
    }
    arrays = {
        str(k): {_enum(Sign, s, f"sign in '{k}'") for s in v}
        for k, v in doc.get("arrays", {}).items()
    }
    return SignAssignment.of(variables, arrays)


def sign_assignment_to_json(sa: SignAssignment) -> JSON:
    return {
        "variables": {k: v.value for k, v in sa.variables},
        "arrays": {k: [s.value for s in sorted_signs(v)] for k, v in sa.arrays},
    }


def sign_input_from_json(doc: JSON) -> SignAnalysisInput:
    return SignAnalysisInput(
        _determinism_field(doc),
        sign_assignment_from_json(_require(doc, "assignment", "sign input")),
    )


def sign_result_to_json(result: SignAnalysisResult, pg: Optional[ProgramGraph] = None) -> JSON:
    graph = pg or result.graph
    name: Callable[[int], str] = graph.node_name if graph is not None else str
    return {
        name(node): [sign_assignment_to_json(sa) for sa in result.at(node)]
        for node in sorted(result.facts)
    }


# ═══════════════════════════════════════════════════════════════════════════
# INTERPRETER
# ═══════════════════════════════════════════════════════════════════════════

def interpreter_input_from_json(doc: JSON) -> Tuple[Determinism, Memory, Optional[int]]:
    """Determinism, initial memory and step bound of an interpreter input."""
    memory = memory_from_json(_require(doc, "assignment", "interpreter input"))
    bound = doc.get("trace_count", doc.get("max_steps"))
    if bound is not None and (isinstance(bound, bool) or not isinstance(bound, int)):
        raise MarshalError(f"interpreter input: invalid step bound {bound!r}")
    return _determinism_field(doc), memory, bound


def _error_to_json(error: Optional[GclError]) -> JSON:
    return error.to_dict() if error is not None else None


def execution_result_to_json(result: ExecutionResult, pg: ProgramGraph) -> JSON:
    return {
        "outcome": result.outcome.value,
        "steps": result.steps,
        "node": pg.node_name(result.node),
        "trace": [
            {
                "node": pg.node_name(step.node),
                "action": str(step.action),
                "target": pg.node_name(step.target),
                "memory": memory_to_json(step.memory),
            }
            for step in result.trace
        ],
        "memory": memory_to_json(result.memory),
        "error": _error_to_json(result.error),
    }


def exploration_result_to_json(result: ExplorationResult, pg: ProgramGraph) -> JSON:
    return {
        "outcomes": sorted(o.value for o in result.outcomes),
        "states_explored": result.states_explored,
        "truncated": result.truncated,
        "runs": [execution_result_to_json(run, pg) for run in result.runs],
    }


# ═══════════════════════════════════════════════════════════════════════════
# TRACE EQUIVALENCE
# ═══════════════════════════════════════════════════════════════════════════

def equivalence_result_to_json(result: EquivalenceResult) -> JSON:
    return {
        "equivalent": result.equivalent,
        "outcome": result.outcome.value if result.outcome else None,
        "steps": result.steps,
        "pairings": result.pairings,
        "reason": result.reason,
    }


def trace_from_json(doc: JSON) -> List[Memory]:
    """Memories of a reported trace; entries may wrap them in ``memory``."""
    if not isinstance(doc, list):
        raise MarshalError("trace must be a list")
    return [
        memory_from_json(item["memory"] if isinstance(item, Mapping) and "memory" in item else item)
        for item in doc
    ]


def trace_validation_to_json(result: TraceValidation, pg: ProgramGraph) -> JSON:
    return {
        "valid": result.valid,
        "steps": result.steps,
        "terminated": result.terminated,
        "reason": result.reason,
        "nodes": [pg.node_name(n) for n in result.nodes],
    }


# ═══════════════════════════════════════════════════════════════════════════
# MODEL CHECKING
# ═══════════════════════════════════════════════════════════════════════════

def _configuration_to_json(config: ParallelConfiguration, ppg: ParallelProgramGraph) -> JSON:
    return {"nodes": ppg.node_names(config.nodes), "memory": memory_to_json(config.thaw())}


def checked_model_to_json(model: CheckedModel) -> JSON:
    """Stuck and final states, each stuck state with a shortest witness path."""
    ppg = model.graph
    stuck = []
    for config in model.stuck_states:
        doc = _configuration_to_json(config, ppg)
        doc["path"] = [
            {"component": step.component, "action": str(step.edge.action)}
            for step in model.path_to(config) or []
        ]
        stuck.append(doc)
    return {
        "stuck_free": model.is_stuck_free,
        "stuck_states": stuck,
        "final_states": [_configuration_to_json(c, ppg) for c in model.final_states],
        "states": model.num_states,
        "transitions": model.num_transitions,
        "depth_reached": model.depth_reached,
        "truncated": model.truncated,
    }


__all__ = [
    "load_json",
    "dump_json",
    "determinism_from_json",
    "ast_from_json",
    "ast_to_json",
    "action_to_json",
    "action_from_json",
    "graph_to_json",
    "graph_from_json",
    "memory_from_json",
    "memory_to_json",
    "security_input_from_json",
    "security_result_to_json",
    "sign_assignment_from_json",
    "sign_assignment_to_json",
    "sign_input_from_json",
    "sign_result_to_json",
    "interpreter_input_from_json",
    "execution_result_to_json",
    "exploration_result_to_json",
    "equivalence_result_to_json",
    "trace_from_json",
    "trace_validation_to_json",
    "checked_model_to_json",
]
