"""Data models and constants for the vectorforge graph compiler."""

import hashlib
import json
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from .errors import GraphError

# AIDEV-NOTE: Shape sizes are authored against this resolution and scaled
# by resolution / PREVIEW_RESOLUTION when rendered at other sizes.
PREVIEW_RESOLUTION = 512  # px

# Number of stacked layers used by the directional layer blur
BLUR_STEPS = 16

# Configuration file path
CONFIG_FILE = Path.home() / ".vectorforge_config.json"


@dataclass
class EngineConfig:
    """Graph compiler settings."""

    # Resolution that shape parameters are authored against
    preview_resolution: int = PREVIEW_RESOLUTION  # px

    # Vectorizer sampling grid used when a trace node omits fidelity
    default_fidelity: int = 128  # cells per side

    # Directional layer blur
    blur_steps: int = BLUR_STEPS

    # Evaluation cache bound (least recently used entries are dropped)
    max_cache_entries: int = 512

    # Length of the random hex salt appended to generated def ids
    id_salt_length: int = 4

    # Evaluate independent input branches concurrently
    concurrent_siblings: bool = True

    # Print per-node progress while evaluating
    verbose: bool = False


class NodeKind(Enum):
    """Operator tags, one per node kind the compiler knows how to evaluate."""

    # Shapes
    RECTANGLE = "rectangle"
    CIRCLE = "circle"
    POLYGON = "polygon"
    WAVY_RING = "wavy_ring"
    BEAM = "beam"
    PATH = "path"  # Tension spline with normalized points
    PEN = "pen"  # Free bezier with normalized points and handles

    # Inputs
    IMAGE = "image"
    GRADIENT = "gradient"
    COLOR = "color"
    VALUE = "value"
    ALPHA = "alpha"

    # Patterns / tools
    WAVE = "wave"
    TRACE = "trace"

    # Style
    FILL = "fill"
    STROKE = "stroke"
    GRADIENT_FADE = "gradient_fade"

    # Effects
    GLOW = "glow"
    NEON = "neon"
    SOFT_BLUR = "soft_blur"
    PIXELATE = "pixelate"
    LAYER_BLUR = "layer_blur"

    # Transforms
    TRANSLATE = "translate"
    ROTATE = "rotate"
    SCALE = "scale"
    POLAR = "polar"

    # Combinations (coverage compositing, not polygon booleans)
    UNION = "union"
    DIFFERENCE = "difference"
    INTERSECTION = "intersection"
    EXCLUSION = "exclusion"

    OUTPUT = "output"


# Aliases used by saved graphs from the editing surface
KIND_ALIASES = {
    "add": NodeKind.UNION,
    "subtract": NodeKind.DIFFERENCE,
    "multiply": NodeKind.INTERSECTION,
    "divide": NodeKind.EXCLUSION,
    "outputNode": NodeKind.OUTPUT,
}


def parse_kind(value: "str | NodeKind") -> NodeKind:
    """Resolve a node kind tag, accepting editing-surface aliases.

    Raises:
        GraphError: If the tag names no known operator
    """
    if isinstance(value, NodeKind):
        return value
    if value in KIND_ALIASES:
        return KIND_ALIASES[value]
    try:
        return NodeKind(value)
    except ValueError as e:
        raise GraphError(f"Unknown node kind: {value!r}") from e


# --- Graph Models ---


@dataclass
class Node:
    """A single operator instance in the graph.

    AIDEV-NOTE: params is the raw mapping from the editing surface. Operators
    never trust it directly; they go through the parameter dataclasses in
    operators/params.py which apply defaults.
    """

    id: str
    kind: NodeKind
    params: dict = field(default_factory=dict)

    def fingerprint(self) -> str:
        """Stable digest of the params, used to key the evaluation cache."""
        encoded = json.dumps(self.params, sort_keys=True, default=str)
        return hashlib.sha1(encoded.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class Edge:
    """Connection from a source node's output port to a target node's input port."""

    source_node_id: str
    source_port: str
    target_node_id: str
    target_port: str


class Graph:
    """Directed node graph. Target ports accept at most one incoming edge."""

    def __init__(self):
        self.nodes: dict[str, Node] = {}
        self.edges: list[Edge] = []

    def add_node(self, node: Node) -> Node:
        """Add (or replace) a node."""
        self.nodes[node.id] = node
        return node

    def add_edge(self, edge: Edge) -> Edge:
        """Add an edge between two existing nodes.

        Raises:
            GraphError: If an endpoint is unknown or the target port is taken
        """
        for node_id in (edge.source_node_id, edge.target_node_id):
            if node_id not in self.nodes:
                raise GraphError(f"Edge references unknown node {node_id!r}")

        for existing in self.edges:
            if (
                existing.target_node_id == edge.target_node_id
                and existing.target_port == edge.target_port
            ):
                raise GraphError(
                    f"Port {edge.target_port!r} of node {edge.target_node_id!r} "
                    f"already has an incoming edge"
                )

        self.edges.append(edge)
        return edge

    def connect(
        self,
        source_id: str,
        target_id: str,
        target_port: str = "in",
        source_port: str = "out",
    ) -> Edge:
        """Shorthand for add_edge."""
        return self.add_edge(Edge(source_id, source_port, target_id, target_port))

    def update_params(self, node_id: str, **updates) -> Node:
        """Merge parameter updates into a node (the editing surface's write path)."""
        node = self.nodes[node_id]
        node.params = {**node.params, **updates}
        return node

    def inputs_of(self, node_id: str) -> "dict[str, str]":
        """Map of target port name -> source node id for a node."""
        return {
            e.target_port: e.source_node_id
            for e in self.edges
            if e.target_node_id == node_id
        }

    def outputs_of(self, node_id: str) -> "list[str]":
        """Ids of nodes fed directly by a node."""
        return [e.target_node_id for e in self.edges if e.source_node_id == node_id]

    def ancestors(self, node_id: str) -> "set[str]":
        """All nodes on a backward path from node_id (excluding itself unless cyclic)."""
        return self._walk(node_id, lambda n: self.inputs_of(n).values())

    def descendants(self, node_id: str) -> "set[str]":
        """All nodes on a forward path from node_id (excluding itself unless cyclic)."""
        return self._walk(node_id, self.outputs_of)

    def _walk(self, start: str, neighbours) -> "set[str]":
        seen: set[str] = set()
        stack = list(neighbours(start))
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            stack.extend(neighbours(current))
        return seen

    @classmethod
    def from_dict(cls, data: dict) -> "Graph":
        """Build a graph from the editing surface's JSON shape.

        Args:
            data: {"nodes": [{"id", "type", "params"}],
                   "edges": [{"source", "sourceHandle", "target", "targetHandle"}]}

        Returns:
            Populated Graph

        Raises:
            GraphError: If two nodes share an id
        """
        graph = cls()
        for raw in data.get("nodes", []):
            node_id = str(raw["id"])
            if node_id in graph.nodes:
                raise GraphError(f"Duplicate node id {node_id!r}")
            params = raw.get("params")
            if not isinstance(params, dict):
                params = {}
            graph.add_node(
                Node(
                    id=node_id,
                    kind=parse_kind(raw.get("type") or raw.get("kind")),
                    params=dict(params),
                )
            )
        for raw in data.get("edges", []):
            graph.add_edge(
                Edge(
                    source_node_id=str(raw["source"]),
                    source_port=raw.get("sourceHandle") or "out",
                    target_node_id=str(raw["target"]),
                    target_port=raw.get("targetHandle") or "in",
                )
            )
        return graph

    def to_dict(self) -> dict:
        """Inverse of from_dict."""
        return {
            "nodes": [
                {"id": n.id, "type": n.kind.value, "params": dict(n.params)}
                for n in self.nodes.values()
            ],
            "edges": [
                {
                    "source": e.source_node_id,
                    "sourceHandle": e.source_port,
                    "target": e.target_node_id,
                    "targetHandle": e.target_port,
                }
                for e in self.edges
            ],
        }


# --- Fragment Models ---


@dataclass(frozen=True)
class VectorFragment:
    """Serialized vector markup plus the definitions it references.

    AIDEV-NOTE: Every id referenced from markup (or from inside a def) must
    be defined by some entry of shared_defs. Ids are minted per evaluation
    pass by IdGenerator so they never collide within one document.
    """

    markup: str = ""
    shared_defs: "tuple[str, ...]" = ()

    @classmethod
    def empty(cls) -> "VectorFragment":
        return cls("", ())

    @property
    def is_empty(self) -> bool:
        return not self.markup.strip()

    def with_defs(self, *defs: str) -> "tuple[str, ...]":
        """This fragment's defs followed by extra ones, first copy of each kept."""
        # Fan-out reaches a combination through both inputs with the same defs
        return tuple(dict.fromkeys((*self.shared_defs, *defs)))

    def structural_hash(self) -> str:
        digest = hashlib.sha1()
        digest.update(self.markup.encode("utf-8"))
        for definition in self.shared_defs:
            digest.update(b"\x00")
            digest.update(definition.encode("utf-8"))
        return digest.hexdigest()


@dataclass(frozen=True)
class CacheKey:
    """Evaluation cache key for one node at one resolution."""

    node_id: str
    resolution: int
    params_digest: str
    upstream_hash: str
