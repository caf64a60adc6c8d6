"""Exception types raised by the graph compiler and its operators."""


class GraphError(Exception):
    """Malformed graph structure (unknown node, doubled input port, bad kind)."""


class CycleError(GraphError):
    """The subgraph feeding the evaluation target contains a cycle."""

    def __init__(self, cycle: "list[str]"):
        self.cycle = list(cycle)
        super().__init__("Cycle detected in node graph: " + " -> ".join(self.cycle))


class MissingInputError(GraphError):
    """A required input port has no incoming edge."""

    def __init__(self, node_id: str, port: str):
        self.node_id = node_id
        self.port = port
        super().__init__(f"Node {node_id!r} requires an input on port {port!r}")


class RasterizationError(Exception):
    """The external rasterizer could not decode or render a fragment.

    AIDEV-NOTE: Never fatal for an evaluation pass. Operators catch it and
    degrade to an empty or pass-through fragment.
    """
