"""Procedural vector graphics graph compiler.

Typical use:

    graph = Graph.from_dict(saved_graph)
    evaluator = GraphEvaluator(rasterizer)
    document = await evaluator.compile_document(graph, "output", 1024)
"""

from .config_manager import ConfigManager
from .errors import CycleError, GraphError, MissingInputError, RasterizationError
from .graph_compiler import EvaluationCache, GraphEvaluator, PreviewSession
from .models import (
    CacheKey,
    Edge,
    EngineConfig,
    Graph,
    Node,
    NodeKind,
    VectorFragment,
)
from .rasterizer import Rasterizer, build_svg_document

__version__ = "0.1.0"

__all__ = [
    "CacheKey",
    "ConfigManager",
    "CycleError",
    "Edge",
    "EngineConfig",
    "EvaluationCache",
    "Graph",
    "GraphError",
    "GraphEvaluator",
    "MissingInputError",
    "Node",
    "NodeKind",
    "PreviewSession",
    "RasterizationError",
    "Rasterizer",
    "VectorFragment",
    "build_svg_document",
]
