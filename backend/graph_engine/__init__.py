"""
Graph execution package
=======================

Provides the core building blocks for the workflow execution runtime:

- Declarative node catalog, graph data model and connection validation
- Editing session that keeps handle bookkeeping in sync with edges
- Execution planning utilities (level partition, downstream selection)
- Shared execution context/state containers and input resolution
- Node executors that run the actual work (remote service or in-process)
"""

from .schema import DataType, Edge, GraphValidationError, Node, NodeType, parse_graph  # noqa: F401
from .validator import ConnectionRejected, has_cycle, validate_connection  # noqa: F401
from .editing import WorkflowGraph  # noqa: F401
from .planner import ExecutionPlan, PlanBuilder, SchedulingError, schedule_levels  # noqa: F401
from .resolver import InputResolver, resolve_inputs  # noqa: F401
