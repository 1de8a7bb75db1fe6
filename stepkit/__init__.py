"""
Declarative task runner: tasks own guarded steps, steps own actions,
a fail-fast runner executes them against a Context.
"""
from .context import Context, derive_context
from .orchestrator import FailureCause, Runner, RunResult
from .services import Services
from .step import Step, StepResult, StepStatus, run_step, should_run
from .task import ContextDef, Option, Task, TaskBuilder, TaskRegistry, invoke, resolve_options

__all__ = [
    "Context",
    "ContextDef",
    "FailureCause",
    "Option",
    "RunResult",
    "Runner",
    "Services",
    "Step",
    "StepResult",
    "StepStatus",
    "Task",
    "TaskBuilder",
    "TaskRegistry",
    "derive_context",
    "invoke",
    "resolve_options",
    "run_step",
    "should_run",
]
__version__ = "0.1.0"
