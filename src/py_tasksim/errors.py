"""Error taxonomy for the task simulator.

Every failure the core can report is a ``SimulatorError``.  The shell
catches the base class and turns it into an ``Error: ...`` line, so a
bad request never crashes the simulator.

Hierarchy::

    SimulatorError
    ├── InvalidConfigError          (fatal at boot)
    ├── AdmissionError
    │   ├── InsufficientResourcesError
    │   ├── CapacityExceededError
    │   └── SpawnFailedError
    ├── TerminationError
    │   ├── InvalidIndexError
    │   └── ReapFailedError
    ├── KernelModeError             (kernel-only operation in user mode)
    └── AppError                    (bad application arguments or I/O)

``InvalidConfigError`` is also a ``ValueError`` and ``InvalidIndexError``
is also an ``IndexError`` so callers that only know the builtin
exception types still catch them.
"""


class SimulatorError(Exception):
    """Base class for every recoverable simulator error."""


class InvalidConfigError(SimulatorError, ValueError):
    """Raise when resource totals or boot settings are invalid."""


class AdmissionError(SimulatorError):
    """Raise when a task cannot be admitted."""


class InsufficientResourcesError(AdmissionError):
    """Raise when the pool cannot cover a task's footprint."""


class CapacityExceededError(AdmissionError):
    """Raise when the task registry is already full."""


class SpawnFailedError(AdmissionError):
    """Raise when a detached execution could not be started."""


class TerminationError(SimulatorError):
    """Raise when a task cannot be terminated."""


class InvalidIndexError(TerminationError, IndexError):
    """Raise when an index is out of range or names a non-running task."""


class ReapFailedError(TerminationError):
    """Raise when a stopped execution did not finish within its bounded wait."""


class AppError(SimulatorError):
    """Raise when an application program cannot do what it was asked."""


class KernelModeError(SimulatorError):
    """Raise when a kernel-mode operation is requested in user mode."""
