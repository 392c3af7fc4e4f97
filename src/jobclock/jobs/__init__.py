"""Ready-made runnables for the scheduler.

Any object with a ``run()`` method can be scheduled; these cover the common
cases of calling a Python function and spawning an external process.
"""

from .base import FunctionJob, Job, as_job
from .command import CommandJob

__all__ = ["CommandJob", "FunctionJob", "Job", "as_job"]
