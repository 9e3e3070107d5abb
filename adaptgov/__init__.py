"""
adaptgov - Adaptive parameter governance for a personal task assistant

Observes behavioral signals and proposes bounded adjustments to the
assistant's behavioral parameters:
- Every parameter value is clamped to a hard range
- No adaptation before a minimum observation window
- Significant changes wait for explicit user consent
- Abusive override patterns freeze adaptation
- At most a few visible changes per week
- Every applied change can be rolled back
"""

__version__ = "0.1.0"
__author__ = "adaptgov Team"

from adaptgov.utils.logging import setup_logging
from adaptgov.utils.config import load_config
from adaptgov.engine import AdaptationEngine, CycleState

__all__ = [
    "__version__",
    "setup_logging",
    "load_config",
    "AdaptationEngine",
    "CycleState",
]
