"""
Sequential step runner with a declared failure policy per step.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

from errors import FatalError


class StepPolicy(Enum):
    FATAL = "fatal"
    BEST_EFFORT = "best-effort"


@dataclass(frozen=True)
class Step:
    name: str
    action: Callable[[], None]
    policy: StepPolicy = StepPolicy.FATAL


@dataclass(frozen=True)
class StepOutcome:
    name: str
    policy: StepPolicy
    succeeded: bool
    error: Optional[str] = None


def log_header(message: str):
    """Log a formatted header message."""
    separator = "=" * 70
    header = "\n".join(["", separator, message, separator, ""])
    logging.info(header)


def run_step(number: int, step: Step) -> StepOutcome:
    """
    Run one step and apply its policy to a failure.

    Unexpected exceptions are wrapped in a FatalError carrying the step name.
    A failed BEST_EFFORT step is logged and reported in the outcome, a failed
    FATAL step is raised.
    """
    log_header(f"STEP {number}: {step.name}")
    try:
        step.action()
    except FatalError as e:
        if e.step is None:
            e.step = step.name
        error = e
    except Exception as e:
        error = FatalError(str(e), step=step.name)
        error.__cause__ = e
    else:
        return StepOutcome(step.name, step.policy, True)

    if step.policy == StepPolicy.BEST_EFFORT:
        logging.warning(f"⚠️  Best-effort step '{step.name}' failed, continuing: {error}")
        return StepOutcome(step.name, step.policy, False, str(error))
    logging.error(f"❌ Step '{step.name}' failed: {error}")
    raise error


def run_steps(steps: List[Step]) -> List[StepOutcome]:
    """
    Run steps in order, stopping at the first FATAL failure.

    Returns:
        One outcome per step that ran
    """
    return [run_step(number, step) for number, step in enumerate(steps, 1)]
