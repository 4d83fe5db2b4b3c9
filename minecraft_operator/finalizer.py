"""
Finalizer state machine.

kopf owns the marker itself (`settings.persistence.finalizer`): it attaches
it before any change handler runs and releases it only after the delete
handler returned. This module classifies an observation and routes it to
the apply or cleanup branch:

  UNMARKED ──kopf attaches──▶ ACTIVE ──apply (repeat)──▶ ACTIVE
                                 │ deletionTimestamp set
                                 ▼
                           TERMINATING ──cleanup, kopf detaches──▶ FINALIZED
"""
import logging
from enum import Enum
from typing import Awaitable, Callable

import kopf

from minecraft_operator.errors import FinalizerError, FinalizerStage
from minecraft_operator.models import Minecraft

logger = logging.getLogger("minecraft-operator.finalizer")

Callback = Callable[[Minecraft], Awaitable[None]]

# Seconds to wait for kopf's own marker patch to land
MARKER_WAIT = 1


class FinalizerState(str, Enum):
    UNMARKED = "Unmarked"
    ACTIVE = "Active"
    TERMINATING = "Terminating"
    FINALIZED = "Finalized"


def observe_state(mc: Minecraft, finalizer: str) -> FinalizerState:
    marked = mc.has_finalizer(finalizer)
    if mc.is_deleting:
        return FinalizerState.TERMINATING if marked else FinalizerState.FINALIZED
    return FinalizerState.ACTIVE if marked else FinalizerState.UNMARKED


async def run_finalizer(finalizer: str, mc: Minecraft,
                        apply: Callback, cleanup: Callback):
    """Run the branch matching the observed state of `mc`."""
    state = observe_state(mc, finalizer)
    logger.debug(f"{mc.key} observed in state {state.value}")

    if state is FinalizerState.UNMARKED:
        # Children only ever exist next to the marker
        raise kopf.TemporaryError(
            f"finalizer {finalizer} not yet on {mc.key}", delay=MARKER_WAIT
        )

    if state is FinalizerState.ACTIVE:
        try:
            await apply(mc)
        except Exception as e:
            raise FinalizerError(FinalizerStage.APPLY, e) from e

    elif state is FinalizerState.TERMINATING:
        try:
            await cleanup(mc)
        except Exception as e:
            raise FinalizerError(FinalizerStage.CLEANUP, e) from e
