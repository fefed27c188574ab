"""
State machine for an interview turn.

`transition()` is a pure function of (state, event): it names the next state
and the effects the engine must run to produce the following event. It does
no I/O, so routing can be tested without any collaborators.

    interview --start--> interview [generate_question]
    interview --question_generated--> interview (awaiting answer)
    interview --answer_recorded--> threshold_check [score_saturation]
    threshold_check --continue--> interview [generate_question]
    threshold_check --saturated--> generate_instances [generate_instances]
    generate_instances --instances_generated--> context_update [compact_and_persist]
    context_update --context_persisted--> complete
    any non-terminal --failed--> error
"""

from enum import Enum
from typing import Dict, List, NamedTuple, Tuple

from knowledge_interview.domain.errors import InvalidTransitionError
from knowledge_interview.domain.models.interview_state import WorkflowState


class WorkflowEvent(str, Enum):
    """Events fed to the transition function"""
    START = "start"
    QUESTION_GENERATED = "question_generated"
    ANSWER_RECORDED = "answer_recorded"
    CONTINUE = "continue"
    SATURATED = "saturated"
    INSTANCES_GENERATED = "instances_generated"
    CONTEXT_PERSISTED = "context_persisted"
    FAILED = "failed"


class Effect(str, Enum):
    """Side effects executed at the engine boundary"""
    GENERATE_QUESTION = "generate_question"
    SCORE_SATURATION = "score_saturation"
    GENERATE_INSTANCES = "generate_instances"
    COMPACT_AND_PERSIST = "compact_and_persist"


class Transition(NamedTuple):
    state: WorkflowState
    effects: Tuple[Effect, ...] = ()


TERMINAL_STATES = frozenset({WorkflowState.COMPLETE, WorkflowState.ERROR})


_TRANSITIONS: Dict[Tuple[WorkflowState, WorkflowEvent], Transition] = {
    (WorkflowState.INTERVIEW, WorkflowEvent.START):
        Transition(WorkflowState.INTERVIEW, (Effect.GENERATE_QUESTION,)),
    (WorkflowState.INTERVIEW, WorkflowEvent.QUESTION_GENERATED):
        Transition(WorkflowState.INTERVIEW),
    (WorkflowState.INTERVIEW, WorkflowEvent.ANSWER_RECORDED):
        Transition(WorkflowState.THRESHOLD_CHECK, (Effect.SCORE_SATURATION,)),
    (WorkflowState.THRESHOLD_CHECK, WorkflowEvent.CONTINUE):
        Transition(WorkflowState.INTERVIEW, (Effect.GENERATE_QUESTION,)),
    (WorkflowState.THRESHOLD_CHECK, WorkflowEvent.SATURATED):
        Transition(WorkflowState.GENERATE_INSTANCES, (Effect.GENERATE_INSTANCES,)),
    (WorkflowState.GENERATE_INSTANCES, WorkflowEvent.INSTANCES_GENERATED):
        Transition(WorkflowState.CONTEXT_UPDATE, (Effect.COMPACT_AND_PERSIST,)),
    (WorkflowState.CONTEXT_UPDATE, WorkflowEvent.CONTEXT_PERSISTED):
        Transition(WorkflowState.COMPLETE),
}


def allowed_events(state: WorkflowState) -> List[WorkflowEvent]:
    """Events accepted in a state"""
    events = [event for (source, event) in _TRANSITIONS if source == state]
    if state not in TERMINAL_STATES:
        events.append(WorkflowEvent.FAILED)
    return events


def transition(state: WorkflowState, event: WorkflowEvent) -> Transition:
    """Return the next state and effects for an event"""
    if event == WorkflowEvent.FAILED and state not in TERMINAL_STATES:
        return Transition(WorkflowState.ERROR)

    try:
        return _TRANSITIONS[(state, event)]
    except KeyError:
        raise InvalidTransitionError(
            f"Event '{event.value}' is not allowed in state '{state.value}'",
            {"state": state.value, "event": event.value}
        ) from None
