"""LangGraph construction and node implementations for guide-fulfilling exchanges.

call -> check -> (fulfill -> call)* -> END
"""

from __future__ import annotations

from typing import Callable, List

from langgraph.graph import END, StateGraph
from langgraph.graph.state import CompiledStateGraph

from prose_core.domain.resources import ResourceRequest
from prose_core.flows.state import GuideFlowState
from prose_core.infrastructure.logging.logger import logger


CallModel = Callable[[GuideFlowState], GuideFlowState]
ParseRequest = Callable[[str], ResourceRequest]
Fulfill = Callable[[GuideFlowState, List[str]], None]


def call_node(state: GuideFlowState, call_model: CallModel) -> GuideFlowState:
    state = call_model(state)
    state["turns"] = state.get("turns", 0) + 1
    logger.info(
        "guide_flow.call",
        extra={"extra": {**state.get("log_ctx", {}), "turn": state["turns"], "chars": len(state.get("reply", ""))}},
    )
    return state


def check_node(state: GuideFlowState, parse_request: ParseRequest) -> GuideFlowState:
    state["pending_ids"] = []
    if state.get("turns", 0) >= state.get("max_turns", 3):
        logger.info(
            "guide_flow.max_turns",
            extra={"extra": {**state.get("log_ctx", {}), "max_turns": state.get("max_turns", 3)}},
        )
        return state
    request = parse_request(state.get("reply", ""))
    if request.present:
        state["pending_ids"] = list(request.requested_ids)
        logger.info(
            "guide_flow.request",
            extra={"extra": {**state.get("log_ctx", {}), "requested": state["pending_ids"]}},
        )
    else:
        logger.info("guide_flow.no_request", extra={"extra": state.get("log_ctx", {})})
    return state


def fulfill_node(state: GuideFlowState, fulfill: Fulfill) -> GuideFlowState:
    pending = list(state.get("pending_ids") or [])
    fulfill(state, pending)
    state["used_ids"] = list(state.get("used_ids") or []) + pending
    state["pending_ids"] = []
    return state


def check_router(state: GuideFlowState) -> str:
    return "fulfill" if state.get("pending_ids") else "end"


def build_guide_flow(call_model: CallModel, parse_request: ParseRequest, fulfill: Fulfill) -> CompiledStateGraph:
    graph = StateGraph(GuideFlowState)
    graph.add_node("call", lambda s: call_node(s, call_model))
    graph.add_node("check", lambda s: check_node(s, parse_request))
    graph.add_node("fulfill", lambda s: fulfill_node(s, fulfill))
    graph.set_entry_point("call")
    graph.add_edge("call", "check")
    graph.add_conditional_edges("check", check_router, {"fulfill": "fulfill", "end": END})
    graph.add_edge("fulfill", "call")
    return graph.compile()
