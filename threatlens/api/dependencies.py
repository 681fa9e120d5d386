"""
FastAPI dependencies for dependency injection.

Long-lived services are built once in the application lifespan and
kept on ``app.state``; these helpers hand them to route handlers.
"""

from typing import Optional

from fastapi import Header, Request

from threatlens.analysis import AnalysisPipeline
from threatlens.api.rate_limit import AdmissionGuard
from threatlens.detection import RuleEngine
from threatlens.errors import UnauthenticatedError
from threatlens.llm import LLMOrchestrator
from threatlens.storage import LocalLogStorage


def get_current_user(x_user_id: Optional[str] = Header(default=None)) -> str:
    """
    Caller identity from the ``X-User-Id`` header.

    Session handling lives in front of this service; a request without
    the header is unauthenticated.
    """
    if not x_user_id or not x_user_id.strip():
        raise UnauthenticatedError("Authentication required")
    return x_user_id.strip()


def get_pipeline(request: Request) -> AnalysisPipeline:
    """Get the application's analysis pipeline."""
    return request.app.state.pipeline


def get_admission_guard(request: Request) -> AdmissionGuard:
    """Get the analysis admission guard."""
    return request.app.state.admission_guard


def get_storage(request: Request) -> LocalLogStorage:
    return request.app.state.storage


def get_rule_engine(request: Request) -> RuleEngine:
    return request.app.state.engine


def get_orchestrator(request: Request) -> LLMOrchestrator:
    return request.app.state.orchestrator
