"""Dependency injection for FastAPI endpoints"""

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from rentflow.infrastructure.clients.processor import ProcessorClient
from rentflow.infrastructure.database.repositories import SqlWorkflowStore
from rentflow.infrastructure.database.session import get_db
from rentflow.workflow.locks import ApplicationLocks
from rentflow.workflow.orchestrator import WorkflowOrchestrator

# Shared across requests so writes to one application serialize process-wide
application_locks = ApplicationLocks()


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_store(db: Session = Depends(get_db)) -> SqlWorkflowStore:
    return SqlWorkflowStore(db)


def get_processor_client() -> ProcessorClient:
    """Provide payment processor client instance"""
    return ProcessorClient()


def get_orchestrator(
    store: SqlWorkflowStore = Depends(get_store),
    processor: ProcessorClient = Depends(get_processor_client),
) -> WorkflowOrchestrator:
    return WorkflowOrchestrator(store, processor, locks=application_locks)
