"""
API Dependencies

Caller identity and the composition root: the concrete user directory,
push gateway and object storage are chosen here from settings and passed
into the workflow. Nothing below the API layer reads these settings.
"""
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from po_workflow.core.config import settings
from po_workflow.core.settings import Settings
from po_workflow.db.session import get_db
from po_workflow.logging_config import get_logger
from po_workflow.services.notification_orchestrator import NotificationOrchestrator
from po_workflow.services.object_storage import LocalObjectStorage, ObjectStorage
from po_workflow.services.purchase_order_workflow import Caller, PurchaseOrderWorkflow
from po_workflow.services.push_gateway import PushGateway, create_push_gateway
from po_workflow.services.user_directory import (
    MOCK_USERS,
    InMemoryUserDirectory,
    SqlUserDirectory,
    UserDirectory,
)

logger = get_logger(__name__)

_push_gateway: Optional[PushGateway] = None
_memory_directory: Optional[InMemoryUserDirectory] = None


async def get_caller(
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
) -> Caller:
    """
    Caller identity forwarded by the authenticating gateway.

    Raises:
        HTTPException 401 if either header is missing
    """
    if not x_user_id or not x_user_role:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing caller identity",
        )
    return Caller.of(x_user_id, x_user_role.strip().lower())


def build_user_directory(db: Session, config: Settings = settings) -> UserDirectory:
    global _memory_directory
    if config.USER_DIRECTORY_BACKEND == "memory":
        if _memory_directory is None:
            logger.info("Using in-memory user directory")
            _memory_directory = InMemoryUserDirectory(MOCK_USERS)
        return _memory_directory
    return SqlUserDirectory(db)


def build_workflow(
    db: Session,
    gateway: PushGateway,
    directory: Optional[UserDirectory] = None,
    storage: Optional[ObjectStorage] = None,
    config: Settings = settings,
) -> PurchaseOrderWorkflow:
    """Wire a workflow outside FastAPI (scripts, workers)."""
    directory = directory or build_user_directory(db, config)
    orchestrator = NotificationOrchestrator(
        db, directory, gateway, batch_size=config.PUSH_BATCH_SIZE
    )
    return PurchaseOrderWorkflow(
        db,
        directory,
        orchestrator=orchestrator,
        storage=storage,
        attachment_folder=config.ATTACHMENT_FOLDER,
    )


def get_push_gateway() -> PushGateway:
    """Process-wide push gateway, built on first use."""
    global _push_gateway
    if _push_gateway is None:
        _push_gateway = create_push_gateway(settings.PUSH_GATEWAY, settings.FIREBASE_CREDENTIALS_FILE)
        logger.info(f"Push gateway: {_push_gateway.name}")
    return _push_gateway


def get_object_storage() -> ObjectStorage:
    return LocalObjectStorage(
        settings.UPLOAD_DIR,
        settings.UPLOAD_BASE_URL,
        max_bytes=settings.MAX_ATTACHMENT_BYTES,
    )


def get_user_directory(db: Session = Depends(get_db)) -> UserDirectory:
    return build_user_directory(db)


def get_workflow(
    db: Session = Depends(get_db),
    directory: UserDirectory = Depends(get_user_directory),
    gateway: PushGateway = Depends(get_push_gateway),
    storage: ObjectStorage = Depends(get_object_storage),
) -> PurchaseOrderWorkflow:
    return build_workflow(db, gateway, directory=directory, storage=storage)
