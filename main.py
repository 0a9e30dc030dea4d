from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

import structlog
from fastapi import APIRouter, Body, Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from config import Settings, get_settings
from database import MongoConnection
from errors import ConflictError, InvalidIdentifier, TransientStoreError, ValidationError
from logging_config import configure_logging
from storage import ListResult, Storage

logger = structlog.get_logger(__name__)

router = APIRouter()


# Helpers

def get_storage(request: Request) -> Storage:
    return request.app.state.storage


def found(doc: Optional[dict], what: str = "Not found") -> dict:
    if doc is None:
        raise HTTPException(status_code=404, detail=what)
    return doc


def listed(result: ListResult) -> List[dict]:
    if not result.ok:
        raise HTTPException(status_code=503, detail=result.error.message)
    return list(result)


# Health
@router.get("/")
def read_root():
    return {"message": "Marketplace API running"}

@router.get("/test")
def test_database(storage: Storage = Depends(get_storage)):
    status = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "collections": [],
    }
    try:
        status["collections"] = storage.db.list_collection_names()
        status["database"] = "✅ Connected"
    except Exception as e:
        status["database"] = f"❌ Error: {str(e)[:80]}"
    return status

# Users
@router.post("/users", status_code=201)
def create_user(payload: Dict[str, Any] = Body(...), storage: Storage = Depends(get_storage)):
    return storage.create_user(payload)

@router.get("/users")
def list_users(user_type: Optional[str] = None, storage: Storage = Depends(get_storage)):
    return listed(storage.list_users(user_type))

@router.get("/users/{user_id}")
def get_user(user_id: str, storage: Storage = Depends(get_storage)):
    return found(storage.get_user(user_id), "User not found")

@router.put("/users/{user_id}")
def update_user(user_id: str, payload: Dict[str, Any] = Body(...), storage: Storage = Depends(get_storage)):
    return found(storage.update_user(user_id, payload), "User not found")

# Projects
class BulkDeleteRequest(BaseModel):
    ids: List[str]

class SkillRequest(BaseModel):
    skill: str

@router.post("/projects", status_code=201)
def create_project(payload: Dict[str, Any] = Body(...), storage: Storage = Depends(get_storage)):
    return storage.create_project(payload)

@router.get("/projects")
def list_projects(status: Optional[str] = None, storage: Storage = Depends(get_storage)):
    return listed(storage.list_projects(status))

@router.post("/projects/bulk-delete")
def delete_projects(payload: BulkDeleteRequest, storage: Storage = Depends(get_storage)):
    return {"deleted": storage.delete_projects(payload.ids)}

@router.get("/projects/{project_id}")
def get_project(project_id: str, storage: Storage = Depends(get_storage)):
    return found(storage.get_project(project_id), "Project not found")

@router.put("/projects/{project_id}")
def update_project(project_id: str, payload: Dict[str, Any] = Body(...), storage: Storage = Depends(get_storage)):
    return found(storage.update_project(project_id, payload), "Project not found")

@router.delete("/projects/{project_id}")
def delete_project(project_id: str, storage: Storage = Depends(get_storage)):
    found(storage.delete_project(project_id), "Project not found")
    return {"ok": True}

@router.get("/clients/{client_id}/projects")
def list_client_projects(client_id: str, storage: Storage = Depends(get_storage)):
    return listed(storage.get_projects_by_client_id(client_id))

@router.get("/projects/{project_id}/skills")
def get_project_skills(project_id: str, storage: Storage = Depends(get_storage)):
    return storage.get_project_skills(project_id)

@router.post("/projects/{project_id}/skills", status_code=201)
def add_project_skill(project_id: str, payload: SkillRequest, storage: Storage = Depends(get_storage)):
    added = storage.add_project_skill({"project_id": project_id, "skill": payload.skill})
    return found(added, "Project not found")

@router.get("/projects/{project_id}/applications")
def list_project_applications(project_id: str, storage: Storage = Depends(get_storage)):
    return listed(storage.get_applications_by_project_id(project_id))

# Reviews
class FeaturedRequest(BaseModel):
    featured: bool = True

@router.post("/reviews", status_code=201)
def create_review(payload: Dict[str, Any] = Body(...), storage: Storage = Depends(get_storage)):
    return storage.create_review(payload)

@router.put("/reviews/{review_id}/featured")
def set_review_featured(review_id: str, payload: FeaturedRequest, storage: Storage = Depends(get_storage)):
    return found(storage.set_review_featured(review_id, payload.featured), "Review not found")

@router.get("/testimonials")
def list_testimonials(storage: Storage = Depends(get_storage)):
    return listed(storage.list_testimonials())

@router.get("/hackers/{hacker_id}/reviews")
def list_hacker_reviews(hacker_id: str, storage: Storage = Depends(get_storage)):
    return listed(storage.get_reviews_by_hacker_id(hacker_id))

# Applications
class ApplicationStatusRequest(BaseModel):
    status: str

@router.post("/applications", status_code=201)
def create_application(payload: Dict[str, Any] = Body(...), storage: Storage = Depends(get_storage)):
    return storage.create_application(payload)

@router.put("/applications/{application_id}/status")
def update_application_status(application_id: str, payload: ApplicationStatusRequest, storage: Storage = Depends(get_storage)):
    return found(storage.update_application_status(application_id, payload.status), "Application not found")

@router.get("/hackers/{hacker_id}/applications")
def list_hacker_applications(hacker_id: str, storage: Storage = Depends(get_storage)):
    return listed(storage.get_applications_by_hacker_id(hacker_id))

# Contact messages
@router.post("/contact", status_code=201)
def create_contact_message(payload: Dict[str, Any] = Body(...), storage: Storage = Depends(get_storage)):
    return storage.create_contact_message(payload)

@router.get("/contact")
def list_contact_messages(unread_only: bool = False, storage: Storage = Depends(get_storage)):
    return listed(storage.list_contact_messages(unread_only))

@router.put("/contact/{message_id}/read")
def mark_contact_message_read(message_id: str, storage: Storage = Depends(get_storage)):
    return found(storage.mark_contact_message_read(message_id), "Message not found")


ERROR_STATUS = {
    ValidationError: 400,
    InvalidIdentifier: 400,
    ConflictError: 409,
    TransientStoreError: 503,
}


def _error_handler(status_code: int):
    async def handler(request: Request, exc):
        logger.warning("request_failed", path=request.url.path, status=status_code, error=exc.message)
        return JSONResponse(status_code=status_code, content={"detail": exc.message, **exc.details})
    return handler


def create_app(storage: Optional[Storage] = None, settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level, settings.log_json)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        connection = None
        if app.state.storage is None:
            connection = MongoConnection(settings)
            app.state.storage = Storage(connection.connect())
        yield
        if connection is not None:
            connection.close()

    app = FastAPI(title="Freelance Marketplace API", lifespan=lifespan)
    app.state.storage = storage

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    for exc_class, status_code in ERROR_STATUS.items():
        app.add_exception_handler(exc_class, _error_handler(status_code))
    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=get_settings().port)
