"""
Storage service for the marketplace collections.

`Storage` wraps an injected pymongo `Database` and exposes one method per
operation. Documents come back as plain dicts (see `database.to_public`),
lookups that find nothing return None, and failures raise the types in
`errors`.

Read paths never raise for driver failures: single lookups log and return
None, list lookups return an empty `ListResult` with `error` set. Write
paths always raise.
"""
from typing import Any, Iterable, List, Mapping, Optional, get_args

import structlog
from bson import ObjectId
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from pymongo import DESCENDING, ReturnDocument
from pymongo.collection import Collection
from pymongo.database import Database

from database import create_document, to_public, translate_errors
from errors import InvalidIdentifier, TransientStoreError, ValidationError
from schemas import (
    DEFAULT_BUDGET,
    DEFAULT_TIMEFRAME,
    Application,
    ApplicationStatus,
    ContactMessage,
    Project,
    ProjectUpdate,
    Review,
    User,
    UserUpdate,
    now_utc,
    to_object_id,
)

logger = structlog.get_logger(__name__)

# Minimum lengths after trimming, checked in this order
PROJECT_TEXT_RULES = (("title", 10), ("description", 50), ("requirements", 20))
PROJECT_TEXT_FIELDS = ("title", "description", "requirements", "additional_details")

NEWEST_FIRST = [("created_at", DESCENDING)]


class ListResult(list):
    """Documents from a list query, plus the failure that emptied it, if any."""

    def __init__(self, items: Iterable = (), error: Optional[TransientStoreError] = None):
        super().__init__(items)
        self.error = error

    @property
    def ok(self) -> bool:
        return self.error is None


def _as_dict(data: Any) -> dict:
    if isinstance(data, BaseModel):
        return data.model_dump(exclude_unset=True)
    if isinstance(data, Mapping):
        return dict(data)
    raise ValidationError("data", "must be a mapping")


def _build(model_cls, data: Any):
    try:
        return model_cls.model_validate(_as_dict(data))
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first["loc"]) or model_cls.__name__.lower()
        raise ValidationError(field, first["msg"]) from e


def _nullable(entity_cls, name: str) -> bool:
    field = entity_cls.model_fields.get(name)
    return field is not None and not field.is_required() and field.default is None


def _changes(update_cls, entity_cls, data: Any) -> dict:
    """Fields to $set; None only clears fields the entity allows to be None."""
    changes = _build(update_cls, data).model_dump(exclude_unset=True)
    return {k: v for k, v in changes.items() if v is not None or _nullable(entity_cls, k)}


def _trimmed(value):
    return value.strip() if isinstance(value, str) else value


def _skill_list(skills) -> List[str]:
    if not isinstance(skills, (list, tuple)):
        return []
    return [str(skill) for skill in skills]


def _check_project_text(fields: dict, partial: bool = False) -> None:
    for name, minimum in PROJECT_TEXT_RULES:
        if partial and name not in fields:
            continue
        value = fields.get(name)
        if not isinstance(value, str) or len(value) < minimum:
            raise ValidationError(name, "too short")


class Storage:
    def __init__(self, db: Database):
        self.db = db
        self.users: Collection = db["user"]
        self.projects: Collection = db["project"]
        self.reviews: Collection = db["review"]
        self.applications: Collection = db["application"]
        self.contact_messages: Collection = db["contactmessage"]

    # Read helpers

    def _find_one(self, collection: Collection, query: dict, operation: str) -> Optional[dict]:
        try:
            with translate_errors(operation, collection.name):
                return to_public(collection.find_one(query))
        except TransientStoreError as e:
            logger.error("lookup_failed", operation=operation, error=e.message)
            return None

    def _find_many(
        self, collection: Collection, query: dict, operation: str, sort: Optional[list] = None
    ) -> ListResult:
        try:
            with translate_errors(operation, collection.name):
                cursor = collection.find(query)
                if sort:
                    cursor = cursor.sort(sort)
                return ListResult(to_public(doc) for doc in cursor)
        except TransientStoreError as e:
            logger.error("listing_failed", operation=operation, error=e.message)
            return ListResult(error=e)

    def _update(
        self, collection: Collection, doc_id, changes: dict, operation: str
    ) -> Optional[dict]:
        oid = to_object_id(doc_id)
        with translate_errors(operation, collection.name):
            if not changes:
                doc = collection.find_one({"_id": oid})
            else:
                doc = collection.find_one_and_update(
                    {"_id": oid}, {"$set": changes}, return_document=ReturnDocument.AFTER
                )
        return to_public(doc)

    def _insert(self, collection: Collection, model: BaseModel, operation: str) -> dict:
        with translate_errors(operation, collection.name):
            doc = create_document(self.db, collection.name, model)
        logger.info(f"{collection.name}_created", id=str(doc["_id"]))
        return to_public(doc)

    # Users

    def create_user(self, data) -> dict:
        return self._insert(self.users, _build(User, data), "create_user")

    def get_user(self, user_id) -> Optional[dict]:
        try:
            oid = to_object_id(user_id)
        except InvalidIdentifier as e:
            logger.warning("user_lookup_failed", user_id=str(user_id), error=e.message)
            return None
        return self._find_one(self.users, {"_id": oid}, "get_user")

    def get_user_by_username(self, username: str) -> Optional[dict]:
        return self._find_one(self.users, {"username": username}, "get_user_by_username")

    def get_user_by_email(self, email: str) -> Optional[dict]:
        return self._find_one(self.users, {"email": email}, "get_user_by_email")

    def list_users(self, user_type: Optional[str] = None) -> ListResult:
        query = {"user_type": user_type} if user_type else {}
        return self._find_many(self.users, query, "list_users")

    def update_user(self, user_id, data) -> Optional[dict]:
        return self._update(self.users, user_id, _changes(UserUpdate, User, data), "update_user")

    # Projects

    def create_project(self, data) -> dict:
        data = _as_dict(data)
        if data.get("client_id") is None:
            raise ValidationError("client_id", "is required")
        fields = {name: _trimmed(data.get(name)) for name in PROJECT_TEXT_FIELDS}
        fields.update(
            client_id=to_object_id(data["client_id"]),
            budget=data.get("budget") or DEFAULT_BUDGET,
            timeframe=data.get("timeframe") or DEFAULT_TIMEFRAME,
            status=data.get("status") or "open",
            skills=_skill_list(data.get("skills")),
        )
        _check_project_text(fields)
        project = _build(Project, fields)

        with translate_errors("create_project", "project"):
            owner = self.users.find_one({"_id": project.client_id}, {"_id": 1})
        if owner is None:
            raise ValidationError("client", "not found")
        return self._insert(self.projects, project, "create_project")

    def get_project(self, project_id) -> Optional[dict]:
        return self._find_one(self.projects, {"_id": to_object_id(project_id)}, "get_project")

    def list_projects(self, status: Optional[str] = None) -> ListResult:
        """All projects, newest first, each joined to its owner's name.

        Every documented field is present on each item; missing values fall
        back to display defaults.
        """
        query = {"status": status} if status else {}
        try:
            with translate_errors("list_projects", "project"):
                projects = list(self.projects.find(query).sort(NEWEST_FIRST))
                client_ids = list({
                    p["client_id"] for p in projects if isinstance(p.get("client_id"), ObjectId)
                })
                owners = {
                    user["_id"]: user
                    for user in self.users.find(
                        {"_id": {"$in": client_ids}}, {"username": 1, "full_name": 1, "company": 1}
                    )
                }
        except TransientStoreError as e:
            logger.error("project_listing_failed", status=status, error=e.message)
            return ListResult(error=e)
        return ListResult(self._project_view(project, owners) for project in projects)

    @staticmethod
    def _project_view(project: dict, owners: dict) -> dict:
        client_id = project.get("client_id")
        owner = owners.get(client_id, {}) if isinstance(client_id, ObjectId) else {}
        view = to_public(project)
        view.update(
            client_id=view.get("client_id"),
            title=project.get("title") or "Untitled",
            description=project.get("description") or "No description provided",
            requirements=project.get("requirements") or "",
            budget=project.get("budget") or DEFAULT_BUDGET,
            timeframe=project.get("timeframe") or DEFAULT_TIMEFRAME,
            additional_details=project.get("additional_details"),
            status=project.get("status") or "open",
            skills=_skill_list(project.get("skills")),
            client_name=owner.get("full_name") or "Unknown Client",
            created_at=project.get("created_at") or now_utc(),
        )
        return view

    def get_projects_by_client_id(self, client_id) -> ListResult:
        query = {"client_id": to_object_id(client_id)}
        return self._find_many(self.projects, query, "get_projects_by_client_id", NEWEST_FIRST)

    def update_project(self, project_id, data) -> Optional[dict]:
        changes = _changes(ProjectUpdate, Project, data)
        for name in PROJECT_TEXT_FIELDS:
            if name in changes:
                changes[name] = _trimmed(changes[name])
        _check_project_text(changes, partial=True)
        return self._update(self.projects, project_id, changes, "update_project")

    def delete_project(self, project_id) -> Optional[dict]:
        oid = to_object_id(project_id)
        with translate_errors("delete_project", "project"):
            doc = self.projects.find_one_and_delete({"_id": oid})
        if doc:
            logger.info("project_deleted", id=str(oid))
        return to_public(doc)

    def delete_projects(self, project_ids: Iterable) -> int:
        """Delete every project in `project_ids`; returns how many existed."""
        oids = list({to_object_id(project_id) for project_id in project_ids})
        if not oids:
            return 0
        with translate_errors("delete_projects", "project"):
            result = self.projects.delete_many({"_id": {"$in": oids}})
        logger.info("projects_deleted", requested=len(oids), deleted=result.deleted_count)
        return result.deleted_count or 0

    # Project skills

    def get_project_skills(self, project_id) -> List[str]:
        project = self._find_one(
            self.projects, {"_id": to_object_id(project_id)}, "get_project_skills"
        )
        if not project:
            return []
        return list(project.get("skills") or [])

    def add_project_skill(self, data) -> Optional[dict]:
        data = _as_dict(data)
        oid = to_object_id(data.get("project_id"))
        skill = _trimmed(data.get("skill"))
        if not isinstance(skill, str) or not skill:
            raise ValidationError("skill", "is required")
        with translate_errors("add_project_skill", "project"):
            result = self.projects.update_one({"_id": oid}, {"$addToSet": {"skills": skill}})
        if result.matched_count == 0:
            return None
        return {"project_id": str(oid), "skill": skill}

    # Reviews

    def create_review(self, data) -> dict:
        return self._insert(self.reviews, _build(Review, data), "create_review")

    def get_reviews_by_hacker_id(self, hacker_id) -> ListResult:
        query = {"hacker_id": to_object_id(hacker_id)}
        return self._find_many(self.reviews, query, "get_reviews_by_hacker_id", NEWEST_FIRST)

    def set_review_featured(self, review_id, featured: bool = True) -> Optional[dict]:
        return self._update(
            self.reviews, review_id, {"featured": bool(featured)}, "set_review_featured"
        )

    def list_testimonials(self) -> ListResult:
        return self._find_many(self.reviews, {"featured": True}, "list_testimonials", NEWEST_FIRST)

    # Applications

    def create_application(self, data) -> dict:
        return self._insert(self.applications, _build(Application, data), "create_application")

    def get_applications_by_project_id(self, project_id) -> ListResult:
        query = {"project_id": to_object_id(project_id)}
        return self._find_many(self.applications, query, "get_applications_by_project_id")

    def get_applications_by_hacker_id(self, hacker_id) -> ListResult:
        query = {"hacker_id": to_object_id(hacker_id)}
        return self._find_many(self.applications, query, "get_applications_by_hacker_id")

    def update_application_status(self, application_id, status: str) -> Optional[dict]:
        if status not in get_args(ApplicationStatus):
            raise ValidationError("status", "is not a valid application status")
        return self._update(
            self.applications, application_id, {"status": status}, "update_application_status"
        )

    # Contact messages

    def create_contact_message(self, data) -> dict:
        return self._insert(
            self.contact_messages, _build(ContactMessage, data), "create_contact_message"
        )

    def list_contact_messages(self, unread_only: bool = False) -> ListResult:
        query = {"is_read": False} if unread_only else {}
        return self._find_many(
            self.contact_messages, query, "list_contact_messages", NEWEST_FIRST
        )

    def mark_contact_message_read(self, message_id) -> Optional[dict]:
        return self._update(
            self.contact_messages, message_id, {"is_read": True}, "mark_contact_message_read"
        )
