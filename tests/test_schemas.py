"""
Tests for entity schemas and identifier canonicalization.
"""
import pytest
from bson import ObjectId
from pydantic import ValidationError as PydanticValidationError

from errors import InvalidIdentifier
from schemas import (
    DEFAULT_BUDGET,
    DEFAULT_TIMEFRAME,
    Application,
    ContactMessage,
    Project,
    Review,
    User,
    to_object_id,
)


class TestToObjectId:
    def test_object_id_passes_through(self):
        oid = ObjectId()
        assert to_object_id(oid) is oid

    def test_hex_string(self):
        oid = ObjectId()
        assert to_object_id(str(oid)) == oid
        assert to_object_id(f"  {oid}  ") == oid

    def test_all_digit_hex_string_is_not_treated_as_number(self):
        assert to_object_id("123456789012345678901234") == ObjectId("123456789012345678901234")

    def test_legacy_integer(self):
        assert to_object_id(7) == ObjectId("000000000000000000000007")
        assert to_object_id("255") == ObjectId("0000000000000000000000ff")

    @pytest.mark.parametrize("value", ["U1", "", None, -1, True, 3.5, "12345z", 16 ** 24, {"$gt": ""}])
    def test_invalid_values(self, value):
        with pytest.raises(InvalidIdentifier):
            to_object_id(value)


class TestDefaults:
    def test_user_defaults(self):
        user = User(
            username="ada", email="ada@example.com", password="pw", user_type="hacker", full_name="Ada"
        )
        assert user.is_verified is False
        assert user.created_at.tzinfo is not None

    def test_user_type_is_restricted(self):
        with pytest.raises(PydanticValidationError):
            User(username="ada", email="ada@example.com", password="pw", user_type="root", full_name="Ada")

    def test_project_defaults_and_reference_coercion(self):
        owner = ObjectId()
        project = Project(client_id=str(owner), title="t", description="d", requirements="r")
        assert project.client_id == owner
        assert project.budget == DEFAULT_BUDGET
        assert project.timeframe == DEFAULT_TIMEFRAME
        assert project.status == "open"
        assert project.skills == []

    def test_project_reference_must_be_an_id(self):
        with pytest.raises(InvalidIdentifier):
            Project(client_id="U1", title="t", description="d", requirements="r")

    def test_review_rating_range(self):
        ids = dict(project_id=ObjectId(), client_id=ObjectId(), hacker_id=ObjectId())
        assert Review(rating=5, **ids).featured is False
        with pytest.raises(PydanticValidationError):
            Review(rating=0, **ids)
        with pytest.raises(PydanticValidationError):
            Review(rating=6, **ids)

    def test_application_defaults(self):
        application = Application(
            project_id=ObjectId(), hacker_id=ObjectId(), proposal="p", estimated_time="1w", price_quote="$500"
        )
        assert application.status == "pending"

    def test_contact_message_defaults(self):
        message = ContactMessage(
            name="Kim", email="kim@example.com", subject="Hi", message="Hello", inquiry_type="general"
        )
        assert message.is_read is False
