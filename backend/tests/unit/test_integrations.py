"""
Unit tests for the pluggable collaborators: user directory, push gateway
and object storage
"""
import pytest

from po_workflow.exceptions import PushGatewayUnavailable, ValidationError
from po_workflow.services.object_storage import LocalObjectStorage, attachment_path
from po_workflow.services.push_gateway import (
    LoggingPushGateway,
    PushMessage,
    PushResult,
    create_push_gateway,
)
from po_workflow.services.user_directory import (
    MOCK_USERS,
    InMemoryUserDirectory,
    SqlUserDirectory,
)
from tests.factories import create_test_user


class TestSqlUserDirectory:

    @pytest.mark.unit
    def test_find_by_id(self, db_session):
        user = create_test_user(db_session, role="manager", name="Ahmad")

        found = SqlUserDirectory(db_session).find_by_id(user.id)

        assert found.name == "Ahmad"
        assert found.role == "manager"
        assert SqlUserDirectory(db_session).find_by_id("missing") is None

    @pytest.mark.unit
    def test_find_ids_by_roles_skips_inactive(self, db_session):
        manager = create_test_user(db_session, role="manager")
        assistant = create_test_user(db_session, role="assistant_manager")
        create_test_user(db_session, role="manager", active=False)
        create_test_user(db_session, role="employee")

        ids = SqlUserDirectory(db_session).find_ids_by_roles(["manager", "assistant_manager"])

        assert sorted(ids) == sorted([manager.id, assistant.id])

    @pytest.mark.unit
    def test_no_roles(self, db_session):
        assert SqlUserDirectory(db_session).find_ids_by_roles([]) == []


class TestInMemoryUserDirectory:

    @pytest.mark.unit
    def test_mock_users(self):
        directory = InMemoryUserDirectory(MOCK_USERS)

        assert directory.find_by_id(MOCK_USERS[0].id).name == MOCK_USERS[0].name
        # The inactive employee is never a recipient
        assert len(directory.find_ids_by_roles(["employee"])) == 1


class TestPushGateway:

    @pytest.mark.unit
    def test_logging_gateway_reports_success(self):
        results = LoggingPushGateway().send_multicast(["a", "b"], PushMessage(title="Hi"))

        assert [r.token for r in results] == ["a", "b"]
        assert all(r.success for r in results)

    @pytest.mark.unit
    def test_factory(self):
        assert isinstance(create_push_gateway("log"), LoggingPushGateway)
        with pytest.raises(PushGatewayUnavailable):
            create_push_gateway("pigeon")

    @pytest.mark.unit
    @pytest.mark.parametrize("code,invalid", [
        ("messaging/registration-token-not-registered", True),
        ("invalid-argument", True),
        ("messaging/internal-error", False),
        (None, False),
    ])
    def test_token_invalid(self, code, invalid):
        assert PushResult(token="t", success=False, error_code=code).token_invalid is invalid


class TestLocalObjectStorage:

    @pytest.mark.unit
    def test_attachment_path(self):
        assert attachment_path("/purchase_orders/", "emp-1", "PO-25-03-0001") == "purchase_orders/emp-1/PO-25-03-0001"

    @pytest.mark.unit
    def test_size_limit(self, tmp_path):
        storage = LocalObjectStorage(str(tmp_path), "https://files.test", max_bytes=3)

        with pytest.raises(ValidationError):
            storage.upload(b"12345", "purchase_orders/emp-1/PO-25-03-0001", "quote.pdf")

    @pytest.mark.unit
    def test_delete_removes_stored_file(self, tmp_path):
        storage = LocalObjectStorage(str(tmp_path), "https://files.test")
        stored = storage.upload(b"1", "purchase_orders/emp-1/PO-25-03-0001", "quote.pdf")
        local = tmp_path.joinpath(*stored.url[len("https://files.test/"):].split("/"))
        assert local.exists()

        storage.delete(stored.url)
        storage.delete(stored.url)
        storage.delete("https://elsewhere.test/quote.pdf")

        assert not local.exists()

    @pytest.mark.unit
    def test_extension_is_lowercased(self, tmp_path):
        storage = LocalObjectStorage(str(tmp_path), "https://files.test/")

        stored = storage.upload(b"1", "purchase_orders/emp-1/PO-25-03-0001", "SCAN.PDF")

        assert stored.url.startswith("https://files.test/v")
        assert stored.url.endswith(".pdf")
        assert "/purchase_orders/emp-1/PO-25-03-0001/" in stored.url
