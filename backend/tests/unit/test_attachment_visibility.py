"""
Unit tests for attachment URL parsing and role-based visibility
"""
import pytest
from datetime import datetime, timedelta
from types import SimpleNamespace

from po_workflow.core.status_config import UserRole
from po_workflow.services.attachment_visibility import (
    AttachmentRef,
    attachment_refs,
    filter_visible_attachments,
    parse_attachment_url,
)

CLOUD_URL = (
    "https://res.cloudinary.com/demo/image/upload/"
    "v1700000000/purchase_orders/emp-1/PO-25-03-0001/quote.pdf"
)
ROUTED_AT = datetime(2025, 3, 10, 12, 0)


class TestParseAttachmentUrl:

    @pytest.mark.unit
    def test_parses_storage_convention(self):
        parsed = parse_attachment_url(CLOUD_URL)

        assert parsed is not None
        assert parsed.uploaded_by == "emp-1"
        assert parsed.po_number == "PO-25-03-0001"
        assert parsed.folder == "purchase_orders"
        assert parsed.filename == "quote.pdf"
        assert parsed.uploaded_at == datetime(2023, 11, 14, 22, 13, 20)

    @pytest.mark.unit
    def test_nested_folder_and_query_string(self):
        url = "https://files.test/v1700000000/po/2025/mgr-1/PO-25-03-0002/a.png?sig=abc#x"
        parsed = parse_attachment_url(url)

        assert parsed.folder == "po/2025"
        assert parsed.uploaded_by == "mgr-1"
        assert parsed.filename == "a.png"

    @pytest.mark.unit
    @pytest.mark.parametrize("url", [
        "",
        "https://files.test/uploads/quote.pdf",
        "https://files.test/v1700000000/emp-1/PO-25-03-0001/quote.pdf",
        "https://files.test/v12/purchase_orders/emp-1/PO-25-03-0001/quote.pdf",
    ])
    def test_unrecognized_urls(self, url):
        assert parse_attachment_url(url) is None


class TestAttachmentRefs:

    @pytest.mark.unit
    def test_stored_metadata_wins(self):
        row = SimpleNamespace(url=CLOUD_URL, uploaded_by="mgr-1", uploaded_at=ROUTED_AT)
        ref = attachment_refs([row])[0]

        assert ref.uploaded_by == "mgr-1"
        assert ref.uploaded_at == ROUTED_AT

    @pytest.mark.unit
    def test_missing_metadata_comes_from_url(self):
        row = SimpleNamespace(url=CLOUD_URL, uploaded_by=None, uploaded_at=None)
        ref = attachment_refs([row])[0]

        assert ref.uploaded_by == "emp-1"
        assert ref.uploaded_at == datetime(2023, 11, 14, 22, 13, 20)

    @pytest.mark.unit
    def test_unparseable_url_stays_unattributed(self):
        row = SimpleNamespace(url="https://files.test/quote.pdf", uploaded_by=None, uploaded_at=None)
        ref = attachment_refs([row])[0]

        assert ref.uploaded_by is None
        assert ref.uploaded_at is None


@pytest.fixture
def attachments():
    return [
        AttachmentRef("a-before", uploaded_by="emp-1", uploaded_at=ROUTED_AT - timedelta(hours=1)),
        AttachmentRef("b-after", uploaded_by="mgr-1", uploaded_at=ROUTED_AT + timedelta(hours=1)),
        AttachmentRef("c-own", uploaded_by="proc-1", uploaded_at=ROUTED_AT + timedelta(hours=2)),
        AttachmentRef("d-unknown"),
    ]


class TestFilterVisibleAttachments:

    @pytest.mark.unit
    @pytest.mark.parametrize("role", [
        UserRole.MANAGER,
        UserRole.ASSISTANT_MANAGER,
        UserRole.GENERAL_MANAGER,
        UserRole.FINANCE_MANAGER,
        UserRole.AUDITOR,
    ])
    def test_elevated_roles_see_everything(self, attachments, role):
        assert filter_visible_attachments(attachments, role, "someone") == attachments

    @pytest.mark.unit
    def test_employee_sees_own_uploads(self, attachments):
        visible = filter_visible_attachments(attachments, UserRole.EMPLOYEE, "emp-1")
        assert [a.url for a in visible] == ["a-before"]

    @pytest.mark.unit
    def test_unattributed_attachment_hidden_from_employee(self, attachments):
        visible = filter_visible_attachments(attachments, UserRole.GUEST, "nobody")
        assert visible == []

    @pytest.mark.unit
    def test_procurement_sees_pre_routing_and_own(self, attachments):
        visible = filter_visible_attachments(
            attachments, UserRole.PROCUREMENT_OFFICER, "proc-1", procurement_routed_at=ROUTED_AT,
        )
        assert [a.url for a in visible] == ["a-before", "c-own"]

    @pytest.mark.unit
    def test_procurement_without_routing_sees_everything(self, attachments):
        visible = filter_visible_attachments(attachments, UserRole.PROCUREMENT_OFFICER, "proc-1")
        assert visible == attachments

    @pytest.mark.unit
    def test_order_is_preserved(self, attachments):
        visible = filter_visible_attachments(
            list(reversed(attachments)), UserRole.PROCUREMENT_OFFICER, "proc-1",
            procurement_routed_at=ROUTED_AT,
        )
        assert [a.url for a in visible] == ["c-own", "a-before"]
