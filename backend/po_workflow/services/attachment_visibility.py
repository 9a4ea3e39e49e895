"""
Attachment Visibility

Decides which of a purchase order's attachments a caller may see.

- Elevated roles (managers, finance, general manager, auditor) see everything
- Procurement officers see what was uploaded before the PO was last routed to
  procurement, plus their own uploads
- Everyone else sees only their own uploads

Uploader and upload time come from the attachment rows. Rows written before
that metadata existed are attributed by parsing the storage URL, which
follows .../v{unix_ts}/{folder}/{uploader_id}/{po_number}/{file}.
"""
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from po_workflow.core.status_config import ATTACHMENT_ELEVATED_ROLES, UserRole
from po_workflow.logging_config import get_logger

logger = get_logger(__name__)

_VERSION_SEGMENT = re.compile(r"^v(\d{9,11})$")


@dataclass(frozen=True)
class ParsedAttachmentUrl:
    """Fields recovered from a storage URL"""
    uploaded_at: datetime
    folder: str
    uploaded_by: str
    po_number: str
    filename: str


@dataclass(frozen=True)
class AttachmentRef:
    """An attachment with whatever ownership information is known"""
    url: str
    uploaded_by: Optional[str] = None
    uploaded_at: Optional[datetime] = None


def parse_attachment_url(url: str) -> Optional[ParsedAttachmentUrl]:
    """
    Recover uploader and upload time from a storage URL.

    Returns None when the URL does not follow the storage convention.
    """
    if not url:
        return None
    path = url.split("?", 1)[0].split("#", 1)[0]
    segments = [s for s in path.split("/") if s]

    for index, segment in enumerate(segments):
        match = _VERSION_SEGMENT.match(segment)
        if not match:
            continue
        rest = segments[index + 1:]
        if len(rest) < 4:
            return None
        uploader, po_number = rest[-3], rest[-2]
        uploaded_at = datetime.fromtimestamp(int(match.group(1)), tz=timezone.utc).replace(tzinfo=None)
        return ParsedAttachmentUrl(
            uploaded_at=uploaded_at,
            folder="/".join(rest[:-3]),
            uploaded_by=uploader,
            po_number=po_number,
            filename=rest[-1],
        )
    return None


def attachment_refs(attachments) -> List[AttachmentRef]:
    """
    Build AttachmentRefs from attachment rows.

    Stored metadata wins; missing fields are filled from the URL when it can
    be parsed.
    """
    refs = []
    for attachment in attachments:
        uploaded_by = attachment.uploaded_by
        uploaded_at = attachment.uploaded_at
        if uploaded_by is None or uploaded_at is None:
            parsed = parse_attachment_url(attachment.url)
            if parsed is not None:
                uploaded_by = uploaded_by or parsed.uploaded_by
                uploaded_at = uploaded_at or parsed.uploaded_at
        refs.append(AttachmentRef(url=attachment.url, uploaded_by=uploaded_by, uploaded_at=uploaded_at))
    return refs


def filter_visible_attachments(
    attachments: Iterable[AttachmentRef],
    role: UserRole,
    user_id: str,
    procurement_routed_at: Optional[datetime] = None,
) -> List[AttachmentRef]:
    """
    Subset of attachments visible to a caller.

    Args:
        attachments: Attachments in display order
        role: Caller role
        user_id: Caller ID
        procurement_routed_at: Time of the latest routing to procurement
            (only used for procurement officers)
    """
    attachments = list(attachments)

    if role in ATTACHMENT_ELEVATED_ROLES:
        return attachments

    if role == UserRole.PROCUREMENT_OFFICER:
        if procurement_routed_at is None:
            # No routing entry: everything is visible. Kept for compatibility, flagged for review
            logger.warning(
                "No procurement routing found, showing all attachments to procurement",
                extra={"user_id": user_id, "attachment_count": len(attachments)},
            )
            return attachments
        return [
            a for a in attachments
            if a.uploaded_by == user_id
            or (a.uploaded_at is not None and a.uploaded_at < procurement_routed_at)
        ]

    return [a for a in attachments if a.uploaded_by is not None and a.uploaded_by == user_id]
