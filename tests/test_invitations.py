"""
Tests for vendor invitations.

Uses Python's unittest module.
Tests token helpers, vendor sessions, the token issuer, the public access
gateway and the vendor item proxy, plus the end-to-end invitation flows
with a controllable clock.
"""

from __future__ import annotations

import os
import shutil
import stat
import tempfile
import unittest
from datetime import timedelta
from pathlib import Path
from unittest.mock import patch

from csfvendor.errors import (
    AssessmentServiceError,
    ConflictError,
    ExpiredError,
    InvalidStateError,
    NotFoundError,
    SessionError,
    TerminalStateError,
    ValidationError,
)
from csfvendor.invitations.gateway import ERROR_EXPIRED, ERROR_INVALID, ERROR_REVOKED
from csfvendor.invitations.issuer import SHADOW_NAME_PREFIX
from csfvendor.invitations.proxy import MAX_NOTES_LENGTH
from csfvendor.invitations.sessions import (
    SESSION_KEY_FILENAME,
    SessionManager,
    derive_key,
    load_or_create_key,
)
from csfvendor.nist import get_statistics
from csfvendor.storage.database import StorageError
from csfvendor.storage.models import (
    AssessmentStatus,
    AssessmentType,
    AuditAction,
    InvitationStatus,
    ItemStatus,
)
from csfvendor.tokens import (
    build_magic_link,
    generate_token,
    hash_token,
    is_well_formed,
    redact_token,
    tokens_match,
)

from support import (
    DEFAULT_ITEMS,
    FakeClock,
    items_by_subcategory,
    make_services,
    seed_vendor_assessment,
)


class TestTokens(unittest.TestCase):
    """Tests for access token helpers."""

    def test_generate_token_is_url_safe_and_unique(self) -> None:
        tokens = {generate_token() for _ in range(50)}

        self.assertEqual(len(tokens), 50)
        for token in tokens:
            self.assertTrue(is_well_formed(token))
            self.assertGreaterEqual(len(token), 43)

    def test_hash_token_is_sha256_hex(self) -> None:
        digest = hash_token("example-token")

        self.assertEqual(len(digest), 64)
        self.assertEqual(digest, hash_token("example-token"))
        self.assertNotEqual(digest, hash_token("example-token2"))

    def test_redact_token(self) -> None:
        token = generate_token()

        self.assertEqual(redact_token(token), f"{token[:8]}...")
        self.assertEqual(redact_token(None), "<none>")
        self.assertEqual(redact_token(""), "<none>")

    def test_is_well_formed(self) -> None:
        self.assertFalse(is_well_formed(None))
        self.assertFalse(is_well_formed(""))
        self.assertFalse(is_well_formed("short"))
        self.assertFalse(is_well_formed("has spaces in it, not a token"))
        self.assertFalse(is_well_formed("../../etc/passwd-but-longer"))

    def test_tokens_match(self) -> None:
        self.assertTrue(tokens_match("abc", "abc"))
        self.assertFalse(tokens_match("abc", "abd"))

    def test_build_magic_link(self) -> None:
        self.assertEqual(
            build_magic_link("https://app.example.com/", "tok"),
            "https://app.example.com/vendor-portal/tok",
        )


class TestSessionManager(unittest.TestCase):
    """Tests for encrypted vendor sessions."""

    def setUp(self) -> None:
        self.temp_dir = tempfile.mkdtemp()
        self.clock = FakeClock()
        self.sessions = SessionManager(derive_key("secret"), ttl_hours=1, clock=self.clock)

    def tearDown(self) -> None:
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_issue_and_open(self) -> None:
        value = self.sessions.issue("the-token", "inv-1")

        session = self.sessions.open(value)

        self.assertEqual(session.token, "the-token")
        self.assertEqual(session.invitation_id, "inv-1")
        self.assertEqual(session.issued_at, self.clock())

    def test_session_value_hides_token(self) -> None:
        token = generate_token()

        value = self.sessions.issue(token, "inv-1")

        self.assertNotIn(token, value)

    def test_expired_session(self) -> None:
        value = self.sessions.issue("the-token", "inv-1")
        self.clock.advance(hours=1, seconds=1)

        with self.assertRaises(SessionError):
            self.sessions.open(value)

    def test_tampered_session(self) -> None:
        value = self.sessions.issue("the-token", "inv-1")
        tampered = value[:-4] + ("AAAA" if not value.endswith("AAAA") else "BBBB")

        with self.assertRaises(SessionError):
            self.sessions.open(tampered)

    def test_missing_session(self) -> None:
        with self.assertRaises(SessionError):
            self.sessions.open(None)

    def test_other_key_rejected(self) -> None:
        value = self.sessions.issue("the-token", "inv-1")
        other = SessionManager(derive_key("other-secret"), clock=self.clock)

        with self.assertRaises(SessionError):
            other.open(value)

    def test_session_error_is_not_found(self) -> None:
        """Test bad sessions surface like unknown invitations."""
        self.assertTrue(issubclass(SessionError, NotFoundError))

    def test_derive_key_is_deterministic(self) -> None:
        self.assertEqual(derive_key("secret"), derive_key("secret"))
        self.assertNotEqual(derive_key("secret"), derive_key("secret2"))

    def test_key_file_created_with_restricted_permissions(self) -> None:
        path = Path(self.temp_dir) / SESSION_KEY_FILENAME

        key = load_or_create_key(path)

        self.assertTrue(path.exists())
        self.assertEqual(load_or_create_key(path), key)
        if os.name == "posix":
            mode = stat.S_IMODE(path.stat().st_mode)
            self.assertEqual(mode, 0o600)

    def test_invalid_key_file(self) -> None:
        path = Path(self.temp_dir) / SESSION_KEY_FILENAME
        path.write_bytes(b"not a key")

        with self.assertRaises(SessionError):
            load_or_create_key(path)

    def test_from_secret_or_file_without_secret(self) -> None:
        manager = SessionManager.from_secret_or_file(Path(self.temp_dir), secret="")
        value = manager.issue("the-token", "inv-1")

        self.assertTrue((Path(self.temp_dir) / SESSION_KEY_FILENAME).exists())
        again = SessionManager.from_secret_or_file(Path(self.temp_dir), secret="")
        self.assertEqual(again.open(value).token, "the-token")


class InvitationTestCase(unittest.TestCase):
    """Base class wiring services over a temporary directory."""

    def setUp(self) -> None:
        self.temp_dir = tempfile.mkdtemp()
        self.clock = FakeClock()
        self.services = make_services(self.temp_dir, self.clock)
        self.assessment = seed_vendor_assessment(self.services)

    def tearDown(self) -> None:
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def issue(self, **kwargs):
        return self.services.issuer.issue(
            self.assessment.id, "security@vendor.example", **kwargs
        )

    def actions(self, invitation_id: str) -> list[AuditAction]:
        return [e.action for e in self.services.audit.list_events(invitation_id)]


class TestTokenIssuer(InvitationTestCase):
    """Tests for issuing and revoking invitations."""

    def test_issue_returns_link_and_token(self) -> None:
        issued = self.issue(vendor_contact_name="Sam Vendor")

        self.assertTrue(is_well_formed(issued.access_token))
        self.assertEqual(
            issued.magic_link,
            f"https://app.example.com/vendor-portal/{issued.access_token}",
        )
        self.assertEqual(issued.expires_at, self.clock() + timedelta(days=7))
        self.assertEqual(issued.vendor_email, "security@vendor.example")

    def test_issue_persists_pending_invitation(self) -> None:
        issued = self.issue()

        invitation = self.services.invitations.get(issued.invitation_id)

        self.assertEqual(invitation.status, InvitationStatus.PENDING)
        self.assertEqual(invitation.organization_assessment_id, self.assessment.id)
        self.assertEqual(invitation.vendor_id, "vendor-1")
        self.assertEqual(invitation.organization_id, "org-1")
        self.assertEqual(invitation.token_hash, hash_token(issued.access_token))

    def test_issue_custom_expiry(self) -> None:
        issued = self.issue(expiry_days=30)

        self.assertEqual(issued.expires_at, self.clock() + timedelta(days=30))

    def test_issue_invalid_expiry(self) -> None:
        for value in (0, -1, "7", 1.5, True):
            with self.subTest(value=value):
                with self.assertRaises(ValidationError):
                    self.issue(expiry_days=value)

    def test_issue_invalid_email(self) -> None:
        for email in ("", "   ", "not-an-email", "a@b"):
            with self.subTest(email=email):
                with self.assertRaises(ValidationError):
                    self.services.issuer.issue(self.assessment.id, email)

    def test_issue_unknown_assessment(self) -> None:
        with self.assertRaises(NotFoundError):
            self.services.issuer.issue("missing", "security@vendor.example")

    def test_issue_requires_vendor_assessment(self) -> None:
        own = seed_vendor_assessment(
            self.services, assessment_type=AssessmentType.ORGANIZATION, vendor_id=None
        )

        with self.assertRaises(ValidationError):
            self.services.issuer.issue(own.id, "security@vendor.example")

    def test_issue_requires_vendor_id(self) -> None:
        orphan = seed_vendor_assessment(self.services, vendor_id=None)

        with self.assertRaises(ValidationError):
            self.services.issuer.issue(orphan.id, "security@vendor.example")

    def test_issue_creates_linked_shadow_assessment(self) -> None:
        issued = self.issue()
        invitation = self.services.invitations.get(issued.invitation_id)

        shadow = self.services.assessments.get_assessment(
            invitation.vendor_self_assessment_id
        )
        org = self.services.assessments.get_assessment(self.assessment.id)

        self.assertEqual(shadow.assessment_type, AssessmentType.VENDOR)
        self.assertEqual(shadow.status, AssessmentStatus.DRAFT)
        self.assertTrue(shadow.name.startswith(SHADOW_NAME_PREFIX))
        self.assertEqual(shadow.linked_assessment_id, org.id)
        self.assertEqual(org.linked_assessment_id, shadow.id)

    def test_shadow_items_mirror_organization_items(self) -> None:
        issued = self.issue()
        invitation = self.services.invitations.get(issued.invitation_id)

        items = self.services.assessments.list_items(invitation.vendor_self_assessment_id)

        self.assertEqual(
            sorted(i.subcategory_id for i in items), sorted(DEFAULT_ITEMS)
        )
        self.assertTrue(all(i.status == ItemStatus.NOT_ASSESSED for i in items))

    def test_shadow_uses_full_catalog_without_items(self) -> None:
        empty = seed_vendor_assessment(self.services, items={})

        issued = self.services.issuer.issue(empty.id, "security@vendor.example")
        invitation = self.services.invitations.get(issued.invitation_id)
        items = self.services.assessments.list_items(invitation.vendor_self_assessment_id)

        self.assertEqual(len(items), get_statistics()["subcategories"])

    def test_second_invitation_conflicts(self) -> None:
        self.issue()

        with self.assertRaises(ConflictError):
            self.issue()

    def test_concurrent_issue_leaves_no_orphan_shadow(self) -> None:
        """Test the losing issue writes nothing when the active check is stale."""
        first = self.issue()
        first_shadow = self.services.invitations.get(
            first.invitation_id
        ).vendor_self_assessment_id
        before = self.services.database.get_statistics()

        with patch.object(
            self.services.invitations, "get_active_for_assessment", return_value=None
        ):
            with self.assertRaises(ConflictError):
                self.issue()

        after = self.services.database.get_statistics()
        self.assertEqual(after["assessments"], before["assessments"])
        self.assertEqual(after["assessment_items"], before["assessment_items"])
        self.assertEqual(after["vendor_invitations"], before["vendor_invitations"])
        org = self.services.assessments.get_assessment(self.assessment.id)
        self.assertEqual(org.linked_assessment_id, first_shadow)

    def test_issue_revoked_when_shadow_cannot_be_created(self) -> None:
        with patch.object(
            self.services.assessments,
            "create_items",
            side_effect=StorageError("disk full"),
        ):
            with self.assertRaises(StorageError):
                self.issue()

        invitation = self.services.invitations.get_by_assessment(self.assessment.id)
        self.assertEqual(invitation.status, InvitationStatus.REVOKED)
        self.assertEqual(invitation.revoked_by, "system")
        self.assertIsNone(
            self.services.invitations.get_active_for_assessment(self.assessment.id)
        )

        issued = self.issue()
        self.assertEqual(
            self.services.invitations.get_by_assessment(self.assessment.id).id,
            issued.invitation_id,
        )

    def test_reissue_after_expiry(self) -> None:
        first = self.issue(expiry_days=1)
        self.clock.advance(days=2)

        second = self.issue()

        self.assertNotEqual(first.invitation_id, second.invitation_id)
        latest = self.services.invitations.get_by_assessment(self.assessment.id)
        self.assertEqual(latest.id, second.invitation_id)

    def test_reissue_fresh_policy_creates_new_shadow(self) -> None:
        first = self.issue()
        self.services.issuer.revoke(first.invitation_id)

        second = self.issue()

        shadow_ids = {
            self.services.invitations.get(i).vendor_self_assessment_id
            for i in (first.invitation_id, second.invitation_id)
        }
        self.assertEqual(len(shadow_ids), 2)

    def test_reissue_reuse_policy_keeps_answers(self) -> None:
        self.services.issuer.reissue_policy = "reuse"
        first = self.issue()
        self.services.gateway.validate(first.access_token)
        shadow_id = self.services.invitations.get(first.invitation_id).vendor_self_assessment_id
        item = self.services.assessments.list_items(shadow_id)[0]
        self.services.proxy.update_item(
            first.access_token, item.id, {"status": "compliant"}
        )
        self.services.proxy.complete(first.access_token)

        second = self.issue()

        reissued = self.services.invitations.get(second.invitation_id)
        self.assertEqual(reissued.vendor_self_assessment_id, shadow_id)
        shadow = self.services.assessments.get_assessment(shadow_id)
        self.assertEqual(shadow.status, AssessmentStatus.IN_PROGRESS)
        self.assertEqual(
            self.services.assessments.get_item(item.id).status, ItemStatus.COMPLIANT
        )

    def test_issue_audited_without_token(self) -> None:
        issued = self.issue()

        events = self.services.audit.list_events(issued.invitation_id)

        self.assertEqual([e.action for e in events], [AuditAction.INVITATION_ISSUED])
        self.assertNotIn(issued.access_token, str(events[0].metadata))

    def test_token_never_logged_in_full(self) -> None:
        with self.assertLogs("csfvendor", level="DEBUG") as logs:
            issued = self.issue()
            self.services.gateway.validate(issued.access_token)
            self.services.proxy.list_items(issued.access_token)
            self.services.proxy.complete(issued.access_token)

        for line in logs.output:
            self.assertNotIn(issued.access_token, line)

    def test_revoke(self) -> None:
        issued = self.issue()

        revoked = self.services.issuer.revoke(issued.invitation_id, revoked_by="admin")

        self.assertEqual(revoked.status, InvitationStatus.REVOKED)
        self.assertEqual(revoked.revoked_by, "admin")
        self.assertIn(AuditAction.TOKEN_REVOKED, self.actions(issued.invitation_id))

    def test_revoke_twice(self) -> None:
        issued = self.issue()
        self.services.issuer.revoke(issued.invitation_id)

        with self.assertRaises(TerminalStateError):
            self.services.issuer.revoke(issued.invitation_id)

    def test_revoke_unknown(self) -> None:
        with self.assertRaises(NotFoundError):
            self.services.issuer.revoke("missing")


class TestPublicAccessGateway(InvitationTestCase):
    """Tests for token validation and vendor sessions."""

    def test_validate_first_access(self) -> None:
        issued = self.issue(vendor_contact_name="Sam Vendor", message="Thanks!")

        result = self.services.gateway.validate(issued.access_token, ip_address="203.0.113.9")

        self.assertTrue(result.valid)
        self.assertFalse(result.read_only)
        self.assertEqual(result.vendor_contact_name, "Sam Vendor")
        self.assertEqual(result.invitation.status, InvitationStatus.ACCESSED)
        self.assertEqual(result.assessment.status, AssessmentStatus.IN_PROGRESS)
        self.assertIsNotNone(result.session_token)

        data = result.to_dict(now=self.clock())
        self.assertEqual(data["invitation"]["message"], "Thanks!")
        self.assertNotIn(issued.access_token, str(data))

        events = self.services.audit.list_events(issued.invitation_id)
        self.assertEqual(events[-1].action, AuditAction.TOKEN_VALIDATED)
        self.assertEqual(events[-1].ip_address, "203.0.113.9")

    def test_validate_again_keeps_accessed(self) -> None:
        issued = self.issue()
        self.services.gateway.validate(issued.access_token)
        self.clock.advance(hours=1)

        result = self.services.gateway.validate(issued.access_token)

        self.assertTrue(result.valid)
        invitation = self.services.invitations.get(issued.invitation_id)
        self.assertEqual(invitation.last_accessed_at, self.clock())

    def test_validate_unknown_token(self) -> None:
        result = self.services.gateway.validate(generate_token())

        self.assertFalse(result.valid)
        self.assertEqual(result.error, ERROR_INVALID)
        self.assertEqual(result.to_dict(), {"valid": False, "error": ERROR_INVALID})

    def test_validate_malformed_token(self) -> None:
        result = self.services.gateway.validate("not a token")

        self.assertFalse(result.valid)
        self.assertEqual(result.error, ERROR_INVALID)

    def test_validate_expired(self) -> None:
        issued = self.issue(expiry_days=1)
        self.clock.advance(days=1, minutes=1)

        result = self.services.gateway.validate(issued.access_token)

        self.assertFalse(result.valid)
        self.assertEqual(result.error, ERROR_EXPIRED)
        self.assertIn(AuditAction.TOKEN_EXPIRED, self.actions(issued.invitation_id))

    def test_validate_revoked(self) -> None:
        issued = self.issue()
        self.services.issuer.revoke(issued.invitation_id)

        result = self.services.gateway.validate(issued.access_token)

        self.assertFalse(result.valid)
        self.assertEqual(result.error, ERROR_REVOKED)

    def test_validate_completed_is_read_only(self) -> None:
        issued = self.issue()
        self.services.proxy.complete(issued.access_token)
        self.clock.advance(days=6)

        result = self.services.gateway.validate(issued.access_token)

        self.assertTrue(result.valid)
        self.assertTrue(result.read_only)
        self.assertEqual(result.invitation.status, InvitationStatus.COMPLETED)

    def test_validate_storage_failure_is_invalid(self) -> None:
        issued = self.issue()

        with patch.object(
            self.services.invitations, "get_by_token", side_effect=StorageError("disk")
        ):
            result = self.services.gateway.validate(issued.access_token)

        self.assertFalse(result.valid)
        self.assertEqual(result.error, ERROR_INVALID)

    def test_validate_race_with_revoke(self) -> None:
        """Test a revoke landing between read and transition reads as revoked."""
        issued = self.issue()
        gateway = self.services.gateway
        real_transition = self.services.invitations.transition

        def revoke_first(token, event, now=None, actor=None):
            self.services.issuer.revoke(issued.invitation_id)
            return real_transition(token, event, now=now, actor=actor)

        with patch.object(self.services.invitations, "transition", side_effect=revoke_first):
            result = gateway.validate(issued.access_token)

        self.assertFalse(result.valid)
        self.assertEqual(result.error, ERROR_REVOKED)

    def test_resolve_session(self) -> None:
        issued = self.issue()
        result = self.services.gateway.validate(issued.access_token)

        token = self.services.gateway.resolve_session(result.session_token)

        self.assertEqual(token, issued.access_token)

    def test_authorize(self) -> None:
        issued = self.issue()
        session = self.services.gateway.validate(issued.access_token).session_token
        gateway = self.services.gateway

        self.assertEqual(gateway.authorize(session=session), issued.access_token)
        self.assertEqual(
            gateway.authorize(token=issued.access_token, session=session),
            issued.access_token,
        )
        self.assertEqual(gateway.authorize(token="raw"), "raw")
        with self.assertRaises(SessionError):
            gateway.authorize()
        with self.assertRaises(SessionError):
            gateway.authorize(token=generate_token(), session=session)

    def test_session_expires(self) -> None:
        issued = self.issue()
        session = self.services.gateway.validate(issued.access_token).session_token
        self.clock.advance(hours=25)

        with self.assertRaises(SessionError):
            self.services.gateway.resolve_session(session)


class TestVendorItemProxy(InvitationTestCase):
    """Tests for vendor-scoped item access."""

    def setUp(self) -> None:
        super().setUp()
        self.issued = self.issue()
        self.token = self.issued.access_token

    def open_link(self) -> None:
        self.services.gateway.validate(self.token)

    def vendor_items(self) -> dict[str, dict]:
        return items_by_subcategory(self.services.proxy.list_items(self.token))

    def test_list_items_enriched(self) -> None:
        items = self.vendor_items()

        self.assertEqual(set(items), set(DEFAULT_ITEMS))
        item = items["PR.AA-01"]
        self.assertEqual(item["status"], "not_assessed")
        self.assertEqual(item["subcategory"]["id"], "PR.AA-01")
        self.assertEqual(item["category"]["id"], "PR.AA")
        self.assertEqual(item["function"]["id"], "PR")

    def test_list_items_by_function(self) -> None:
        items = self.services.proxy.list_items(self.token, function_id="PR")

        self.assertEqual([i["subcategory_id"] for i in items], ["PR.AA-01"])

    def test_list_items_unknown_token(self) -> None:
        with self.assertRaises(NotFoundError):
            self.services.proxy.list_items(generate_token())

    def test_list_items_expired(self) -> None:
        self.clock.advance(days=8)

        with self.assertRaises(ExpiredError):
            self.services.proxy.list_items(self.token)

    def test_list_items_revoked(self) -> None:
        self.services.issuer.revoke(self.issued.invitation_id)

        with self.assertRaises(TerminalStateError):
            self.services.proxy.list_items(self.token)

    def test_list_items_after_completion(self) -> None:
        self.services.proxy.complete(self.token)

        self.assertEqual(len(self.vendor_items()), len(DEFAULT_ITEMS))

    def test_update_requires_opened_link(self) -> None:
        item = self.vendor_items()["PR.AA-01"]

        with self.assertRaises(InvalidStateError):
            self.services.proxy.update_item(self.token, item["id"], {"status": "compliant"})

    def test_update_item(self) -> None:
        self.open_link()
        item = self.vendor_items()["PR.AA-01"]

        updated = self.services.proxy.update_item(
            self.token,
            item["id"],
            {"status": "partial", "notes": "SSO for most apps"},
            ip_address="203.0.113.9",
        )

        self.assertEqual(updated["status"], "partial")
        self.assertEqual(updated["notes"], "SSO for most apps")
        events = self.services.audit.list_events(
            self.issued.invitation_id, AuditAction.STATUS_UPDATED
        )
        self.assertEqual(len(events), 1)
        self.assertEqual(events[0].metadata["previous_status"], "not_assessed")
        self.assertEqual(events[0].metadata["status"], "partial")

    def test_update_item_of_other_assessment(self) -> None:
        """Test organization items are unreachable with a vendor token."""
        self.open_link()
        org_item = self.services.assessments.list_items(self.assessment.id)[0]

        with self.assertRaises(NotFoundError):
            self.services.proxy.update_item(
                self.token, org_item.id, {"status": "compliant"}
            )
        self.assertEqual(
            self.services.assessments.get_item(org_item.id).status, org_item.status
        )

    def test_update_item_unknown(self) -> None:
        self.open_link()

        with self.assertRaises(NotFoundError):
            self.services.proxy.update_item(self.token, "missing", {"status": "compliant"})

    def test_update_item_validation(self) -> None:
        self.open_link()
        item_id = self.vendor_items()["PR.AA-01"]["id"]

        for changes in (
            {"status": "mostly"},
            {},
            {"notes": "no status"},
            {"status": "compliant", "subcategory_id": "GV.OC-01"},
            {"status": "compliant", "notes": 42},
            {"status": "compliant", "notes": "x" * (MAX_NOTES_LENGTH + 1)},
            ["status", "compliant"],
        ):
            with self.subTest(changes=changes):
                with self.assertRaises(ValidationError):
                    self.services.proxy.update_item(self.token, item_id, changes)

    def test_update_after_expiry(self) -> None:
        self.open_link()
        item_id = self.vendor_items()["PR.AA-01"]["id"]
        self.clock.advance(days=8)

        with self.assertRaises(ExpiredError):
            self.services.proxy.update_item(self.token, item_id, {"status": "compliant"})

    def test_update_after_completion(self) -> None:
        self.open_link()
        item_id = self.vendor_items()["PR.AA-01"]["id"]
        self.services.proxy.complete(self.token)

        with self.assertRaises(TerminalStateError):
            self.services.proxy.update_item(self.token, item_id, {"status": "compliant"})

    def test_update_undone_when_completed_during_write(self) -> None:
        self.open_link()
        item_id = self.vendor_items()["PR.AA-01"]["id"]
        real_get_item = self.services.assessments.get_item
        completed: list[bool] = []

        def get_item_then_complete(requested_id):
            item = real_get_item(requested_id)
            if not completed:
                completed.append(True)
                self.services.proxy.complete(self.token)
            return item

        with patch.object(
            self.services.assessments, "get_item", side_effect=get_item_then_complete
        ):
            with self.assertRaises(TerminalStateError):
                self.services.proxy.update_item(
                    self.token, item_id, {"status": "compliant"}
                )

        invitation = self.services.invitations.get(self.issued.invitation_id)
        self.assertEqual(invitation.status, InvitationStatus.COMPLETED)
        item = self.services.assessments.get_item(item_id)
        self.assertEqual(item.status, ItemStatus.NOT_ASSESSED)
        self.assertNotIn(AuditAction.STATUS_UPDATED, self.actions(self.issued.invitation_id))

    def test_update_undone_when_revoked_during_write(self) -> None:
        self.open_link()
        item_id = self.vendor_items()["PR.AA-01"]["id"]
        self.services.proxy.update_item(
            self.token, item_id, {"status": "partial", "notes": "MFA for admins"}
        )
        real_update_item = self.services.assessments.update_item
        revoked: list[bool] = []

        def revoke_then_update(*args, **kwargs):
            if not revoked:
                revoked.append(True)
                self.services.issuer.revoke(self.issued.invitation_id)
            return real_update_item(*args, **kwargs)

        with patch.object(
            self.services.assessments, "update_item", side_effect=revoke_then_update
        ):
            with self.assertRaises(TerminalStateError):
                self.services.proxy.update_item(
                    self.token, item_id, {"status": "compliant", "notes": "all users"}
                )

        item = self.services.assessments.get_item(item_id)
        self.assertEqual(item.status, ItemStatus.PARTIAL)
        self.assertEqual(item.notes, "MFA for admins")

    def test_complete(self) -> None:
        self.open_link()
        self.clock.advance(hours=2)

        completed_at = self.services.proxy.complete(self.token, ip_address="203.0.113.9")

        self.assertEqual(completed_at, self.clock())
        invitation = self.services.invitations.get(self.issued.invitation_id)
        self.assertEqual(invitation.status, InvitationStatus.COMPLETED)
        shadow = self.services.assessments.get_assessment(invitation.vendor_self_assessment_id)
        self.assertEqual(shadow.status, AssessmentStatus.COMPLETED)
        self.assertEqual(shadow.completed_at, completed_at)
        self.assertIn(
            AuditAction.ASSESSMENT_SUBMITTED, self.actions(self.issued.invitation_id)
        )

    def test_complete_twice(self) -> None:
        self.services.proxy.complete(self.token)

        with self.assertRaises(TerminalStateError):
            self.services.proxy.complete(self.token)

    def test_complete_expired(self) -> None:
        self.clock.advance(days=8)

        with self.assertRaises(ExpiredError):
            self.services.proxy.complete(self.token)

    def test_complete_survives_shadow_update_failure(self) -> None:
        with patch.object(
            self.services.assessments,
            "update_assessment_status",
            side_effect=AssessmentServiceError("down"),
        ):
            self.services.proxy.complete(self.token)

        invitation = self.services.invitations.get(self.issued.invitation_id)
        self.assertEqual(invitation.status, InvitationStatus.COMPLETED)


class TestInvitationScenarios(InvitationTestCase):
    """End-to-end invitation flows with a controllable clock."""

    def test_validate_within_expiry(self) -> None:
        issued = self.issue(expiry_days=7)
        self.clock.advance(days=6, hours=23)

        result = self.services.gateway.validate(issued.access_token)

        self.assertTrue(result.valid)
        invitation = self.services.invitations.get(issued.invitation_id)
        self.assertEqual(invitation.status, InvitationStatus.ACCESSED)

    def test_validate_after_expiry_keeps_stored_status(self) -> None:
        issued = self.issue(expiry_days=7)
        self.clock.advance(days=7, seconds=1)

        result = self.services.gateway.validate(issued.access_token)

        self.assertFalse(result.valid)
        self.assertEqual(result.error, "expired")
        invitation = self.services.invitations.get(issued.invitation_id)
        self.assertEqual(invitation.status, InvitationStatus.PENDING)

    def test_completed_invitation_expires(self) -> None:
        issued = self.issue(expiry_days=7)
        self.services.gateway.validate(issued.access_token)
        self.services.proxy.complete(issued.access_token)
        self.clock.advance(days=8)

        result = self.services.gateway.validate(issued.access_token)

        self.assertFalse(result.valid)
        self.assertEqual(result.error, ERROR_EXPIRED)
        self.assertIsNone(result.session_token)
        invitation = self.services.invitations.get(issued.invitation_id)
        self.assertEqual(invitation.status, InvitationStatus.COMPLETED)
        with self.assertRaises(ExpiredError):
            self.services.proxy.list_items(issued.access_token)

    def test_revoked_invitation_expires(self) -> None:
        issued = self.issue(expiry_days=7)
        self.services.issuer.revoke(issued.invitation_id, revoked_by="admin")
        self.clock.advance(days=8)

        result = self.services.gateway.validate(issued.access_token)

        self.assertFalse(result.valid)
        self.assertEqual(result.error, ERROR_EXPIRED)
        invitation = self.services.invitations.get(issued.invitation_id)
        self.assertEqual(invitation.status, InvitationStatus.REVOKED)

    def test_completed_comparison_stays_final_after_expiry(self) -> None:
        issued = self.issue(expiry_days=7)
        self.services.gateway.validate(issued.access_token)
        self.services.proxy.complete(issued.access_token)
        self.clock.advance(days=8)

        result = self.services.comparison.compare(self.assessment.id)

        self.assertTrue(result.is_final)
        self.assertEqual(result.invitation_status, InvitationStatus.EXPIRED)

    def test_revoked_pending_invitation(self) -> None:
        issued = self.issue()
        self.services.issuer.revoke(issued.invitation_id, revoked_by="admin")

        result = self.services.gateway.validate(issued.access_token)

        self.assertFalse(result.valid)
        self.assertEqual(result.error, "revoked")

    def test_answer_and_compare(self) -> None:
        issued = self.issue()
        token = issued.access_token
        self.services.gateway.validate(token)

        answers = {
            "GV.OC-01": "compliant",
            "PR.AA-01": "compliant",
            "RS.MA-01": "not_applicable",
            "ID.AM-01": "compliant",
            "DE.CM-01": "partial",
        }
        items = items_by_subcategory(self.services.proxy.list_items(token))
        for subcategory_id, status in answers.items():
            self.services.proxy.update_item(
                token, items[subcategory_id]["id"], {"status": status}
            )
        self.services.proxy.complete(token)

        result = self.services.comparison.compare(self.assessment.id)

        self.assertTrue(result.is_final)
        self.assertEqual(result.counts.matches, 3)
        self.assertEqual(result.counts.differences, 2)
        self.assertEqual(result.counts.not_assessed, 0)


if __name__ == "__main__":
    unittest.main()
