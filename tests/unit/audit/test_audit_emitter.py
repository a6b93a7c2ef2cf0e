"""
Tests unitaires AuditEmitter

Chaque transition produit un événement signé; aucun secret n'y figure.
"""

import dataclasses
from unittest.mock import Mock

import pytest

from gatekeeper.audit import (
    AuditEmitter,
    AuditEmitterError,
    AuditEvent,
    AuditEventType,
    AuditOutcome,
    IAuditEmitter,
)
from gatekeeper.core import CryptoProvider
from gatekeeper.logging import StructuredLogger


# ══════════════════════════════════════════════════════════════════════════════
# FIXTURES
# ══════════════════════════════════════════════════════════════════════════════


@pytest.fixture
def crypto_provider():
    return CryptoProvider(secret_key=b"a" * 32)


@pytest.fixture
def audit_emitter(crypto_provider):
    return AuditEmitter(crypto_provider)


# ══════════════════════════════════════════════════════════════════════════════
# TESTS INTERFACE
# ══════════════════════════════════════════════════════════════════════════════


class TestAuditEmitterInterface:
    def test_implements_interface(self, audit_emitter):
        assert isinstance(audit_emitter, IAuditEmitter)

    def test_requires_crypto_provider(self):
        with pytest.raises(TypeError):
            AuditEmitter()


# ══════════════════════════════════════════════════════════════════════════════
# TESTS SIGNATURE
# ══════════════════════════════════════════════════════════════════════════════


class TestSignedEvents:
    @pytest.mark.asyncio
    async def test_emit_event_signed_and_hashed(self, audit_emitter):
        event = await audit_emitter.emit_event(
            AuditEventType.CREDENTIALS_ACCEPTED,
            "u-1",
            "AwaitingCredentials->CredentialsValid",
        )

        assert isinstance(event, AuditEvent)
        assert event.signature
        assert len(event.hash_value) == 96
        assert event.outcome is AuditOutcome.SUCCESS
        assert audit_emitter.verify_event_signature(event) is True

    @pytest.mark.asyncio
    async def test_tampered_event_fails_verification(self, audit_emitter):
        event = await audit_emitter.emit_event(AuditEventType.SESSION_ISSUED, "u-1", "issue")
        tampered = dataclasses.replace(event, principal_id="u-2")

        assert audit_emitter.verify_event_signature(tampered) is False

    @pytest.mark.asyncio
    async def test_unsigned_event_fails_verification(self, audit_emitter):
        event = await audit_emitter.emit_event(AuditEventType.SESSION_ISSUED, "u-1", "issue")

        assert audit_emitter.verify_event_signature(dataclasses.replace(event, signature=None)) is False

    @pytest.mark.asyncio
    async def test_event_is_immutable(self, audit_emitter):
        event = await audit_emitter.emit_event(AuditEventType.SESSION_ISSUED, "u-1", "issue")

        with pytest.raises(dataclasses.FrozenInstanceError):
            event.principal_id = "u-2"

    @pytest.mark.asyncio
    async def test_signing_uses_crypto_provider(self):
        provider = Mock()
        provider.sign.return_value = b"signature"
        provider.hash.return_value = "h" * 96

        event = await AuditEmitter(provider).emit_event(AuditEventType.OTP_ISSUED, "u-1", "issue")

        provider.sign.assert_called_once()
        assert event.hash_value == "h" * 96


# ══════════════════════════════════════════════════════════════════════════════
# TESTS CONTENU
# ══════════════════════════════════════════════════════════════════════════════


class TestEventContent:
    @pytest.mark.asyncio
    async def test_secrets_masked_in_metadata(self, audit_emitter):
        event = await audit_emitter.emit_event(
            AuditEventType.OTP_REJECTED,
            "u-1",
            "verify",
            AuditOutcome.FAILURE,
            {"code": "493817", "new_password": "Abc12345!", "reason": "OTPMismatch"},
        )

        assert event.metadata["code"] == "***MASKED***"
        assert event.metadata["new_password"] == "***MASKED***"
        assert event.metadata["reason"] == "OTPMismatch"

    @pytest.mark.asyncio
    async def test_metadata_sanitized(self, audit_emitter):
        event = await audit_emitter.emit_event(
            AuditEventType.SESSION_REVOKED,
            "u-1",
            "revoke",
            metadata={"reason": "x" * 2000, "obj": object(), "items": [1, "a", object()]},
        )

        assert len(event.metadata["reason"]) == 1000
        assert "obj" not in event.metadata
        assert event.metadata["items"] == [1, "a"]

    @pytest.mark.asyncio
    async def test_client_context_recorded(self, audit_emitter):
        event = await audit_emitter.emit_event(
            AuditEventType.LOGIN_COMPLETED,
            "u-1",
            "OTPVerified->Authenticated",
            ip_address="10.0.0.1",
            user_agent="pytest",
        )

        assert event.ip_address == "10.0.0.1"
        assert event.user_agent == "pytest"

    @pytest.mark.asyncio
    async def test_missing_principal_rejected(self, audit_emitter):
        with pytest.raises(AuditEmitterError):
            await audit_emitter.emit_event(AuditEventType.SESSION_ISSUED, "", "issue")

    @pytest.mark.asyncio
    async def test_missing_transition_rejected(self, audit_emitter):
        with pytest.raises(AuditEmitterError):
            await audit_emitter.emit_event(AuditEventType.SESSION_ISSUED, "u-1", "")

    @pytest.mark.asyncio
    async def test_invalid_event_type_rejected(self, audit_emitter):
        with pytest.raises(AuditEmitterError):
            await audit_emitter.emit_event("login", "u-1", "issue")


class TestEventTrail:
    @pytest.mark.asyncio
    async def test_filter_by_principal_and_type(self, audit_emitter):
        await audit_emitter.emit_event(AuditEventType.SESSION_ISSUED, "u-1", "issue")
        await audit_emitter.emit_event(AuditEventType.SESSION_REVOKED, "u-1", "revoke")
        await audit_emitter.emit_event(AuditEventType.SESSION_ISSUED, "u-2", "issue")

        assert len(audit_emitter.get_events(principal_id="u-1")) == 2
        assert len(audit_emitter.get_events(event_types=[AuditEventType.SESSION_ISSUED])) == 2
        assert len(audit_emitter.get_events("u-2", [AuditEventType.SESSION_REVOKED])) == 0

    @pytest.mark.asyncio
    async def test_trail_is_bounded(self, crypto_provider):
        emitter = AuditEmitter(crypto_provider, max_events=2)
        for _ in range(3):
            await emitter.emit_event(AuditEventType.SESSION_ISSUED, "u-1", "issue")

        assert len(emitter.get_events()) == 2

    @pytest.mark.asyncio
    async def test_events_logged(self, crypto_provider):
        logger = StructuredLogger("audit", output_handler=None)
        emitter = AuditEmitter(crypto_provider, logger=logger)

        await emitter.emit_event(AuditEventType.PASSWORD_ROTATED, "u-1", "rotate")

        entries = logger.get_entries()
        assert entries[0].message == "audit password_rotated"
        assert entries[0].extra["transition"] == "rotate"
