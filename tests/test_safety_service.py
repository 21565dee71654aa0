"""Tests for the clean safety guard."""

import pytest

from sslagent.exceptions import TransportError
from sslagent.services.parser_service import CertificateParser
from sslagent.services.safety_service import SafetyGuard


@pytest.mark.unit
class TestSafetyGuard:
    """Test when cleaning local credentials is allowed."""

    def test_allows_regular_agent_without_asking_ca(self, fake_ca):
        guard = SafetyGuard("ca.test", fake_ca)

        decision = guard.may_clean("agent1")

        assert decision.allowed
        assert decision.existing is None
        assert fake_ca.calls == []

    def test_allows_ca_server_without_certificate(self, fake_ca):
        guard = SafetyGuard("ca.test", fake_ca)

        decision = guard.may_clean("ca.test")

        assert decision.allowed
        assert fake_ca.calls == ["fetch_certificate:ca.test"]

    def test_denies_ca_server_with_certificate(self, fake_ca, new_key):
        cert = fake_ca.issue(new_key().public_key(), "ca.test")
        fake_ca.signed["ca.test"] = cert
        guard = SafetyGuard("ca.test", fake_ca)

        decision = guard.may_clean("ca.test")

        assert not decision.allowed
        assert decision.existing.certname == "ca.test"
        assert decision.existing.fingerprint_sha256 == CertificateParser.fingerprint(cert)
        assert decision.existing.serial_number == format(cert.serial_number, "X")

    def test_unreachable_ca_propagates(self, fake_ca, unreachable_error):
        fake_ca.error = unreachable_error
        guard = SafetyGuard("ca.test", fake_ca)

        with pytest.raises(TransportError):
            guard.may_clean("ca.test")
