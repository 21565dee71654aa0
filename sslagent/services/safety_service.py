"""Safety checks guarding destructive actions."""

import logging

from sslagent.models.verification import CleanDecision
from sslagent.services.host_service import CATransport
from sslagent.services.parser_service import CertificateParser

logger = logging.getLogger("sslagent")


class SafetyGuard:
    """
    Refuses to clean a CA server's own credentials while the CA still has them.

    Removing the CA server's local key and certificate while the CA still
    holds a certificate for that certname would leave the CA with a trust
    anchor nobody can present.
    """

    def __init__(self, ca_server: str, transport: CATransport):
        """
        Initialize guard.

        Args:
            ca_server: CA server certname, resolved in the agent run mode
            transport: CA transport used to look up an existing certificate
        """
        self.ca_server = ca_server
        self.transport = transport

    def may_clean(self, certname: str) -> CleanDecision:
        """
        Decide whether local credentials for a certname may be removed.

        Args:
            certname: Certname about to be cleaned

        Returns:
            Allow, or Deny with a summary of the certificate the CA still holds

        Raises:
            TransportError: If the CA cannot be asked
        """
        if certname != self.ca_server:
            return CleanDecision.allow()

        logger.debug(f"'{certname}' is the CA server; checking the CA for its certificate")
        cert = self.transport.fetch_certificate(certname)
        if cert is None:
            return CleanDecision.allow()

        summary = CertificateParser.summarize(cert)
        logger.warning(f"CA still holds certificate {summary.fingerprint_sha256} for '{certname}'")
        return CleanDecision.deny(summary)
