"""Static remediation guidance keyed by alert-rule type."""

from __future__ import annotations

from relayctl.alerts.types import RuleType, Runbook

_RUNBOOKS: dict[str, Runbook] = {
    RuleType.QUEUE_GROWTH: Runbook(
        title="Mail Queue Growth",
        overview=(
            "The mail queue has grown beyond the configured threshold, "
            "indicating potential delivery issues."
        ),
        steps=[
            "Check the queue status with 'mailq' or 'relayctl queue list'",
            "Look for common recipients or domains that may be causing delays",
            "Check if the relay host is reachable and accepting connections",
            "Review the mail logs for error messages",
            "Consider flushing the queue if the issue is resolved",
            "If messages are stuck, consider putting problematic messages on hold",
        ],
        links=["https://www.postfix.org/QSHAPE_README.html"],
    ),
    RuleType.DEFERRED_SPIKE: Runbook(
        title="Deferred Mail Spike",
        overview="A large number of messages have been deferred, indicating delivery problems.",
        steps=[
            "Check relay host connectivity and DNS resolution",
            "Verify SMTP authentication credentials are still valid",
            "Check if the relay host has rate limiting in place",
            "Review TLS certificate validity",
            "Check for blacklisting of your IP or domain",
            "Consider temporarily switching to a backup relay",
        ],
    ),
    RuleType.AUTH_FAILURES: Runbook(
        title="Authentication Failures",
        overview=(
            "Multiple authentication failures have been detected, which could "
            "indicate credential issues or an attack."
        ),
        steps=[
            "Check if relay credentials need to be updated",
            "Verify the authentication mechanism is configured correctly",
            "Check for unauthorized connection attempts in logs",
            "Consider blocking suspicious IPs if this is an attack",
            "Verify SASL configuration in main.cf",
        ],
    ),
    RuleType.TLS_FAILURES: Runbook(
        title="TLS Connection Failures",
        overview="TLS connections are failing, which could impact secure mail delivery.",
        steps=[
            "Verify TLS certificates are valid and not expired",
            "Check certificate chain completeness",
            "Verify the CA bundle is up to date",
            "Check if the relay host supports your TLS version",
            "Review smtp_tls_security_level setting",
            "Test connectivity with openssl s_client",
        ],
    ),
    RuleType.BOUNCE_RATE: Runbook(
        title="High Bounce Rate",
        overview=(
            "The bounce rate has exceeded the threshold, indicating possible "
            "address quality issues."
        ),
        steps=[
            "Review bounce messages for common patterns",
            "Check if sending to invalid or outdated addresses",
            "Verify DNS records (SPF, DKIM, DMARC) are correct",
            "Check if your IP or domain is blacklisted",
            "Review the sender reputation",
            "Consider implementing address verification",
        ],
    ),
    RuleType.CONNECTION_RATE: Runbook(
        title="High Connection Rate",
        overview=(
            "Connection rate has exceeded normal levels, which could indicate "
            "legitimate high volume or abuse."
        ),
        steps=[
            "Check if the increased traffic is expected",
            "Review connection sources in logs",
            "Verify mynetworks configuration is correct",
            "Consider implementing rate limiting",
            "Check for compromised accounts or relaying",
        ],
    ),
}

GENERAL_RUNBOOK = Runbook(
    title="General Alert",
    overview="An alert has been triggered. Review the alert details and logs for more information.",
    steps=[
        "Review the alert message and context",
        "Check the mail logs for related errors",
        "Verify Postfix service status",
        "Check system resources (disk, memory, CPU)",
    ],
)


def get_runbook(rule_type: str) -> Runbook:
    """Runbook for *rule_type*; unknown types get the general entry."""
    return _RUNBOOKS.get(rule_type, GENERAL_RUNBOOK).model_copy(deep=True)
