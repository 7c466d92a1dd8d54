"""Security layer: policy, input validation, network firewall and audit trail."""

from mcp_ai_server.security.audit import AuditLogger
from mcp_ai_server.security.firewall import NetworkFirewall, SecurityError
from mcp_ai_server.security.policy import SecurityPolicy, expand_env_vars
from mcp_ai_server.security.validator import InputValidator, ValidationError

__all__ = [
    "AuditLogger",
    "InputValidator",
    "NetworkFirewall",
    "SecurityError",
    "SecurityPolicy",
    "ValidationError",
    "expand_env_vars",
]
