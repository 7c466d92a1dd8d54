"""Network firewall for the network tools.

Every outbound request or lookup made on behalf of a peer passes through
:class:`NetworkFirewall` first. Access is denied unless the policy allows
the destination.
"""

from __future__ import annotations

import ipaddress
import logging
import socket
import threading
from typing import TYPE_CHECKING
from urllib.parse import urlparse

from cachetools import TTLCache

if TYPE_CHECKING:
    from mcp_ai_server.security.policy import SecurityPolicy

logger = logging.getLogger(__name__)

DNS_CACHE_SIZE = 256
DNS_CACHE_TTL = 300


class SecurityError(Exception):
    """Raised when a security policy violation is detected."""

    pass


def parse_ip_network(cidr: str) -> ipaddress.IPv4Network | ipaddress.IPv6Network | None:
    """Parse a CIDR notation string into an IP network.

    Args:
        cidr: CIDR notation string (e.g., "192.168.1.0/24").

    Returns:
        IP network object or None if invalid.
    """
    try:
        return ipaddress.ip_network(cidr, strict=False)
    except ValueError:
        return None


def is_private_address(address: str) -> bool:
    """Check if an IP address is in a private/local range.

    Args:
        address: IP address string.

    Returns:
        True if the address is private/local, False otherwise.
    """
    try:
        ip = ipaddress.ip_address(address)
        return ip.is_private or ip.is_loopback or ip.is_link_local
    except ValueError:
        return False


class NetworkFirewall:
    """Enforces the network section of the security policy.

    Fail-closed: destinations are blocked unless they are localhost, inside
    an allowed range, or an allowlisted endpoint. Hostname resolution is
    itself gated by the DNS allowlist and cached for a few minutes.
    """

    def __init__(self, policy: SecurityPolicy) -> None:
        """Initialize the firewall with a security policy.

        Args:
            policy: Security policy to enforce.
        """
        self._policy = policy
        self._allowed_networks: list[ipaddress.IPv4Network | ipaddress.IPv6Network] = []
        self._dns_cache: TTLCache[str, str] = TTLCache(maxsize=DNS_CACHE_SIZE, ttl=DNS_CACHE_TTL)
        self._cache_lock = threading.Lock()

        for cidr in policy.network_allowed_ranges:
            network = parse_ip_network(cidr)
            if network:
                self._allowed_networks.append(network)
            else:
                logger.warning("Ignoring invalid network range in policy: %s", cidr)

    def _is_ip_in_allowed_ranges(self, ip_str: str) -> bool:
        try:
            ip = ipaddress.ip_address(ip_str)
        except ValueError:
            return False
        return any(ip in network for network in self._allowed_networks)

    def _enforce_dns_policy(self, host: str) -> None:
        """Check if DNS resolution is allowed for a hostname.

        Raises:
            SecurityError: If DNS resolution is not allowed.
        """
        if not self._policy.allow_dns:
            raise SecurityError(f"DNS resolution disabled by policy for: {host}")

        if not self._policy.is_dns_allowed(host):
            raise SecurityError(f"DNS resolution not allowed for: {host}")

    def _lookup(self, hostname: str) -> list[str]:
        try:
            results = socket.getaddrinfo(hostname, None, socket.AF_UNSPEC)
        except socket.gaierror as e:
            raise SecurityError(f"DNS resolution failed for {hostname}: {e}") from e

        addresses: list[str] = []
        for result in results:
            address = str(result[4][0])
            if address not in addresses:
                addresses.append(address)
        if not addresses:
            raise SecurityError(f"DNS resolution failed for: {hostname}")
        return addresses

    def _resolve_hostname(self, hostname: str) -> str:
        """Resolve a hostname to an IP address with caching.

        Args:
            hostname: Hostname to resolve.

        Returns:
            Resolved IP address.

        Raises:
            SecurityError: If DNS resolution fails or is not allowed.
        """
        with self._cache_lock:
            cached = self._dns_cache.get(hostname)
        if cached is not None:
            return cached

        try:
            ipaddress.ip_address(hostname)
            return hostname
        except ValueError:
            pass

        self._enforce_dns_policy(hostname)

        address = self._lookup(hostname)[0]
        with self._cache_lock:
            self._dns_cache[hostname] = address
        return address

    def resolve_all(self, hostname: str) -> list[str]:
        """Resolve every address of a hostname, subject to the DNS policy.

        Args:
            hostname: Hostname to look up.

        Returns:
            Unique addresses in resolver order.

        Raises:
            SecurityError: If resolution is not allowed or fails.
        """
        self._enforce_dns_policy(hostname)
        addresses = self._lookup(hostname)
        with self._cache_lock:
            self._dns_cache[hostname] = addresses[0]
        return addresses

    def validate_address(self, host: str, port: int) -> bool:
        """Validate that a host:port combination is allowed.

        Args:
            host: Hostname or IP address.
            port: Port number.

        Returns:
            True if access is allowed.

        Raises:
            SecurityError: If access is blocked by policy.
        """
        if self._policy.is_port_blocked(port):
            raise SecurityError(f"Access denied: port {port} is blocked by policy")

        try:
            ipaddress.ip_address(host)
        except ValueError:
            return self._validate_hostname(host, port)

        if self._is_ip_in_allowed_ranges(host):
            return True
        raise SecurityError(f"Access denied: address {host}:{port} is not allowed")

    def _validate_hostname(self, host: str, port: int) -> bool:
        if host == "localhost":
            return True

        if self._policy.is_endpoint_allowed(host, port):
            self._resolve_hostname(host)
            return True

        self._enforce_dns_policy(host)

        ip_str = self._resolve_hostname(host)
        if self._is_ip_in_allowed_ranges(ip_str):
            return True

        raise SecurityError(f"Access denied: {host}:{port} is not allowed")

    def validate_host(self, host: str) -> bool:
        """Validate that a host may be contacted without a port, e.g. by ping.

        Allowlisted endpoints only grant specific ports, so they do not
        count here; the address must be localhost or in an allowed range.

        Raises:
            SecurityError: If the host is blocked by policy.
        """
        if host == "localhost":
            return True

        try:
            ipaddress.ip_address(host)
            address = host
        except ValueError:
            self._enforce_dns_policy(host)
            address = self._resolve_hostname(host)

        if self._is_ip_in_allowed_ranges(address):
            return True
        raise SecurityError(f"Access denied: host {host} is not allowed")

    def validate_url(self, url: str) -> bool:
        """Validate that a URL is allowed by policy.

        Args:
            url: Full URL to validate.

        Returns:
            True if access is allowed.

        Raises:
            SecurityError: If access is blocked by policy.
        """
        try:
            parsed = urlparse(url)
            explicit_port = parsed.port
        except ValueError as e:
            raise SecurityError(f"Invalid URL: {url}") from e

        if not parsed.scheme or not parsed.hostname:
            raise SecurityError(f"Invalid URL: {url}")

        if explicit_port:
            port = explicit_port
        elif parsed.scheme == "https":
            port = 443
        elif parsed.scheme == "http":
            port = 80
        else:
            raise SecurityError(f"Unsupported URL scheme: {parsed.scheme}")

        if parsed.scheme not in ("http", "https"):
            raise SecurityError(f"Unsupported URL scheme: {parsed.scheme}")

        return self.validate_address(parsed.hostname, port)
