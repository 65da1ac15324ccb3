from __future__ import annotations

import ipaddress
import os
import socket
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlparse

import config

DEFAULT_USER_AGENT = config.USER_AGENT
DEFAULT_HEADERS = {
    "User-Agent": DEFAULT_USER_AGENT,
    "Accept": "text/html,application/xhtml+xml;q=0.9,*/*;q=0.8",
}
DEFAULT_TIMEOUT = config.FETCH_TIMEOUT
MAX_HTML_BYTES = 5 * 1024 * 1024
MAX_REDIRECTS = 10
ROBOTS_AGENT_TOKEN = "siteauditbot"

PRIVATE_IP_RANGES = [
    ipaddress.ip_network("10.0.0.0/8"),
    ipaddress.ip_network("172.16.0.0/12"),
    ipaddress.ip_network("192.168.0.0/16"),
    ipaddress.ip_network("127.0.0.0/8"),
    ipaddress.ip_network("169.254.0.0/16"),
    ipaddress.ip_network("::1/128"),
    ipaddress.ip_network("fc00::/7"),
    ipaddress.ip_network("fe80::/10"),
]


def ignore_robots() -> bool:
    return os.environ.get("AUDIT_IGNORE_ROBOTS") == "1"


def validate_url(url: str) -> None:
    """
    Validates that the URL uses a safe scheme and does not resolve to a private IP.
    Raises ValueError if unsafe.
    """
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https"):
        raise ValueError(f"Unsafe scheme: {parsed.scheme}")

    if not parsed.hostname:
        raise ValueError("Missing hostname")

    try:
        addr_info = socket.getaddrinfo(parsed.hostname, None)
    except socket.gaierror:
        # Unresolvable hosts cannot be proven public, so they are rejected.
        raise ValueError(f"DNS resolution failed for {parsed.hostname}")

    for _, _, _, _, sockaddr in addr_info:
        ip_obj = ipaddress.ip_address(sockaddr[0])
        for private_range in PRIVATE_IP_RANGES:
            if ip_obj in private_range:
                raise ValueError(f"Target resolves to private IP: {sockaddr[0]}")


def read_limited_text(resp: Any, max_bytes: int | None) -> tuple[str, bool]:
    """Read a streamed response body, giving up once it exceeds max_bytes."""
    if max_bytes is not None:
        content_length = resp.headers.get("Content-Length")
        if content_length and content_length.isdigit() and int(content_length) > max_bytes:
            return "", True
    chunks: list[bytes] = []
    size = 0
    for chunk in resp.iter_content(chunk_size=16384):
        if not chunk:
            continue
        chunks.append(chunk)
        size += len(chunk)
        if max_bytes is not None and size > max_bytes:
            return "", True
    data = b"".join(chunks)
    encoding = resp.encoding or "utf-8"
    try:
        return data.decode(encoding, errors="replace"), False
    except LookupError:
        return data.decode("utf-8", errors="replace"), False


@dataclass
class RobotsRules:
    groups: dict[str, list[tuple[str, str]]] = field(default_factory=dict)
    sitemaps: list[str] = field(default_factory=list)
    delays: dict[str, float] = field(default_factory=dict)

    def rules_for(self, agent: str = ROBOTS_AGENT_TOKEN) -> list[tuple[str, str]]:
        return self.groups.get(agent.lower()) or self.groups.get("*") or []

    def crawl_delay(self, agent: str = ROBOTS_AGENT_TOKEN) -> float | None:
        agent = agent.lower()
        if agent in self.delays:
            return self.delays[agent]
        return self.delays.get("*")


def parse_robots(text: str) -> RobotsRules:
    """Parse robots.txt into per-agent (directive, path) rules, Crawl-delay values and Sitemap lines."""
    rules = RobotsRules()
    current_agents: list[str] = []
    in_rules = False
    for raw in (text or "").splitlines():
        line = raw.split("#", 1)[0].strip()
        if not line or ":" not in line:
            continue
        key, value = line.split(":", 1)
        key = key.strip().lower()
        value = value.strip()
        if key == "user-agent":
            # Consecutive User-agent lines share one group.
            if in_rules:
                current_agents = []
                in_rules = False
            agent = value.lower()
            current_agents.append(agent)
            rules.groups.setdefault(agent, [])
        elif key in ("allow", "disallow"):
            in_rules = True
            for agent in current_agents or ["*"]:
                rules.groups.setdefault(agent, []).append((key, value))
        elif key == "crawl-delay":
            in_rules = True
            try:
                delay = float(value)
            except ValueError:
                continue
            if delay >= 0:
                for agent in current_agents or ["*"]:
                    rules.delays[agent] = delay
        elif key == "sitemap" and value:
            rules.sitemaps.append(value)
    return rules


def robots_disallows(url: str, rules: RobotsRules) -> tuple[bool, str | None]:
    """Longest matching rule wins; Allow wins ties."""
    parsed = urlparse(url)
    path = parsed.path or "/"
    if parsed.query:
        path = f"{path}?{parsed.query}"
    best: tuple[int, str, str] | None = None
    for directive, rule in rules.rules_for():
        if not rule or not path.startswith(rule):
            continue
        candidate = (len(rule), directive, rule)
        if best is None or candidate[0] > best[0] or (candidate[0] == best[0] and directive == "allow"):
            best = candidate
    if best and best[1] == "disallow":
        return True, best[2]
    return False, None
