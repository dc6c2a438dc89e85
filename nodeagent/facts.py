# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.
"""Host fact sources.

A fact source is a read-only, flat key/value mapping describing the host.
The node identity builder queries it once per run.
"""

import logging
import platform
import socket
from typing import Any, Mapping, Optional, Protocol

log = logging.getLogger(__name__)


class FactSource(Protocol):
    """Anything that can enumerate host facts."""

    def facts(self) -> dict[str, Any]:
        ...


class StaticFactSource:
    """Fact source over a mapping the caller already holds."""

    def __init__(self, facts: Optional[Mapping[str, Any]] = None):
        self._facts = dict(facts or {})

    def facts(self) -> dict[str, Any]:
        return dict(self._facts)


class SystemFactSource:
    """Collects a small set of identity and platform facts from the host.

    Facts that cannot be determined are omitted rather than raised. ``fqdn``
    is only reported when the resolver returns a dotted name, so a bare
    hostname falls through to the ``hostname`` fact.
    """

    def facts(self) -> dict[str, Any]:
        facts: dict[str, Any] = {}

        hostname = self._hostname()
        if hostname:
            facts["hostname"] = hostname.split(".")[0]

        fqdn = self._fqdn()
        if fqdn:
            facts["fqdn"] = fqdn
            facts["domain"] = fqdn.split(".", 1)[1]

        ipaddress = self._ipaddress(fqdn or hostname)
        if ipaddress:
            facts["ipaddress"] = ipaddress

        facts["os"] = platform.system().lower()
        facts["platform"] = platform.platform()
        facts["platform_version"] = platform.release()
        facts["machine"] = platform.machine()
        facts["python_version"] = platform.python_version()

        log.debug(f"Collected {len(facts)} host facts")
        return facts

    @staticmethod
    def _hostname() -> Optional[str]:
        try:
            return socket.gethostname() or None
        except OSError:
            return None

    @staticmethod
    def _fqdn() -> Optional[str]:
        try:
            fqdn = socket.getfqdn()
        except OSError:
            return None
        # getfqdn() falls back to the bare hostname or a localhost alias.
        if "." not in fqdn or fqdn.startswith("localhost"):
            return None
        return fqdn

    @staticmethod
    def _ipaddress(name: Optional[str]) -> Optional[str]:
        if not name:
            return None
        try:
            return socket.gethostbyname(name)
        except OSError:
            return None
