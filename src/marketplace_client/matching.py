"""Decide whether a marketplace entry is installed locally.

Installed records link to marketplace entries through
``meta["marketplaceId"]``. Records created before that link existed are
matched once on name, provider, command and registry URL, and then get
the link written back so later checks use the id alone.
"""

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from marketplace_client.base import InstalledServersPort
from marketplace_client.models import InstalledServerRecord
from schemas.marketplace import MarketplaceServer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServerSignature:
    """Command and registry URL taken from an entry's configuration."""

    command: Optional[str] = None
    registry_url: Optional[str] = None


def _definition(config: Any) -> Any:
    if isinstance(config, dict) and isinstance(config.get("mcpServers"), dict):
        servers = config["mcpServers"]
        return next(iter(servers.values()), None) or {}
    if isinstance(config, list):
        return config[0] if config else {}
    return config


def extract_signature(server: MarketplaceServer) -> ServerSignature:
    """Pull the signature out of the first server definition in the config."""
    definition = _definition(server.server_config) if server.server_config else {}
    if not isinstance(definition, dict):
        definition = {}

    command = definition.get("command")
    registry_url = definition.get("registryUrl")
    if not isinstance(registry_url, str):
        registry_url = server.repository if isinstance(server.repository, str) else None
    return ServerSignature(
        command=command if isinstance(command, str) else None,
        registry_url=registry_url,
    )


def _matches(server: MarketplaceServer, signature: ServerSignature, record: InstalledServerRecord) -> bool:
    if record.name != server.name:
        return False
    if server.author and record.provider != server.author:
        return False
    if record.command != signature.command:
        return False
    # Registry URLs only count when both sides have one
    if signature.registry_url and record.registry_url:
        return record.registry_url == signature.registry_url
    return True


def is_marketplace_installed(server: MarketplaceServer, installed: Iterable[InstalledServerRecord]) -> bool:
    """True when a record is linked to ``server`` or matches its signature."""
    records = list(installed)
    if server.id and any(record.marketplace_id == server.id for record in records):
        return True

    signature = extract_signature(server)
    if not signature.command:
        return False
    return any(_matches(server, signature, record) for record in records)


def find_legacy_installed_candidate(
    server: MarketplaceServer, installed: Iterable[InstalledServerRecord]
) -> Optional[InstalledServerRecord]:
    """First unlinked record matching ``server``'s signature, if any."""
    signature = extract_signature(server)
    if not signature.command:
        return None
    for record in installed:
        if record.marketplace_id:
            continue
        if _matches(server, signature, record):
            return record
    return None


def backfill_marketplace_id(
    server: MarketplaceServer,
    installed: Iterable[InstalledServerRecord],
    store: InstalledServersPort,
) -> Optional[InstalledServerRecord]:
    """Link a legacy install to ``server`` and return the updated record.

    Returns None when the server is already linked or nothing matches.
    """
    if not server.id:
        return None
    records = list(installed)
    if any(record.marketplace_id == server.id for record in records):
        return None

    candidate = find_legacy_installed_candidate(server, records)
    if candidate is None:
        return None

    linked = candidate.with_marketplace_id(server.id)
    store.update_server(linked)
    logger.info(f"Linked installed server '{candidate.name}' to marketplace entry {server.id}")
    return linked
