"""Process configuration.

Key material and file locations come from environment variables; the
solver's policy (sources, allow/block lists, rules, settlement, chains)
comes from a JSON metadata document validated with pydantic.
"""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

import structlog
from eth_account import Account
from pydantic import ValidationError

from intent_solver.errors import ConfigurationError
from intent_solver.logging_config import LOG_FORMATS
from intent_solver.models.policy import AllowBlockLists, SettlementMode, SolverMetadata
from intent_solver.rules.registry import build_rules

if TYPE_CHECKING:
    from eth_account.signers.local import LocalAccount

logger = structlog.get_logger()


@dataclass(frozen=True)
class Settings:
    """Environment-derived settings.

    Environment variables:
    - PRIVATE_KEY: Hex private key of the filler account
    - MNEMONIC: BIP-39 phrase for the filler account, used when PRIVATE_KEY is unset
      (one of the two is required)
    - SOLVER_METADATA: Path to the JSON metadata document (required)
    - SOLVER_ALLOW_BLOCK_LISTS: Optional JSON file with global allow/block lists
    - SOLVER_DB_PATH: SQLite checkpoint file (default: solver.db)
    - LOG_LEVEL: Log level (default: INFO)
    - LOG_FORMAT: "pretty" or "json" (default: pretty)
    - SOLVER_HOST / SOLVER_PORT: Status API bind address (default: 0.0.0.0:8000)
    """

    metadata_path: Path
    private_key: str | None = None
    mnemonic: str | None = None
    allow_block_lists_path: Path | None = None
    db_path: str = "solver.db"
    log_level: str = "INFO"
    log_format: str = "pretty"
    host: str = "0.0.0.0"
    port: int = 8000

    def __repr__(self) -> str:
        return (
            f"Settings(metadata_path={str(self.metadata_path)!r}, db_path={self.db_path!r}, "
            f"log_level={self.log_level!r}, host={self.host!r}, port={self.port})"
        )


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Read settings from the environment.

    Raises:
        ConfigurationError: A required variable is missing or malformed
    """
    env = os.environ if environ is None else environ

    private_key = env.get("PRIVATE_KEY", "").strip()
    mnemonic = " ".join(env.get("MNEMONIC", "").split())
    if not private_key and not mnemonic:
        raise ConfigurationError("Either a private key or mnemonic must be provided")

    metadata_path = env.get("SOLVER_METADATA", "").strip()
    if not metadata_path:
        raise ConfigurationError("SOLVER_METADATA is not set")

    try:
        port = int(env.get("SOLVER_PORT", "8000"))
    except ValueError as err:
        raise ConfigurationError(f"SOLVER_PORT must be an integer: {err}") from err

    log_format = env.get("LOG_FORMAT", "pretty").lower()
    if log_format not in LOG_FORMATS:
        raise ConfigurationError(f"LOG_FORMAT must be one of {LOG_FORMATS}, got {log_format!r}")

    lists_path = env.get("SOLVER_ALLOW_BLOCK_LISTS", "").strip()

    return Settings(
        metadata_path=Path(metadata_path),
        private_key=private_key or None,
        mnemonic=mnemonic or None,
        allow_block_lists_path=Path(lists_path) if lists_path else None,
        db_path=env.get("SOLVER_DB_PATH", "solver.db"),
        log_level=env.get("LOG_LEVEL", "INFO").upper(),
        log_format=log_format,
        host=env.get("SOLVER_HOST", "0.0.0.0"),
        port=port,
    )


def _read_json(path: Path) -> object:
    try:
        with open(path) as f:
            return json.load(f)
    except FileNotFoundError as err:
        raise ConfigurationError(f"File not found: {path}") from err
    except json.JSONDecodeError as err:
        raise ConfigurationError(f"Invalid JSON in {path}: {err}") from err


def validate_metadata(metadata: SolverMetadata) -> SolverMetadata:
    """Cross-field checks pydantic cannot express on its own.

    Raises:
        ConfigurationError: Unknown chain, missing prover, or bad rule config
    """
    for source in metadata.intent_sources:
        if source.chain_name not in metadata.chains:
            raise ConfigurationError(
                f"Intent source {source.address} uses unknown chain '{source.chain_name}'"
            )
        if metadata.settlement.mode is SettlementMode.WITHDRAW and source.prover_address is None:
            raise ConfigurationError(
                f"Intent source {source.address} on {source.chain_name} needs a proverAddress "
                "for withdraw settlement"
            )

    build_rules(metadata.custom_rules.rules, metadata.custom_rules.keep_base_rules)
    return metadata


def load_metadata(path: str | Path) -> SolverMetadata:
    """Load and validate the solver metadata document.

    Raises:
        ConfigurationError: Missing file, invalid JSON, schema or rule errors
    """
    data = _read_json(Path(path))
    try:
        metadata = SolverMetadata.model_validate(data)
    except ValidationError as err:
        raise ConfigurationError(f"Invalid solver metadata in {path}: {err}") from err

    validate_metadata(metadata)
    logger.info(
        "metadata_loaded",
        protocol=metadata.protocol_name,
        sources=len(metadata.intent_sources),
        chains=sorted(metadata.chains),
        custom_rules=[rule.name for rule in metadata.custom_rules.rules],
    )
    return metadata


def load_allow_block_lists(path: str | Path | None) -> AllowBlockLists:
    """Global allow/block lists, empty when no file is configured."""
    if path is None:
        return AllowBlockLists()
    try:
        return AllowBlockLists.model_validate(_read_json(Path(path)))
    except ValidationError as err:
        raise ConfigurationError(f"Invalid allow/block lists in {path}: {err}") from err


def load_account(private_key: str | None = None, mnemonic: str | None = None) -> LocalAccount:
    """Build the signing account from a hex private key or a mnemonic.

    The private key wins when both are given. A mnemonic derives the first
    account on the default path m/44'/60'/0'/0/0.

    Raises:
        ConfigurationError: Neither is given, or the one given is invalid
    """
    if private_key:
        try:
            return Account.from_key(private_key)
        except Exception as err:
            raise ConfigurationError("PRIVATE_KEY is not a valid private key") from err

    if not mnemonic:
        raise ConfigurationError("Either a private key or mnemonic must be provided")

    Account.enable_unaudited_hdwallet_features()
    try:
        return Account.from_mnemonic(mnemonic)
    except Exception as err:
        raise ConfigurationError("MNEMONIC is not a valid mnemonic") from err
