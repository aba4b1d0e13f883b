#!/usr/bin/env python3
# CUI // SP-CTI
"""Configuration for the account lifecycle - args/org_config.yaml.

String values support ${VAR:-default} expansion. A missing file yields the
defaults; an unreadable or malformed file is a ConfigurationError.

The boto3 client is built here and handed to the collaborators (D1); nothing
in arcorg.orgs holds a module-level client.
"""

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import boto3
import yaml
from botocore.config import Config as BotocoreConfig

from arcorg.orgs.creation_waiter import (
    DEFAULT_INTERVAL_SECONDS,
    DEFAULT_MAX_ATTEMPTS,
    CreationWaiter,
)
from arcorg.orgs.directory_client import AccountDirectoryClient
from arcorg.orgs.identity import DEFAULT_ID_PREFIX
from arcorg.orgs.reconciler import AccountReconciler
from arcorg.orgs.unit_mover import UnitMover
from arcorg.resilience.errors import ConfigurationError

logger = logging.getLogger("arcorg.orgs.config")

BASE_DIR = Path(__file__).resolve().parent.parent.parent
DEFAULT_CONFIG_PATH = BASE_DIR / "args" / "org_config.yaml"
DEFAULT_DB_PATH = BASE_DIR / "data" / "arcorg.db"


def _expand_env(value):
    """Expand ${VAR:-default} patterns in string values."""
    if not isinstance(value, str):
        return value
    pattern = r'\$\{([^}]+)\}'
    def replacer(match):
        expr = match.group(1)
        if ":-" in expr:
            var, default = expr.split(":-", 1)
            return os.environ.get(var, default)
        return os.environ.get(expr, match.group(0))
    return re.sub(pattern, replacer, value)


def _section(raw: dict, name: str) -> dict:
    section = raw.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigurationError(
            "Section '{}' must be a mapping.".format(name), config_key=name)
    return {k: _expand_env(v) for k, v in section.items()}


def _number(section: dict, key: str, default, cast, prefix: str):
    value = section.get(key, default)
    if value in (None, ""):
        return default
    try:
        return cast(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(
            "{}.{} must be a number, got {!r}".format(prefix, key, value),
            config_key="{}.{}".format(prefix, key)) from exc


def _resolve_path(value) -> Path:
    """Relative state paths are anchored at the project root."""
    if not value:
        return DEFAULT_DB_PATH
    path = Path(value)
    return path if path.is_absolute() else BASE_DIR / path


def _flag(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


@dataclass
class OrganizationsConfig:
    region: str = "us-east-1"
    profile: str = ""
    max_retry_attempts: int = 5


@dataclass
class WaiterConfig:
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    interval_seconds: float = DEFAULT_INTERVAL_SECONDS
    deadline_seconds: Optional[float] = None


@dataclass
class ReconcilerConfig:
    strict_email_uniqueness: bool = False
    id_prefix: str = DEFAULT_ID_PREFIX


@dataclass
class OrgConfig:
    """Top-level configuration."""
    organizations: OrganizationsConfig = field(default_factory=OrganizationsConfig)
    waiter: WaiterConfig = field(default_factory=WaiterConfig)
    reconciler: ReconcilerConfig = field(default_factory=ReconcilerConfig)
    db_path: Path = DEFAULT_DB_PATH
    log_level: str = "INFO"

    @classmethod
    def load(cls, config_path: Optional[str] = None) -> "OrgConfig":
        path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
        if not path.exists():
            if config_path:
                raise ConfigurationError(
                    "Config file not found: {}".format(path), config_key="path")
            logger.warning("Org config not found at %s, using defaults", path)
            return cls()
        try:
            with open(path, "r", encoding="utf-8") as f:
                raw = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigurationError(
                "Failed to load {}: {}".format(path, exc)) from exc
        if not isinstance(raw, dict):
            raise ConfigurationError("{} must contain a mapping.".format(path))
        return cls.from_dict(raw)

    @classmethod
    def from_dict(cls, raw: dict) -> "OrgConfig":
        orgs = _section(raw, "organizations")
        waiter = _section(raw, "creation_waiter")
        rec = _section(raw, "reconciler")
        state = _section(raw, "state")
        log = _section(raw, "logging")

        deadline = _number(waiter, "deadline_seconds", None, float,
                           "creation_waiter")
        config = cls(
            organizations=OrganizationsConfig(
                region=orgs.get("region") or "us-east-1",
                profile=orgs.get("profile") or "",
                max_retry_attempts=_number(orgs, "max_retry_attempts", 5, int,
                                           "organizations"),
            ),
            waiter=WaiterConfig(
                max_attempts=_number(waiter, "max_attempts", DEFAULT_MAX_ATTEMPTS,
                                     int, "creation_waiter"),
                interval_seconds=_number(waiter, "interval_seconds",
                                         DEFAULT_INTERVAL_SECONDS, float,
                                         "creation_waiter"),
                deadline_seconds=deadline,
            ),
            reconciler=ReconcilerConfig(
                strict_email_uniqueness=_flag(
                    rec.get("strict_email_uniqueness", False)),
                id_prefix=rec.get("id_prefix") or DEFAULT_ID_PREFIX,
            ),
            db_path=_resolve_path(state.get("db_path")),
            log_level=str(log.get("level") or "INFO").upper(),
        )
        if config.waiter.max_attempts < 1:
            raise ConfigurationError("creation_waiter.max_attempts must be >= 1",
                                     config_key="creation_waiter.max_attempts")
        if config.waiter.interval_seconds < 0:
            raise ConfigurationError("creation_waiter.interval_seconds must be >= 0",
                                     config_key="creation_waiter.interval_seconds")
        return config


def build_organizations_client(config: OrgConfig):
    """Create the boto3 Organizations client from the default credential chain."""
    orgs = config.organizations
    session = boto3.session.Session(profile_name=orgs.profile or None,
                                    region_name=orgs.region)
    return session.client(
        "organizations",
        config=BotocoreConfig(retries={"max_attempts": orgs.max_retry_attempts,
                                       "mode": "standard"}),
    )


def build_reconciler(config: OrgConfig, org_client=None, sleep=None,
                     clock=None) -> AccountReconciler:
    """Wire directory client, mover and waiter around one Organizations client."""
    client = org_client if org_client is not None else build_organizations_client(config)
    directory = AccountDirectoryClient(client)
    waiter_kwargs = {}
    if sleep is not None:
        waiter_kwargs["sleep"] = sleep
    if clock is not None:
        waiter_kwargs["clock"] = clock
    waiter = CreationWaiter(
        directory,
        max_attempts=config.waiter.max_attempts,
        interval=config.waiter.interval_seconds,
        **waiter_kwargs,
    )
    return AccountReconciler(
        directory,
        UnitMover(client),
        waiter,
        strict_email_uniqueness=config.reconciler.strict_email_uniqueness,
        id_prefix=config.reconciler.id_prefix,
    )
