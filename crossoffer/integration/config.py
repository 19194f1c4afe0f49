"""
Runtime configuration.

Values come from (lowest to highest precedence): dataclass defaults, an
optional YAML mapping, then `CROSSOFFER_*` environment variables.

    chain_id: crossoffer-local
    verifier_enabled: true
    max_witness_bytes: 64000
    max_asset_claims: 64
    max_proof_depth: 32
    log_level: INFO
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping, Optional, Union

import yaml

from ..errors import InvalidParameter
from .witness import (
    DEFAULT_MAX_ASSET_CLAIMS,
    DEFAULT_MAX_PROOF_DEPTH,
    DEFAULT_MAX_WITNESS_BYTES,
    Witness,
    decode_witness,
    witness_from_hex,
)


ENV_PREFIX = "CROSSOFFER_"

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass(frozen=True)
class OfferConfig:
    chain_id: str = "crossoffer-local"
    verifier_enabled: bool = True
    max_witness_bytes: int = DEFAULT_MAX_WITNESS_BYTES
    max_asset_claims: int = DEFAULT_MAX_ASSET_CLAIMS
    max_proof_depth: int = DEFAULT_MAX_PROOF_DEPTH
    log_level: str = "INFO"


def _env_int(env: Mapping[str, str], name: str, default: int, *, lo: int, hi: int) -> int:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return int(default)
    try:
        v = int(raw.strip())
    except ValueError:
        return int(default)
    if v < lo:
        return int(lo)
    if v > hi:
        return int(hi)
    return int(v)


def _env_str(env: Mapping[str, str], name: str, default: str) -> str:
    raw = env.get(name)
    if raw is None:
        return default
    v = raw.strip()
    return v if v else default


def _bool_env(env: Mapping[str, str], name: str, *, default: bool) -> bool:
    raw = env.get(name)
    if raw is None:
        return bool(default)
    v = raw.strip().lower()
    if v in {"1", "true", "yes", "on"}:
        return True
    if v in {"0", "false", "no", "off"}:
        return False
    return bool(default)


def _from_mapping(base: OfferConfig, data: Mapping[str, Any]) -> OfferConfig:
    known = {f.name: f for f in fields(OfferConfig)}
    unknown = sorted(set(data) - set(known))
    if unknown:
        raise InvalidParameter(f"unknown config keys: {unknown}")
    updates = {}
    for key, value in data.items():
        default = getattr(base, key)
        if isinstance(default, bool):
            if not isinstance(value, bool):
                raise InvalidParameter(f"{key} must be a bool, got {value!r}")
        elif isinstance(default, int):
            if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
                raise InvalidParameter(f"{key} must be a positive int, got {value!r}")
        elif not isinstance(value, str) or not value:
            raise InvalidParameter(f"{key} must be a non-empty string, got {value!r}")
        updates[key] = value
    return replace(base, **updates)


def load_config(path: Optional[Union[str, Path]] = None, env: Optional[Mapping[str, str]] = None) -> OfferConfig:
    env = os.environ if env is None else env
    cfg = OfferConfig()
    if path is not None:
        with open(path, "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
        if data is None:
            data = {}
        if not isinstance(data, Mapping):
            raise InvalidParameter(f"config file {path} must contain a mapping")
        cfg = _from_mapping(cfg, data)

    return replace(
        cfg,
        chain_id=_env_str(env, ENV_PREFIX + "CHAIN_ID", cfg.chain_id),
        verifier_enabled=_bool_env(env, ENV_PREFIX + "VERIFIER_ENABLED", default=cfg.verifier_enabled),
        max_witness_bytes=_env_int(
            env, ENV_PREFIX + "MAX_WITNESS_BYTES", cfg.max_witness_bytes, lo=1_024, hi=4_000_000
        ),
        max_asset_claims=_env_int(env, ENV_PREFIX + "MAX_ASSET_CLAIMS", cfg.max_asset_claims, lo=1, hi=4_096),
        max_proof_depth=_env_int(env, ENV_PREFIX + "MAX_PROOF_DEPTH", cfg.max_proof_depth, lo=1, hi=64),
        log_level=_env_str(env, ENV_PREFIX + "LOG_LEVEL", cfg.log_level).upper(),
    )


def configure_logging(level: Union[str, int] = "INFO") -> None:
    """Attach a basic stderr handler; library modules only create loggers."""
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        if not isinstance(resolved, int):
            raise InvalidParameter(f"unknown log level: {level!r}")
        level = resolved
    logging.basicConfig(level=level, format=_LOG_FORMAT)


def decode_witness_for(config: OfferConfig, blob: bytes) -> Witness:
    """`decode_witness` bounded by the configured witness limits."""
    return decode_witness(
        blob,
        max_bytes=config.max_witness_bytes,
        max_claims=config.max_asset_claims,
        max_depth=config.max_proof_depth,
    )


def witness_from_hex_for(config: OfferConfig, blob_hex: str) -> Witness:
    return witness_from_hex(
        blob_hex,
        max_bytes=config.max_witness_bytes,
        max_claims=config.max_asset_claims,
        max_depth=config.max_proof_depth,
    )
