from __future__ import annotations
"""
tokendist.config - configuration for the token distributor

Covers:
- Eligibility threshold (inclusive minimum holding, in base units)
- Distribution interval (seconds between the end of one cycle and the next start)
- Per-call account cap for accumulate batches
- Vault authority derivation namespace (program id + seed)

Environment overrides (all optional; sensible defaults provided):

  TOKENDIST_MIN_ELIGIBLE_BALANCE=1000
  TOKENDIST_DISTRIBUTION_INTERVAL=600
  TOKENDIST_MAX_BATCH_SIZE=32
  TOKENDIST_PROGRAM_ID=tokendist
  TOKENDIST_VAULT_SEED=vault

You can also load from a JSON or YAML file via
`TOKENDIST_CONFIG_FILE=/path/to/config.(json|yaml|yml)`.
File values override defaults; environment overrides the file.
"""


from dataclasses import asdict, dataclass, replace
from typing import Any, Dict, Optional
import json
import os
from pathlib import Path

import yaml

from tokendist.types import U64_MAX


@dataclass(frozen=True)
class DistributorParams:
    """Policy parameters fixed at initialization."""
    min_eligible_balance: int = 1_000     # inclusive threshold, base units
    distribution_interval: int = 600      # seconds (10 minutes)
    max_batch_size: int = 32              # accounts per accumulate call
    program_id: str = "tokendist"
    vault_seed: str = "vault"

    def validate(self) -> None:
        if not (0 <= self.min_eligible_balance <= U64_MAX):
            raise ValueError(f"min_eligible_balance must be a u64 amount (got {self.min_eligible_balance}).")
        if self.distribution_interval < 0:
            raise ValueError("distribution_interval must be non-negative seconds.")
        if self.max_batch_size <= 0:
            raise ValueError("max_batch_size must be positive.")
        if not self.program_id:
            raise ValueError("program_id must be non-empty.")
        if not self.vault_seed:
            raise ValueError("vault_seed must be non-empty.")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# -------------------------- Loaders --------------------------


def _getenv_int(name: str, default: int) -> int:
    v = os.getenv(name)
    if v is None or v == "":
        return default
    try:
        return int(str(v).replace("_", ""))
    except ValueError as e:
        raise ValueError(f"Invalid int for {name}: {v!r}") from e


def _getenv_str(name: str, default: str) -> str:
    v = os.getenv(name)
    return default if v is None or v == "" else v


def from_env(base: Optional[DistributorParams] = None, prefix: str = "TOKENDIST_") -> DistributorParams:
    """
    Build DistributorParams from environment variables, optionally layering on top of `base`.
    """
    cfg = base or DistributorParams()
    new_cfg = DistributorParams(
        min_eligible_balance=_getenv_int(f"{prefix}MIN_ELIGIBLE_BALANCE", cfg.min_eligible_balance),
        distribution_interval=_getenv_int(f"{prefix}DISTRIBUTION_INTERVAL", cfg.distribution_interval),
        max_batch_size=_getenv_int(f"{prefix}MAX_BATCH_SIZE", cfg.max_batch_size),
        program_id=_getenv_str(f"{prefix}PROGRAM_ID", cfg.program_id),
        vault_seed=_getenv_str(f"{prefix}VAULT_SEED", cfg.vault_seed),
    )
    new_cfg.validate()
    return new_cfg


def from_file(path: str | os.PathLike[str]) -> DistributorParams:
    """
    Load parameters from a JSON or YAML file. Unknown keys are rejected.
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(p)

    text = p.read_text(encoding="utf-8")
    if p.suffix.lower() in (".yaml", ".yml"):
        data = yaml.safe_load(text) or {}
    else:
        data = json.loads(text or "{}")
    if not isinstance(data, dict):
        raise ValueError(f"{p}: top-level config must be a mapping")

    known = set(DistributorParams.__dataclass_fields__)
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"{p}: unknown config keys {unknown}")

    cfg = replace(DistributorParams(), **data)
    cfg.validate()
    return cfg


def load() -> DistributorParams:
    """
    Load parameters using the following precedence:
      1) File at $TOKENDIST_CONFIG_FILE (JSON/YAML)
      2) Environment variables (TOKENDIST_*), applied on top of defaults or file values
    """
    file_path = os.getenv("TOKENDIST_CONFIG_FILE")
    base = from_file(file_path) if file_path else DistributorParams()
    return from_env(base=base)


def pretty(cfg: Optional[DistributorParams] = None) -> str:
    """Return a human-readable JSON string of the effective parameters."""
    return json.dumps((cfg or load()).to_dict(), indent=2, sort_keys=True)


__all__ = [
    "DistributorParams",
    "from_env",
    "from_file",
    "load",
    "pretty",
]
