"""Environment loading and validation.

Goals:
- Load `.env` at runtime when present.
- Fail fast with clear guidance when on-chain access is requested but the
  configuration is incomplete.
- Never print secrets.
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass

from dotenv import load_dotenv


@dataclass(frozen=True)
class EnvStatus:
    env_path: str
    loaded: bool
    chain_ready: bool


CHAIN_ENV_VARS = [
    "ATOMOP_RPC_URL",
    "ATOMOP_POSITION_MANAGER_ADDRESS",
]

# Signing needs somewhere to send the transaction
SIGNING_ENV_VARS = [
    "ATOMOP_PRIVATE_KEY",
    "ATOMOP_RPC_URL",
]


def load_env_or_exit(env_path: str = ".env", require_chain: bool = False) -> EnvStatus:
    """Load `.env` (if present) and validate the keys the caller needs.

    Offline commands (batch checks, ledger inspection) only need the file to be
    well formed; commands that talk to a chain pass ``require_chain=True``.
    """
    loaded = False
    if os.path.exists(env_path):
        loaded = load_dotenv(dotenv_path=env_path, override=False)

    missing_chain = [k for k in CHAIN_ENV_VARS if not os.environ.get(k)]
    if require_chain and missing_chain:
        _print_env_incomplete(missing_chain, env_path=env_path)
        raise SystemExit(2)

    # A signing key without an RPC endpoint is a misconfiguration, not a dry run
    present = [k for k in SIGNING_ENV_VARS if os.environ.get(k)]
    if "ATOMOP_PRIVATE_KEY" in present and len(present) != len(SIGNING_ENV_VARS):
        _print_signing_incomplete(env_path=env_path)
        raise SystemExit(2)

    return EnvStatus(env_path=env_path, loaded=loaded, chain_ready=not missing_chain)


def _print_env_incomplete(missing: list[str], *, env_path: str) -> None:
    sys.stderr.write("\nERROR: chain access requested but configuration is incomplete.\n")
    sys.stderr.write(f"File: {env_path}\n")
    sys.stderr.write("Missing:\n")
    for k in missing:
        sys.stderr.write(f"  - {k}\n")
    sys.stderr.write("\nFix: set the missing keys in your environment or .env file.\n\n")


def _print_signing_incomplete(*, env_path: str) -> None:
    sys.stderr.write("\nERROR: ATOMOP_PRIVATE_KEY is set but ATOMOP_RPC_URL is not.\n")
    sys.stderr.write(f"File: {env_path}\n")
    sys.stderr.write("Either set ATOMOP_RPC_URL or remove the signing key.\n\n")
