"""
1Password secret references.

Configured secrets (refresh tokens, client secrets, IMAP passwords) may be
written as "op://Vault/Item/Field" references instead of literal values.
They are read through the 1Password CLI at the moment a credential is
resolved and are never written back to the configuration.
"""

import logging
import subprocess
from typing import List, Optional, Tuple

logger = logging.getLogger(__name__)

OP_REF_PREFIX = "op://"


def _run_op(cmd: List[str], description: str) -> str:
    """
    Run the 1Password CLI and return what it printed.

    Args:
        cmd: Full argv, starting with "op"
        description: What was being attempted, used in error messages

    Returns:
        Stripped stdout

    Raises:
        RuntimeError: If the CLI is missing or the command fails
    """
    try:
        result = subprocess.run(
            cmd,
            check=True,
            text=True,
            capture_output=True,
        )
        return result.stdout.strip()
    except FileNotFoundError as exc:
        raise RuntimeError(f"1Password CLI not found while {description}.") from exc
    except subprocess.CalledProcessError as exc:
        detail = (exc.stderr or "").strip() or "unknown error"
        raise RuntimeError(f"1Password CLI failed while {description}: {detail}") from exc


def is_op_ref(value: Optional[str]) -> bool:
    """Whether a configured value is a 1Password reference."""
    return bool(value) and value.startswith(OP_REF_PREFIX)


def parse_op_ref(ref: str) -> Optional[Tuple[str, str, str]]:
    """
    Split an op:// reference into its parts.

    Args:
        ref: Reference string (e.g., "op://Vault/Item/Field")

    Returns:
        Tuple of (item, field, vault) or None if invalid
    """
    if not ref.startswith(OP_REF_PREFIX):
        return None
    parts = ref[len(OP_REF_PREFIX):].split("/")
    if len(parts) < 3 or not all(parts[:2]):
        return None
    vault = parts[0]
    item = parts[1]
    field = "/".join(parts[2:])
    return item, field, vault


def op_read(ref: str, account: Optional[str] = None) -> str:
    """
    Read one field through "op read".

    Args:
        ref: 1Password reference (e.g., "op://Vault/Item/Field")
        account: Optional account identifier

    Returns:
        The field value
    """
    if parse_op_ref(ref) is None:
        raise RuntimeError(f"Malformed 1Password reference: {ref}")
    cmd = ["op", "read", ref]
    if account:
        cmd.extend(["--account", account])
    return _run_op(cmd, f"reading secret {ref}")


def resolve_secret(value: Optional[str], account: Optional[str] = None) -> Optional[str]:
    """
    Return a configured secret, dereferencing 1Password references.

    Literal values are returned unchanged; empty values become None.

    Raises:
        RuntimeError: If a reference cannot be read
    """
    if not value:
        return None
    if is_op_ref(value):
        return op_read(value, account=account) or None
    return value
