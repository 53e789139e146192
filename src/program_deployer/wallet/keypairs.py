"""
program-deployer — deployment keypair lifecycle.

File: src/program_deployer/wallet/keypairs.py

Purpose
- Issue the keypair a deployment signs with, persist it owner-only, and remove it
  again once the deployment is over.

Functional requirements
- Exactly one provenance per deployment: generated, caller-supplied secret bytes,
  or a caller-supplied keypair file under the wallet directory.
- Files written here are mode 0600 inside a 0700 wallet directory.
- Caller-supplied files are never deleted.
- The shared default keypair slot is only written when mirroring is enabled, and only
  removed while it still holds this deployment's key.
- ``cleanup`` never raises.
"""

from __future__ import annotations

import json
from pathlib import Path, PurePosixPath
from typing import Any

import structlog
from solders.keypair import Keypair

from program_deployer.constants import (
    DEFAULT_KEYPAIR_FILENAME,
    KEYPAIR_FILE_PREFIX,
    SECRET_KEY_LENGTH,
)
from program_deployer.domain.errors import DeployError, ErrorKind, wrap_error
from program_deployer.domain.models import WalletHandle, WalletOption, WalletSource
from program_deployer.utils.fs import ensure_private_directory, is_within, write_private_file


class WalletManager:
    """Issues and cleans up per-deployment keypairs inside ``wallet_dir``."""

    def __init__(
        self,
        *,
        wallet_dir: str | Path,
        mirror_default_keypair: bool = False,
        default_keypair_name: str = DEFAULT_KEYPAIR_FILENAME,
        logger: Any | None = None,
    ) -> None:
        self._wallet_dir = Path(wallet_dir)
        self._mirror_default_keypair = mirror_default_keypair
        self._default_keypair_name = default_keypair_name
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def wallet_dir(self) -> Path:
        return self._wallet_dir

    def keypair_path(self, deployment_id: str) -> Path:
        return self._wallet_dir / f"{KEYPAIR_FILE_PREFIX}{deployment_id}.json"

    def issue(self, deployment_id: str, option: WalletOption | None = None) -> WalletHandle:
        """Materialize the keypair for ``deployment_id`` according to ``option``."""

        selected = option if option is not None else WalletOption.generated()
        written: list[Path] = []
        try:
            ensure_private_directory(self._wallet_dir)
            if selected.source is WalletSource.FILE:
                assert selected.path is not None
                keypair_path = self.resolve_wallet_file(selected.path)
                keypair = load_keypair(keypair_path)
                owned = False
            else:
                if selected.source is WalletSource.SECRET_BYTES:
                    assert selected.secret_key is not None
                    keypair = keypair_from_secret(selected.secret_key)
                else:
                    keypair = Keypair()
                keypair_path = self.keypair_path(deployment_id)
                write_private_file(keypair_path, serialize_keypair(keypair))
                written.append(keypair_path)
                owned = True

            mirrored_path = None
            if self._mirror_default_keypair:
                mirrored_path = self._wallet_dir / self._default_keypair_name
                write_private_file(mirrored_path, serialize_keypair(keypair))
        except Exception as exc:
            for path in written:
                self._remove_quietly(path, "keypair")
            if isinstance(exc, DeployError):
                raise
            raise wrap_error(exc, ErrorKind.WALLET_ERROR, "Failed to set up wallet") from exc

        handle = WalletHandle(
            deployment_id=deployment_id,
            address=str(keypair.pubkey()),
            keypair_path=keypair_path,
            source=selected.source,
            owned=owned,
            mirrored_path=mirrored_path,
        )
        self._logger.info(
            "wallet_issued",
            address=handle.address,
            source=handle.source.value,
            keypair_file=handle.keypair_path,
            mirrored=mirrored_path is not None,
        )
        return handle

    def resolve_wallet_file(self, relative_path: str) -> Path:
        """Resolve a caller-supplied keypair path; it must stay inside the wallet dir."""

        normalized = relative_path.replace("\\", "/")
        pure = PurePosixPath(normalized)
        if pure.is_absolute() or ".." in pure.parts:
            raise DeployError(
                ErrorKind.WALLET_ERROR,
                "Wallet file path must be relative to the wallet directory",
                details={"wallet_path": relative_path},
            )
        candidate = self._wallet_dir.joinpath(*pure.parts)
        if not is_within(candidate, self._wallet_dir):
            raise DeployError(
                ErrorKind.WALLET_ERROR,
                "Wallet file path escapes the wallet directory",
                details={"wallet_path": relative_path},
            )
        if not candidate.is_file():
            raise DeployError(
                ErrorKind.WALLET_ERROR,
                f"Wallet file not found: {relative_path}",
                details={"wallet_path": relative_path},
            )
        return candidate

    def cleanup(self, handle: WalletHandle | None) -> None:
        """Remove what ``issue`` wrote for ``handle``. Each removal is independent."""

        if handle is None:
            return

        if handle.owned:
            self._remove_quietly(handle.keypair_path, "keypair")

        if handle.mirrored_path is not None:
            try:
                current = load_keypair(handle.mirrored_path)
            except FileNotFoundError:
                current = None
            except Exception as exc:  # noqa: BLE001 - a foreign slot is left untouched.
                self._logger.warning(
                    "wallet_slot_unreadable", path=handle.mirrored_path, error=str(exc)
                )
                current = None
            if current is not None and str(current.pubkey()) == handle.address:
                self._remove_quietly(handle.mirrored_path, "default_slot")

    def _remove_quietly(self, path: Path, role: str) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            self._logger.warning("wallet_cleanup_failed", role=role, path=path, error=str(exc))
            return
        self._logger.info("wallet_file_removed", role=role, path=path)


def keypair_from_secret(secret_key: tuple[int, ...] | list[int] | bytes) -> Keypair:
    raw = bytes(secret_key)
    if len(raw) != SECRET_KEY_LENGTH:
        raise DeployError(
            ErrorKind.WALLET_ERROR,
            f"Keypair must be exactly {SECRET_KEY_LENGTH} bytes, got {len(raw)}",
        )
    try:
        return Keypair.from_bytes(raw)
    except ValueError as exc:
        raise DeployError(ErrorKind.WALLET_ERROR, f"Invalid keypair bytes: {exc}") from exc


def load_keypair(path: str | Path) -> Keypair:
    """Read a Solana CLI keypair file (a JSON array of 64 byte values)."""

    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(payload, list) or not all(
        isinstance(item, int) and not isinstance(item, bool) and 0 <= item <= 255
        for item in payload
    ):
        raise DeployError(
            ErrorKind.WALLET_ERROR,
            "Keypair file must contain a JSON array of byte values",
            details={"path": str(path)},
        )
    return keypair_from_secret(payload)


def serialize_keypair(keypair: Keypair) -> str:
    return json.dumps(list(bytes(keypair)), separators=(",", ":"))


__all__ = [
    "WalletManager",
    "keypair_from_secret",
    "load_keypair",
    "serialize_keypair",
]
