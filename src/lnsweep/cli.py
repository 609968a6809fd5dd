"""
lnsweep CLI - Recover funds from remotely force-closed Lightning channels.
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import typer
from loguru import logger
from pydantic import ValidationError

from lnsweep.backends.esplora import EsploraBackend
from lnsweep.config import NetworkParams, Settings, get_settings
from lnsweep.constants import ADDRESS_DERIVE_FROM_SEED
from lnsweep.errors import RecoveryError
from lnsweep.recovery.ancient import load_ancient_channels
from lnsweep.recovery.matcher import LegacyMatcher, MatchSession
from lnsweep.recovery.scanner import BalanceScanner
from lnsweep.recovery.sweep import SweepBuilder
from lnsweep.wallet import cln
from lnsweep.wallet.address import check_sweep_address
from lnsweep.wallet.bip32 import HDKey, mnemonic_to_seed
from lnsweep.wallet.keyring import KeyRing

app = typer.Typer(
    name="lnsweep",
    help="Lightning channel fund recovery",
    add_completion=False,
)


def setup_logging(level: str = "INFO") -> None:
    """Configure loguru logging."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}",
    )


def _load_settings(**overrides: object) -> Settings:
    try:
        return get_settings(**{k: v for k, v in overrides.items() if v is not None})
    except ValidationError as e:
        logger.error(f"Invalid configuration: {e}")
        raise typer.Exit(1)


def _load_root_key(
    rootkey: str | None, bip39: str | None, passphrase: str, params: NetworkParams
) -> HDKey:
    """Root key from an extended private key or a BIP39 mnemonic."""
    if rootkey:
        try:
            return HDKey.from_string(rootkey)
        except (ValueError, RecoveryError) as e:
            logger.error(f"Invalid root key: {e}")
            raise typer.Exit(1)

    if bip39:
        try:
            return HDKey.from_seed(mnemonic_to_seed(bip39, passphrase), params)
        except RecoveryError as e:
            logger.error(f"Invalid mnemonic: {e}")
            raise typer.Exit(1)

    logger.error("Root key required. Use --rootkey, --bip39, or ROOT_KEY/MNEMONIC env vars")
    raise typer.Exit(1)


def _parse_hex(value: str, name: str, length: int | None = None) -> bytes:
    try:
        data = bytes.fromhex(value.strip())
    except ValueError:
        logger.error(f"{name} is not valid hex")
        raise typer.Exit(1)
    if length is not None and len(data) != length:
        logger.error(f"{name} must be {length} bytes, got {len(data)}")
        raise typer.Exit(1)
    return data


@app.command()
def sweep_remote_closed(
    rootkey: str = typer.Option(
        None, "--rootkey", envvar="ROOT_KEY", help="BIP32 extended private root key"
    ),
    bip39: str = typer.Option(None, "--bip39", envvar="MNEMONIC", help="BIP39 mnemonic"),
    passphrase: str = typer.Option("", "--passphrase", envvar="PASSPHRASE"),
    network: str = typer.Option(None, "--network", "-n", help="Bitcoin network"),
    api_url: str = typer.Option(None, "--api-url", help="Esplora API URL"),
    recovery_window: int = typer.Option(
        None, "--recovery-window", help="Number of payment base keys to scan"
    ),
    fee_rate: int = typer.Option(None, "--fee-rate", help="Fee rate in sat/vbyte"),
    sweep_addr: str = typer.Option(
        "",
        "--sweep-addr",
        help=f"Address to sweep funds to, or '{ADDRESS_DERIVE_FROM_SEED}' for a wallet address",
    ),
    publish: bool = typer.Option(False, "--publish", help="Broadcast the sweep transaction"),
    ancient_channels: Path | None = typer.Option(
        None, "--ancient-channels", help="JSON list of legacy channel close records"
    ),
    concurrency: int = typer.Option(None, "--concurrency", help="Parallel address lookups"),
    log_level: str = typer.Option(None, "--log-level", "-l"),
) -> None:
    """Sweep to-remote outputs of channels the peer force closed."""
    settings = _load_settings(
        network=network,
        api_url=api_url,
        recovery_window=recovery_window,
        fee_rate=fee_rate,
        lookup_concurrency=concurrency,
        log_level=log_level,
    )
    setup_logging(settings.log_level)
    params = settings.params

    if sweep_addr != ADDRESS_DERIVE_FROM_SEED:
        try:
            check_sweep_address(sweep_addr, params)
        except RecoveryError as e:
            logger.error(str(e))
            raise typer.Exit(1)

    master = _load_root_key(rootkey, bip39, passphrase, params)

    try:
        asyncio.run(_sweep_remote_closed(settings, master, sweep_addr, publish, ancient_channels))
    except RecoveryError as e:
        logger.error(f"Sweep failed: {e}")
        raise typer.Exit(1)


async def _sweep_remote_closed(
    settings: Settings,
    master: HDKey,
    sweep_addr: str,
    publish: bool,
    ancient_channels: Path | None,
) -> None:
    """Sweep implementation."""
    keyring = KeyRing(master, settings.params)

    if sweep_addr == ADDRESS_DERIVE_FROM_SEED:
        sweep_addr = keyring.wallet_address()
        logger.info(f"Using wallet address {sweep_addr} as sweep destination")

    records = load_ancient_channels(ancient_channels)

    backend = EsploraBackend(
        settings.get_api_url(), settings.params, timeout=settings.request_timeout
    )
    try:
        scanner = BalanceScanner(keyring, backend, concurrency=settings.lookup_concurrency)
        targets = await scanner.scan(settings.recovery_window)

        if records:
            session = MatchSession(keyring, settings.recovery_window)
            targets.extend(await LegacyMatcher(keyring, backend).match(records, session))

        builder = SweepBuilder(keyring, dust_limit=settings.dust_limit)
        sweep = builder.build_and_sign(targets, sweep_addr, settings.fee_rate)

        print(
            f"\nSweeping {sweep.total_input:,} sats from {sweep.input_count} input(s), "
            f"fee {sweep.fee:,} sats, {sweep.output_value:,} sats to {sweep_addr}"
        )
        print(f"\nTXID: {sweep.txid}")
        print(f"\nTransaction:\n{sweep.hex}\n")

        if publish:
            txid = await backend.broadcast_transaction(sweep.hex)
            logger.info(f"Published TX {txid}")
            print(f"Published sweep transaction {txid}")

    finally:
        await backend.close()


@app.command()
def derive_key(
    path: str = typer.Option(..., "--path", "-p", help="Derivation path, e.g. m/1017'/0'/3'/0/0"),
    rootkey: str = typer.Option(None, "--rootkey", envvar="ROOT_KEY"),
    bip39: str = typer.Option(None, "--bip39", envvar="MNEMONIC"),
    passphrase: str = typer.Option("", "--passphrase", envvar="PASSPHRASE"),
    network: str = typer.Option(None, "--network", "-n"),
    neuter: bool = typer.Option(False, "--neuter", help="Do not print private key material"),
    log_level: str = typer.Option(None, "--log-level", "-l"),
) -> None:
    """Derive a key from the root key the way lnd does."""
    settings = _load_settings(network=network, log_level=log_level)
    setup_logging(settings.log_level)
    params = settings.params

    master = _load_root_key(rootkey, bip39, passphrase, params)

    try:
        key = master.derive(path)
    except RecoveryError as e:
        logger.error(f"Could not derive key: {e}")
        raise typer.Exit(1)

    print(f"Path:                   {path}")
    print(f"Network:                {params.name}")
    print(f"Public key:             {key.get_public_key_bytes().hex()}")
    print(f"Extended public key:    {key.to_public_string(params)}")
    print(f"Address:                {key.get_address(params)}")
    print(f"Legacy address:         {key.get_legacy_address(params)}")
    if not neuter:
        print(f"Private key (WIF):      {key.to_wif(params)}")
        print(f"Extended private key:   {key.to_string(params)}")


@app.command()
def cln_funding_key(
    hsm_secret: str = typer.Option(..., "--hsm-secret", envvar="HSM_SECRET"),
    peer: str = typer.Option(..., "--peer", help="Peer node public key (hex)"),
    channel_num: int = typer.Option(..., "--channel-num", help="Channel database id"),
) -> None:
    """Derive a Core Lightning channel funding public key."""
    setup_logging()

    secret = _parse_hex(hsm_secret, "hsm_secret", 32)
    peer_pubkey = _parse_hex(peer, "Peer public key", 33)

    try:
        key = cln.funding_key(secret, peer_pubkey, channel_num)
    except (ValueError, RecoveryError) as e:
        logger.error(f"Could not derive funding key: {e}")
        raise typer.Exit(1)

    print(f"Funding key: {key.format().hex()}")


@app.command()
def cln_node_key(
    hsm_secret: str = typer.Option(..., "--hsm-secret", envvar="HSM_SECRET"),
) -> None:
    """Derive the Core Lightning node identity key."""
    setup_logging()

    secret = _parse_hex(hsm_secret, "hsm_secret", 32)
    try:
        key = cln.node_key(secret)
    except RecoveryError as e:
        logger.error(f"Could not derive node key: {e}")
        raise typer.Exit(1)

    print(f"Node key: {key.format().hex()}")


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
