"""
Historical close records of legacy (tweaked to-remote key) channels.
"""

from __future__ import annotations

from importlib import resources
from pathlib import Path

from loguru import logger
from pydantic import TypeAdapter, ValidationError

from lnsweep.errors import RecoveryError
from lnsweep.models import AncientChannelRecord

_records_adapter = TypeAdapter(list[AncientChannelRecord])


def load_ancient_channels(path: Path | None = None) -> list[AncientChannelRecord]:
    """
    Load close records from a JSON list of
    {close_outpoint, close_addr, commit_point} objects.

    Without a path, the list shipped with the package is used.
    """
    try:
        if path is None:
            data = resources.files("lnsweep.data").joinpath("ancient_channels.json").read_bytes()
        else:
            data = Path(path).read_bytes()
    except OSError as e:
        raise RecoveryError(f"Cannot read ancient channel list: {e}") from e

    try:
        records = _records_adapter.validate_json(data)
    except ValidationError as e:
        raise RecoveryError(f"Invalid ancient channel list: {e}") from e

    logger.debug(f"Loaded {len(records)} ancient channel record(s)")
    return records
