from __future__ import annotations

import json
import logging


def json_line(event: str, **fields: object) -> str:
    return json.dumps(
        {"event": event, **fields},
        separators=(",", ":"),
        sort_keys=True,
        default=str,
    )


def log_json(logger: logging.Logger, level: int, event: str, **fields: object) -> None:
    if logger.isEnabledFor(level):
        logger.log(level, json_line(event, **fields))
