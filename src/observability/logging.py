from __future__ import annotations
from typing import Any, Dict, Optional
from datetime import datetime
import json
import logging
import config

_logger = logging.getLogger("church_core.events")


def configure_logging(level: Optional[str] = None):
    """Install a plain handler on the root logger once; later calls only adjust the level."""
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(format="%(levelname)s %(name)s: %(message)s")
    root.setLevel(level or config.log_level())


def structured_log(event: str, correlation_id: Optional[str], data: Dict[str, Any], *, actor: Optional[str] = None):
    record = {
        "ts": datetime.utcnow().isoformat(),
        "event": event,
        "cid": correlation_id or "-",
        "actor": actor,
        "data": data,
    }
    _logger.info(json.dumps(record, default=str))
