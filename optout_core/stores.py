#!/usr/bin/env python3
"""
Flat-file stores: broker catalog, user profile, session log, evidence images.

Single-process, sequential use is assumed; nothing here locks.
"""
import json
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from .diagnostics import get_logger
from .exceptions import EvidenceError, ProfileValidationError, SetupError
from .models import BrokerDefinition, RemovalSession, UserProfile

logger = get_logger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_-]")


def _write_json(path: Path, data: Any) -> None:
    """Write through a sibling temp file so readers never see a partial file."""
    path = Path(path)
    if path.parent and not path.parent.exists():
        path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".tmp")
    with open(tmp, "w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2)
    os.replace(tmp, path)


def _read_json(path: Path) -> Any:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


class BrokerCatalog:
    """JSON array of broker definitions, keyed by name."""

    def __init__(self, path):
        self.path = Path(path)

    def load(self) -> List[BrokerDefinition]:
        try:
            raw = _read_json(self.path)
        except FileNotFoundError as e:
            raise SetupError(f"Broker catalog not found: {self.path}") from e
        except (OSError, json.JSONDecodeError) as e:
            raise SetupError(f"Cannot read broker catalog {self.path}: {e}") from e
        if not isinstance(raw, list):
            raise SetupError(f"Broker catalog {self.path} must be a JSON array")

        brokers: List[BrokerDefinition] = []
        seen = set()
        for i, entry in enumerate(raw):
            if not isinstance(entry, dict):
                raise SetupError(f"Broker #{i} must be a JSON object")
            broker = BrokerDefinition.from_dict(entry)
            problems = broker.problems()
            if problems:
                raise SetupError(f"Broker #{i} ({entry.get('name')!r}) is invalid: " + "; ".join(problems))
            if broker.name in seen:
                raise SetupError(f"Duplicate broker name: {broker.name}")
            seen.add(broker.name)
            brokers.append(broker)
        logger.debug(f"Loaded {len(brokers)} brokers from {self.path}")
        return brokers

    def save(self, brokers: Sequence[BrokerDefinition]) -> None:
        _write_json(self.path, [b.to_dict() for b in brokers])

    def update(self, broker: BrokerDefinition) -> bool:
        """
        Replace the stored entry with the same name (read-modify-write).

        Returns:
            True when the entry was found and written
        """
        brokers = self.load()
        for i, existing in enumerate(brokers):
            if existing.name == broker.name:
                brokers[i] = broker
                self.save(brokers)
                logger.info(f"Updated catalog entry for {broker.name}")
                return True
        logger.warning(f"Broker {broker.name} not in catalog {self.path}, update ignored")
        return False


class UserStore:
    """Saved user profile. Absence is normal, invalid content means re-prompt."""

    def __init__(self, path):
        self.path = Path(path)

    def load(self) -> Optional[UserProfile]:
        if not self.path.exists():
            return None
        try:
            return UserProfile.from_dict(_read_json(self.path)).validate()
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Cannot read saved profile {self.path}: {e}")
        except ProfileValidationError as e:
            logger.warning(f"Saved profile {self.path} is invalid: {e}")
        return None

    def save(self, user: UserProfile) -> None:
        _write_json(self.path, user.to_dict())


class SessionStore:
    """Session log, rewritten in full after every broker."""

    def __init__(self, path):
        self.path = Path(path)

    def save(self, session: RemovalSession) -> None:
        _write_json(self.path, session.to_dict())

    def load(self) -> Optional[Dict[str, Any]]:
        if not self.path.exists():
            return None
        return _read_json(self.path)


class EvidenceStore:
    """One PNG per broker attempt, overwritten when the broker is retried."""

    def __init__(self, directory):
        self.directory = Path(directory)

    @staticmethod
    def sanitize(name: str) -> str:
        return _UNSAFE_CHARS.sub("_", name or "broker")

    def path_for(self, broker_name: str, success: bool) -> Path:
        prefix = "success" if success else "failure"
        return self.directory / f"{prefix}-{self.sanitize(broker_name)}.png"

    def save(self, broker_name: str, success: bool, data: bytes) -> Path:
        path = self.path_for(broker_name, success)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as e:
            raise EvidenceError(f"Cannot write evidence {path}: {e}") from e
        return path
