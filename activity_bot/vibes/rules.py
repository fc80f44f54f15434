from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ..models import VIBE_KEYS

logger = logging.getLogger("activity_bot")


@dataclass(slots=True, frozen=True)
class VibeRules:
    channels: dict[str, frozenset[str]] = field(default_factory=dict)
    keywords: dict[str, tuple[str, ...]] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not any(self.channels.values()) and not any(self.keywords.values())


def _read_text(path: Path) -> str:
    last_exc: Exception | None = None
    for encoding in ("utf-8-sig", "utf-8"):
        try:
            return path.read_text(encoding=encoding)
        except UnicodeDecodeError as exc:
            last_exc = exc
    if last_exc is not None:
        raise last_exc
    raise RuntimeError(f"Unable to read vibe rules: {path}")


def _string_lists(section: Any, section_name: str, path: Path) -> dict[str, list[str]]:
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise ValueError(f"Vibe rules '{section_name}' must be an object: {path}")
    parsed: dict[str, list[str]] = {}
    for key, values in section.items():
        vibe = str(key).strip().lower()
        if vibe not in VIBE_KEYS:
            logger.warning("Unknown vibe '%s' in %s.%s ignored", key, path, section_name)
            continue
        if not isinstance(values, list):
            raise ValueError(f"Vibe rules '{section_name}.{key}' must be a list: {path}")
        parsed[vibe] = [str(item).strip() for item in values if str(item).strip()]
    return parsed


def parse_vibe_rules(payload: Any, path: Path) -> VibeRules:
    if not isinstance(payload, dict):
        raise ValueError(f"Vibe rules root must be an object: {path}")
    channels = _string_lists(payload.get("channels"), "channels", path)
    keywords = _string_lists(payload.get("keywords"), "keywords", path)
    return VibeRules(
        channels={vibe: frozenset(ids) for vibe, ids in channels.items()},
        keywords={vibe: tuple(word.lower() for word in words) for vibe, words in keywords.items()},
    )


def load_vibe_rules(path: Path) -> VibeRules:
    path = Path(path)
    if not path.exists():
        logger.warning("Vibe rules not found: %s (inference disabled)", path)
        return VibeRules()
    try:
        payload = json.loads(_read_text(path))
    except ValueError as exc:
        raise ValueError(f"Failed to parse vibe rules {path}: {exc}") from exc
    rules = parse_vibe_rules(payload, path)
    logger.info(
        "Loaded vibe rules from %s (%d channel sets, %d keyword sets)",
        path,
        sum(1 for ids in rules.channels.values() if ids),
        sum(1 for words in rules.keywords.values() if words),
    )
    return rules
