from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Mapping


_ALLOWED_STRUCTURE: Dict[str, Any] = {
    "backup": {
        "exports_dir": None,
        "safety": {"keep_last"},
        "remote": {
            "enable",
            "directory",
            "keep_last",
            "max_age_days",
            "probe_url",
            "probe_timeout_s",
        },
    },
    "logging": {"level", "json"},
    "device_name": None,
    "working_dir": None,
    "version": None,
}


@dataclass(slots=True)
class SettingsValidator:
    schema: Mapping[str, Any]

    def unknown_keys(self, payload: Mapping[str, Any]) -> Iterable[str]:
        return sorted(self._iter_unknown(payload, self.schema, path=""))

    def _iter_unknown(self, payload: Mapping[str, Any], schema: Mapping[str, Any], *, path: str) -> Iterable[str]:
        for key, value in payload.items():
            if key not in schema:
                yield f"{path}{key}"
                continue
            rule = schema[key]
            if rule is None:
                continue
            if rule == "*":
                continue
            if isinstance(rule, set):
                if not isinstance(value, Mapping):
                    continue
                for sub in value.keys():
                    if sub not in rule:
                        yield f"{path}{key}.{sub}"
                continue
            if isinstance(rule, Mapping) and isinstance(value, Mapping):
                next_path = f"{path}{key}."
                yield from self._iter_unknown(value, rule, path=next_path)


SETTINGS_VALIDATOR = SettingsValidator(_ALLOWED_STRUCTURE)

__all__ = ["SETTINGS_VALIDATOR"]
