from __future__ import annotations

from typing import Any
import json
import os
import re


# Variable replacement pattern.
# Supports:
#   - ${NAME}
#   - ${env:NAME}
# Ignores '$${NAME}' so it can be used to escape a literal '${NAME}'.
VAR_PATTERN = re.compile(
    r"(?<!\$)\$\{([A-Za-z_][A-Za-z0-9_]*(?::[A-Za-z_][A-Za-z0-9_]*)?)\}"
)


def _lookup_var_value(name: str, vars_map: dict[str, Any]) -> tuple[bool, Any]:
    if name.startswith("env:"):
        env_name = name[4:]
        if not env_name:
            return False, None
        val = os.getenv(env_name)
        if val is None:
            return False, None
        return True, val

    if name in vars_map:
        return True, vars_map[name]

    return False, None


def _resolve_placeholder(name: str, vars_map: dict[str, Any]) -> str:
    found, val = _lookup_var_value(name, vars_map)
    if not found:
        return "${" + name + "}"
    if val is None:
        return ""
    if isinstance(val, (dict, list)):
        return json.dumps(val, ensure_ascii=False)
    return str(val)


def interpolate(value: Any, vars_map: dict[str, Any]) -> Any:
    """
    Recursively substitute ${NAME} / ${env:NAME} placeholders in strings found in
    dicts and lists. A string that is exactly one placeholder keeps the variable's
    native type; unknown names are left untouched.
    """
    if isinstance(value, dict):
        return {k: interpolate(v, vars_map) for k, v in value.items()}
    if isinstance(value, list):
        return [interpolate(v, vars_map) for v in value]
    if not isinstance(value, str):
        return value

    whole = VAR_PATTERN.fullmatch(value)
    if whole is not None:
        found, val = _lookup_var_value(whole.group(1), vars_map)
        return val if found else value

    out = VAR_PATTERN.sub(lambda m: _resolve_placeholder(m.group(1), vars_map), value)
    return out.replace("$${", "${")
