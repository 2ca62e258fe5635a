from __future__ import annotations

import re

_SECRET_KEY_RE = re.compile(r"(TOKEN|KEY|SECRET)", re.IGNORECASE)
_SECRET_VALUE_RE = re.compile(r"(?i)(token|key|secret)(\s*[=:]\s*)([^\s,;&]+)")


def redact_string(s: str) -> str:
    return _SECRET_VALUE_RE.sub(lambda m: f"{m.group(1)}{m.group(2)}***", s)


def redact_mapping(values: dict) -> dict:
    output = dict(values)
    for key in list(output.keys()):
        if _SECRET_KEY_RE.search(str(key)) and output[key]:
            output[key] = "***"
    return output
