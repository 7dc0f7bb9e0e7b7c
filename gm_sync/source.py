"""
Desired membership file loading.

Accepts JSON or YAML shaped as::

    {"members": [{"userEmail": "...", "org": "...", "role": "...", "group": "..."}]}
"""

from __future__ import annotations

import json
from pathlib import Path

import yaml

from .models import MembershipFile


def load_membership_file(path: str | Path) -> MembershipFile:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Membership file not found: {path}")

    with open(path) as f:
        if path.suffix.lower() in (".yaml", ".yml"):
            raw = yaml.safe_load(f) or {}
        else:
            raw = json.load(f)

    return MembershipFile.model_validate(raw)
