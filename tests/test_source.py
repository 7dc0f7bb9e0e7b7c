"""Tests for membership file loading."""

import json

import pytest
import yaml
from pydantic import ValidationError

from gm_sync.source import load_membership_file

ROWS = [
    {"userEmail": "bob@acme.com", "org": "Acme", "role": "admin", "group": "Engineering"},
    {"userEmail": "bob@acme.com", "org": "Globex", "role": "collaborator", "group": "Engineering"},
    {"userEmail": "erin@acme.com", "org": "Acme", "role": "Security Lead", "group": "Engineering"},
]


def test_load_json(tmp_path):
    path = tmp_path / "members.json"
    path.write_text(json.dumps({"members": ROWS}))

    source = load_membership_file(path)
    assert len(source.members) == 3
    assert source.members[0].user_email == "bob@acme.com"
    assert source.group_label == "Engineering"
    assert source.unique_orgs() == ["Acme", "Globex"]


def test_load_yaml(tmp_path):
    path = tmp_path / "members.yml"
    path.write_text(yaml.dump({"group": "Platform", "members": ROWS[:1]}))

    source = load_membership_file(path)
    assert source.group_label == "Platform"
    assert source.members[0].role == "admin"


def test_rows_require_email(tmp_path):
    path = tmp_path / "members.json"
    path.write_text(json.dumps({"members": [{"org": "Acme", "role": "admin"}]}))

    with pytest.raises(ValidationError):
        load_membership_file(path)


def test_missing_file():
    with pytest.raises(FileNotFoundError):
        load_membership_file("/nonexistent/members.json")
