import json

import pytest

from runtime.errors import ConfigurationFailure
from runtime.routing_config import load_routing_config, parse_routing_config


def test_parse_items_mapping():
    config = parse_routing_config({
        "items": [
            {"channel": "#bugs", "tags": ["#bugfix"], "token": "xoxb-1"},
            {"channel": "#all", "token": "xoxb-2"},
        ]
    })
    assert [rule.destination for rule in config.items] == ["#bugs", "#all"]
    assert config.items[0].tags == ("#bugfix",)
    assert config.items[0].credential == "xoxb-1"
    assert config.items[1].tags == ()


def test_parse_top_level_list_and_null_tags():
    config = parse_routing_config([{"channel": "#all", "tags": None, "token": "t"}])
    assert config.items[0].tags == ()


def test_empty_document_is_empty_configuration():
    assert parse_routing_config(None).items == ()
    assert parse_routing_config({"items": []}).items == ()


def test_duplicate_rules_are_kept():
    entry = {"channel": "#bugs", "tags": ["#bugfix"], "token": "t"}
    config = parse_routing_config([entry, dict(entry)])
    assert len(config.items) == 2


def test_token_resolved_from_environment():
    config = parse_routing_config(
        [{"channel": "#bugs", "token": "${BUGS_TOKEN}"}],
        env={"BUGS_TOKEN": "xoxb-secret"},
    )
    assert config.items[0].credential == "xoxb-secret"


def test_unset_token_variable_fails():
    with pytest.raises(ConfigurationFailure, match="BUGS_TOKEN"):
        parse_routing_config([{"channel": "#bugs", "token": "${BUGS_TOKEN}"}], env={})


def test_credential_not_in_repr():
    config = parse_routing_config([{"channel": "#bugs", "token": "xoxb-secret"}])
    assert "xoxb-secret" not in repr(config.items[0])


@pytest.mark.parametrize("document", [
    {"items": [{"tags": ["x"], "token": "t"}]},
    {"items": [{"channel": "#a", "tags": ["x"]}]},
    {"items": [{"channel": "#a", "tags": "x", "token": "t"}]},
    {"items": [{"channel": "#a", "tags": [""], "token": "t"}]},
    {"items": [{"channel": "#a", "token": "t", "colour": "red"}]},
    {"items": ["#a"]},
    {"items": {"channel": "#a"}},
    {"rules": []},
    "just a string",
])
def test_malformed_documents_fail(document):
    with pytest.raises(ConfigurationFailure):
        parse_routing_config(document)


def test_load_yaml_file(tmp_path):
    path = tmp_path / "routing.yaml"
    path.write_text(
        "items:\n"
        "  - channel: '#bugs'\n"
        "    tags: ['#bugfix', '#hotfix']\n"
        "    token: xoxb-1\n"
    )
    config = load_routing_config(str(path))
    assert config.items[0].tags == ("#bugfix", "#hotfix")


def test_load_json_file(tmp_path):
    path = tmp_path / "setting.json"
    path.write_text(json.dumps({"items": [{"channel": "#all", "tags": [], "token": "xoxb-1"}]}))
    config = load_routing_config(str(path))
    assert config.items[0].destination == "#all"


def test_missing_file_fails(tmp_path):
    with pytest.raises(ConfigurationFailure, match="not found"):
        load_routing_config(str(tmp_path / "nope.yaml"))


def test_yaml_syntax_error_fails(tmp_path):
    path = tmp_path / "broken.yaml"
    path.write_text("items: [\n  - channel: '#a'\n")
    with pytest.raises(ConfigurationFailure):
        load_routing_config(str(path))
