"""Tests for hookguard.rules"""

import json

import pytest

from hookguard.rules import CATEGORIES, ConfigError, Rule, default_rules, load_rules


def test_default_tables_cover_all_categories():
    rules = default_rules()
    assert set(rules) == set(CATEGORIES)
    assert all(len(rules[category]) > 0 for category in CATEGORIES)


@pytest.mark.parametrize(
    "command",
    [
        "rm -rf /",
        "rm -rf / --no-preserve-root",
        "rm -rf --no-preserve-root /",
        "rm -rf /home",
        "rm -fr /usr/local",
        "sudo rm -Rrf /tmp/build",
        "sudo rm -fr /*",
        ":(){ :|:& };:",
        "dd if=/dev/zero of=/dev/sda",
        "mkfs.ext4 /dev/sda1",
        "fdisk /dev/sda",
    ],
)
def test_ultra_dangerous_commands(command):
    assert default_rules()["ultra_dangerous_command"].first_match(command) is not None


@pytest.mark.parametrize("command", ["rm -rf ./dist", "rm -rf build/", "rm -r /tmp/x", "ls /", "echo rm"])
def test_not_ultra_dangerous(command):
    assert default_rules()["ultra_dangerous_command"].first_match(command) is None


@pytest.mark.parametrize(
    "command",
    [
        "rm -rf /tmp/build",
        "chmod 777 script.sh",
        "git push --force origin main",
        "git push origin master -f",
        "git reset --hard HEAD~1",
    ],
)
def test_dangerous_commands(command):
    assert default_rules()["dangerous_command"].first_match(command) is not None


def test_production_branch_is_anchored():
    rules = default_rules()["production_branch"]
    assert rules.first_match("main") is not None
    assert rules.first_match("release/1.2") is not None
    assert rules.first_match("feature/maintenance") is None
    assert rules.first_match("domain-model") is None


def test_first_match_wins():
    """rm -rf is listed before the other dangerous patterns."""
    match = default_rules()["dangerous_command"].first_match("rm -rf build && git reset --hard")
    assert match.description == "recursive force delete"


def test_rule_rejects_bad_action_and_regex():
    with pytest.raises(ConfigError):
        Rule("x", "dangerous_command", action="explode")
    with pytest.raises(ConfigError):
        Rule("(unclosed", "dangerous_command")


def test_load_rules_overrides_named_categories(tmp_path):
    path = tmp_path / "rules.json"
    path.write_text(
        json.dumps(
            {
                "dangerous_command": [
                    {"pattern": r"terraform\s+destroy", "action": "block", "description": "destroy"},
                    "kubectl\\s+delete",
                ]
            }
        )
    )

    rules = load_rules(path)

    dangerous = rules["dangerous_command"]
    assert len(dangerous) == 2
    assert dangerous.first_match("terraform destroy").action == "block"
    assert dangerous.first_match("kubectl delete pod x").action == "block"
    assert dangerous.first_match("rm -rf /tmp/x") is None
    # Untouched categories keep their defaults
    assert len(rules["sensitive_path"]) == len(default_rules()["sensitive_path"])


@pytest.mark.parametrize(
    "content",
    [
        "{broken",
        json.dumps(["not", "an", "object"]),
        json.dumps({"no_such_category": []}),
        json.dumps({"dangerous_command": "rm"}),
        json.dumps({"dangerous_command": [{"pattern": "(unclosed"}]}),
        json.dumps({"dangerous_command": [{"action": "block"}]}),
    ],
)
def test_load_rules_rejects_bad_files(tmp_path, content):
    path = tmp_path / "rules.json"
    path.write_text(content)

    with pytest.raises(ConfigError):
        load_rules(path)


def test_load_rules_without_path_returns_defaults():
    assert set(load_rules(None)) == set(CATEGORIES)
