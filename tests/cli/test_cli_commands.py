import argparse
import io
import json

import pytest

from abacx import cli


def _write(tmp_path, doc, name="policy.json"):
    p = tmp_path / name
    p.write_text(json.dumps(doc), encoding="utf-8")
    return str(p)


def test_validate_ok_and_errors(tmp_path, sample_doc, capsys):
    pytest.importorskip("jsonschema")
    assert cli.main(["validate", _write(tmp_path, sample_doc)]) == cli.EXIT_OK
    assert json.loads(capsys.readouterr().out) == []

    sample_doc["policies"][0]["effect"] = "permit"
    rc = cli.main(["validate", _write(tmp_path, sample_doc, "bad.json"), "--format", "text"])
    assert rc == cli.EXIT_SCHEMA_ERRORS
    assert "/policies/0/effect" in capsys.readouterr().out


def test_validate_without_jsonschema_is_env_error(tmp_path, sample_doc, monkeypatch, capsys):
    def boom(doc):
        raise RuntimeError("Install jsonschema")

    monkeypatch.setattr(cli, "schema_errors", boom)
    assert cli.main(["validate", _write(tmp_path, sample_doc)]) == cli.EXIT_ENV
    assert cli.main(["check", _write(tmp_path, sample_doc)]) == cli.EXIT_ENV
    assert "Install jsonschema" in capsys.readouterr().err


def test_lint_strict_and_text(tmp_path, sample_doc, capsys):
    sample_doc["policies"].append({"id": 1, "effect": "allow", "permission": "user:read", "role_id": 2})
    path = _write(tmp_path, sample_doc)
    assert cli.main(["lint", path]) == cli.EXIT_OK
    issues = json.loads(capsys.readouterr().out)
    assert [i["code"] for i in issues] == ["DUPLICATE_POLICY_ID"]

    assert cli.main(["lint", path, "--strict", "--format", "text"]) == cli.EXIT_LINT_ERRORS
    assert "DUPLICATE_POLICY_ID: policy id 1 is defined 2 times" in capsys.readouterr().out


def test_lint_clean_text_prints_ok(tmp_path, sample_doc, capsys):
    assert cli.main(["lint", _write(tmp_path, sample_doc), "--format", "text", "--strict"]) == cli.EXIT_OK
    assert capsys.readouterr().out.strip() == "OK"


def test_check_runs_schema_before_lint(tmp_path, sample_doc, monkeypatch, capsys):
    monkeypatch.setattr(cli, "schema_errors", lambda doc: [{"path": "/roles", "message": "bad"}])
    monkeypatch.setattr(cli, "analyze_document", lambda doc: pytest.fail("lint must not run"))
    assert cli.main(["check", _write(tmp_path, sample_doc)]) == cli.EXIT_SCHEMA_ERRORS

    monkeypatch.setattr(cli, "schema_errors", lambda doc: [])
    monkeypatch.setattr(cli, "analyze_document", lambda doc: [{"code": "DEMO", "message": "demo"}])
    assert cli.main(["check", _write(tmp_path, sample_doc)]) == cli.EXIT_OK
    assert cli.main(["check", _write(tmp_path, sample_doc), "--strict"]) == cli.EXIT_LINT_ERRORS


def test_stdin_input(monkeypatch, sample_doc, capsys):
    monkeypatch.setattr("sys.stdin", io.StringIO(json.dumps(sample_doc)))
    assert cli.main(["lint", "-"]) == cli.EXIT_OK
    assert json.loads(capsys.readouterr().out) == []


def test_yaml_input(tmp_path, capsys):
    pytest.importorskip("yaml")
    p = tmp_path / "policy.yaml"
    p.write_text("roles:\n  - {id: 1, name: a}\npolicies: []\n", encoding="utf-8")
    assert cli.main(["lint", str(p)]) == cli.EXIT_OK


def test_decide_allowed_and_denied(tmp_path, sample_doc, capsys):
    path = _write(tmp_path, sample_doc)
    rc = cli.main(["decide", path, "--subject", "bob", "--permission", "user:delete", "--resource", '{"id": "carol"}'])
    assert rc == cli.EXIT_OK
    out = json.loads(capsys.readouterr().out)
    assert out == {"allowed": True, "effect": "allow", "reason": "policy_allow", "policy_id": 2, "role_id": 3}

    rc = cli.main(
        ["decide", path, "--subject", "bob", "--permission", "user:delete", "--resource", '{"id": "bob"}', "--format", "text"]
    )
    assert rc == cli.EXIT_DENIED
    assert capsys.readouterr().out.strip() == "deny (policy_deny)"


def test_decide_unknown_permission_reports_error(tmp_path, sample_doc, capsys):
    rc = cli.main(["decide", _write(tmp_path, sample_doc), "--subject", "x", "--permission", "user:fly"])
    assert rc == cli.EXIT_DENIED
    out = json.loads(capsys.readouterr().out)
    assert out["reason"] == "configuration_error"
    assert "user:fly" in out["error"]


def test_decide_with_subject_attrs(tmp_path, capsys):
    doc = {
        "roles": [{"id": 1, "name": "staff", "is_default": True}],
        "policies": [
            {
                "id": 1,
                "effect": "allow",
                "permission": "cronTask:trigger",
                "role_id": 1,
                "condition": {"op": "eq", "left": {"user_attr": "team"}, "right": "ops"},
            }
        ],
    }
    path = _write(tmp_path, doc)
    argv = ["decide", path, "--subject", "u", "--permission", "cronTask:trigger", "--format", "text"]
    assert cli.main(argv + ["--attrs", '{"team": "ops"}']) == cli.EXIT_OK
    assert cli.main(argv + ["--attrs", '{"team": "dev"}']) == cli.EXIT_DENIED


def test_decide_bad_document_and_bad_args(tmp_path, sample_doc, capsys):
    sample_doc["policies"][0]["role_id"] = 99
    path = _write(tmp_path, sample_doc)
    assert cli.main(["decide", path, "--subject", "x", "--permission", "user:read"]) == cli.EXIT_SCHEMA_ERRORS
    assert "invalid policy document" in capsys.readouterr().err
    assert cli.main(["decide", path, "--subject", "x", "--permission", "user:read", "--attrs", "[1]"]) == cli.EXIT_USAGE
    assert cli.main(["decide", path, "--subject", "x", "--permission", "user:read", "--resource", "{x"]) == cli.EXIT_USAGE


def test_decide_document_with_incomplete_entries(tmp_path, capsys):
    argv = ["--subject", "x", "--permission", "user:read"]
    for doc in (
        {"roles": [{"name": "x"}]},
        {"roles": [{"id": 1}]},
        {"policies": [{"effect": "allow", "permission": "user:read", "role_id": 1}]},
        {"roles": [{"id": 1, "name": "x"}], "user_roles": [{"user_id": "x"}]},
    ):
        path = _write(tmp_path, doc)
        assert cli.main(["decide", path] + argv) == cli.EXIT_SCHEMA_ERRORS
        assert "invalid policy document" in capsys.readouterr().err


def test_missing_file_and_unparsable_document(tmp_path, capsys):
    assert cli.main(["lint", str(tmp_path / "nope.json")]) == cli.EXIT_USAGE
    assert "cannot read policy document" in capsys.readouterr().err
    bad = tmp_path / "bad.json"
    bad.write_text("{not-json", encoding="utf-8")
    assert cli.main(["lint", str(bad)]) == cli.EXIT_SCHEMA_ERRORS
    bad.write_text("[1, 2]", encoding="utf-8")
    assert cli.main(["lint", str(bad)]) == cli.EXIT_SCHEMA_ERRORS


def test_no_command_prints_usage(capsys):
    assert cli.main([]) == cli.EXIT_USAGE
    assert "usage:" in capsys.readouterr().err


def test_version(capsys):
    with pytest.raises(SystemExit) as exc:
        cli.main(["--version"])
    assert exc.value.code == 0
    assert capsys.readouterr().out.startswith("abacx ")


def test_cmd_lint_direct_namespace(tmp_path, sample_doc, capsys):
    ns = argparse.Namespace(policy=_write(tmp_path, sample_doc), format="json", strict=True)
    assert cli.cmd_lint(ns) == cli.EXIT_OK
    assert capsys.readouterr().out.strip() == "[]"
