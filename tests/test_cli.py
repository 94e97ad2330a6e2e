"""CLI command tests: end-to-end flows, JSON output and failure exits."""

import json
import stat

import jwt
import pytest
from click.testing import CliRunner
from cryptography.hazmat.primitives.asymmetric import ec

from credat_cli.cli import main
from credat_cli.trust_store import TrustStore


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    monkeypatch.delenv("CREDAT_DIR", raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def runner():
    return CliRunner()


def _json(result) -> dict:
    return json.loads(result.stdout)


def test_end_to_end_init_delegate_verify(runner, workdir):
    init_result = runner.invoke(main, ["init", "--domain", "acme.test", "--json"])
    assert init_result.exit_code == 0, init_result.output
    agent_did = _json(init_result)["did"]
    assert agent_did == "did:web:acme.test"

    delegate_result = runner.invoke(
        main, ["delegate", "--scopes", "payments:read,invoices:create", "--json"]
    )
    assert delegate_result.exit_code == 0, delegate_result.output
    owner_did = _json(delegate_result)["owner"]
    assert owner_did == "did:web:owner.local"

    verify_result = runner.invoke(main, ["verify", "--json"])
    assert verify_result.exit_code == 0, verify_result.output
    verified = _json(verify_result)
    assert verified["valid"] is True
    assert verified["agent"] == agent_did
    assert verified["owner"] == owner_did
    assert verified["scopes"] == ["payments:read", "invoices:create"]
    assert verified["errors"] == []

    credat_dir = workdir / ".credat"
    assert stat.S_IMODE(credat_dir.stat().st_mode) == 0o700
    for name in ("agent.json", "owner.json", "delegation.json"):
        assert stat.S_IMODE((credat_dir / name).stat().st_mode) == 0o600


class TestInit:
    def test_human_output_shows_hosting_url(self, runner, workdir):
        result = runner.invoke(main, ["init", "-d", "test.example"])
        assert result.exit_code == 0, result.output
        assert "https://test.example/.well-known/did.json" in result.output
        assert "Agent identity ready" in result.output

        agent = json.loads((workdir / ".credat" / "agent.json").read_text())
        assert agent["did"].startswith("did:web:")
        assert agent["domain"] == "test.example"
        assert agent["didDocument"]["id"] == agent["did"]

    def test_path_based_url(self, runner, workdir):
        result = runner.invoke(main, ["init", "-d", "test.example", "-p", "agents/bot"])
        assert result.exit_code == 0, result.output
        assert "https://test.example/agents/bot/did.json" in result.output

    def test_eddsa_algorithm(self, runner, workdir):
        result = runner.invoke(main, ["init", "-d", "test.example", "-a", "EdDSA"])
        assert result.exit_code == 0, result.output
        agent = json.loads((workdir / ".credat" / "agent.json").read_text())
        assert agent["algorithm"] == "EdDSA"
        assert agent["keyPair"]["algorithm"] == "EdDSA"

    def test_existing_agent_requires_force(self, runner, workdir):
        credat_dir = workdir / ".credat"
        credat_dir.mkdir()
        (credat_dir / "agent.json").write_text("{}")

        refused = runner.invoke(main, ["init", "-d", "test.example"])
        assert refused.exit_code != 0
        assert "Agent identity already exists" in refused.output
        assert (credat_dir / "agent.json").read_text() == "{}"

        forced = runner.invoke(main, ["init", "-d", "test.example", "--force"])
        assert forced.exit_code == 0, forced.output
        assert json.loads((credat_dir / "agent.json").read_text())["domain"] == "test.example"

    def test_conflict_in_json_mode_is_single_error_object(self, runner, workdir):
        assert runner.invoke(main, ["init", "-d", "test.example"]).exit_code == 0
        result = runner.invoke(main, ["init", "-d", "test.example", "--json"])
        assert result.exit_code == 1
        assert set(_json(result)) == {"error"}


class TestDelegate:
    def test_rejects_non_numeric_max_value(self, runner, workdir):
        runner.invoke(main, ["init", "-d", "test.example"])
        result = runner.invoke(main, ["delegate", "-s", "payments:read", "-m", "abc"])
        assert result.exit_code == 1
        assert "--max-value must be a positive number" in result.output

    def test_rejects_invalid_until(self, runner, workdir):
        runner.invoke(main, ["init", "-d", "test.example"])
        result = runner.invoke(main, ["delegate", "-s", "payments:read", "-u", "not-a-date"])
        assert result.exit_code == 1
        assert "--until must be a valid ISO 8601 date" in result.output

    def test_missing_agent(self, runner, workdir):
        result = runner.invoke(main, ["delegate", "-s", "payments:read", "--json"])
        assert result.exit_code == 1
        assert "No agent DID provided" in _json(result)["error"]
        assert not (workdir / ".credat" / "owner.json").exists()

    def test_json_output_fields(self, runner, workdir):
        init = _json(runner.invoke(main, ["init", "-d", "test.example", "--json"]))
        result = runner.invoke(main, ["delegate", "-s", "payments:read", "-m", "500", "--json"])
        assert result.exit_code == 0, result.output

        parsed = _json(result)
        assert parsed["agent"] == init["did"]
        assert parsed["owner"].startswith("did:web:")
        assert parsed["scopes"] == ["payments:read"]
        assert parsed["constraints"] == {"maxTransactionValue": 500}
        assert parsed["validUntil"] is None
        assert isinstance(parsed["token"], str)

        stored = json.loads((workdir / ".credat" / "delegation.json").read_text())
        assert stored["token"] == parsed["token"]
        assert stored["claims"]["constraints"] == {"maxTransactionValue": 500}

    def test_human_output_and_owner_reuse(self, runner, workdir):
        runner.invoke(main, ["init", "-d", "test.example"])
        first = runner.invoke(main, ["delegate", "-s", "payments:read"])
        assert first.exit_code == 0, first.output
        assert "Created new owner identity" in first.output
        assert "Delegation credential created" in first.output
        owner_before = (workdir / ".credat" / "owner.json").read_text()

        second = runner.invoke(main, ["delegate", "-s", "payments:read"])
        assert "Loaded owner" in second.output
        assert (workdir / ".credat" / "owner.json").read_text() == owner_before


class TestVerify:
    def test_no_token_no_delegation(self, runner, workdir):
        result = runner.invoke(main, ["verify"])
        assert result.exit_code == 1
        assert "A delegation token is required" in result.output

    def test_no_owner(self, runner, workdir):
        result = runner.invoke(main, ["verify", "some.token.value", "--json"])
        assert result.exit_code == 1
        assert _json(result) == {"error": _json(result)["error"]}
        assert "No owner key found" in _json(result)["error"]

    def test_invalid_token_is_a_successful_run(self, runner, workdir):
        runner.invoke(main, ["init", "-d", "test.example"])
        runner.invoke(main, ["delegate", "-s", "payments:read"])

        result = runner.invoke(main, ["verify", "garbage", "--json"])

        assert result.exit_code == 0, result.output
        parsed = _json(result)
        assert parsed["valid"] is False
        assert parsed["errors"]
        assert "error" not in parsed

    def test_human_output(self, runner, workdir):
        runner.invoke(main, ["init", "-d", "test.example"])
        runner.invoke(main, ["delegate", "-s", "payments:read", "-m", "250"])
        result = runner.invoke(main, ["verify"])
        assert result.exit_code == 0, result.output
        assert "Loaded token from" in result.output
        assert "Valid delegation" in result.output
        assert "Max Value: 250" in result.output


class TestStatus:
    def test_empty_state_json(self, runner, workdir):
        result = runner.invoke(main, ["status", "--json"])
        assert result.exit_code == 0, result.output
        assert _json(result) == {"agent": None, "owner": None, "delegation": None}

    def test_full_state(self, runner, workdir):
        runner.invoke(main, ["init", "-d", "test.example", "-p", "agents/bot"])
        runner.invoke(
            main,
            ["delegate", "-s", "payments:read", "-m", "1000", "-u", "2099-12-31T00:00:00.000Z"],
        )

        parsed = _json(runner.invoke(main, ["status", "--json"]))
        assert parsed["agent"] == {
            "did": "did:web:test.example:agents:bot",
            "algorithm": "ES256",
            "domain": "test.example",
            "path": "agents/bot",
        }
        assert parsed["owner"] == {"did": "did:web:owner.local"}
        assert parsed["delegation"]["scopes"] == ["payments:read"]
        assert parsed["delegation"]["constraints"] == {"maxTransactionValue": 1000}
        assert parsed["delegation"]["expires"] == "2099-12-31T00:00:00.000Z"
        assert parsed["delegation"]["expired"] is False

        human = runner.invoke(main, ["status"])
        assert human.exit_code == 0
        assert "Agent identity loaded" in human.output
        assert "Expires: 2099-12-31T00:00:00.000Z" in human.output
        assert "(expired)" not in human.output

    def test_no_agent_message(self, runner, workdir):
        result = runner.invoke(main, ["status"])
        assert result.exit_code == 0
        assert "No agent" in result.output


def test_env_override_moves_store(runner, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("CREDAT_DIR", str(tmp_path / "custom"))
    result = runner.invoke(main, ["init", "-d", "test.example"])
    assert result.exit_code == 0, result.output
    assert (tmp_path / "custom" / "agent.json").exists()
    assert not (tmp_path / ".credat").exists()


def test_demo_runs_without_touching_store(runner, workdir):
    result = runner.invoke(main, ["demo"])
    assert result.exit_code == 0, result.output
    assert "Handshake verified!" in result.output
    assert "admin:delete" in result.output
    assert not (workdir / ".credat").exists()


def test_verify_malformed_claims_reports_invalid_json(runner, workdir):
    runner.invoke(main, ["init", "-d", "test.example"])
    runner.invoke(main, ["delegate", "-s", "payments:read"])
    owner = TrustStore.for_cwd().load_owner()
    signing_key = ec.derive_private_key(
        int.from_bytes(owner.key_pair.private_key, byteorder="big"), ec.SECP256R1()
    )
    token = jwt.encode(
        {
            "iss": owner.did,
            "sub": "did:web:test.example",
            "vc": {"type": 5, "credentialSubject": {"constraints": {"allowedDomains": 5}}},
        },
        signing_key,
        algorithm="ES256",
    )

    result = runner.invoke(main, ["verify", token, "--json"])

    assert result.exit_code == 0, result.output
    parsed = _json(result)
    assert parsed["valid"] is False
    assert parsed["errors"]
    assert parsed["constraints"] is None
