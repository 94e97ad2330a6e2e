"""
Credat CLI — agent identity and delegation from the command line.

Commands:
    credat init       Create an agent identity with did:web
    credat delegate   Issue a delegation credential to an agent
    credat verify     Verify a delegation token
    credat status     Show the local trust state
    credat demo       Run the full trust flow in memory
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import timedelta
from typing import Any, NoReturn, Optional

import click

from . import __version__
from .errors import CredatError
from .lifecycle import OWNER_ALGORITHM, TrustLifecycle, parse_allowed_domains
from .local_sdk import LocalIdentitySDK
from .models import AgentIdentity, Algorithm, DelegationConstraints
from .sdk import IdentitySDK, has_scope
from .status import build_status
from .timestamps import format_iso8601, utc_now
from .trust_store import TrustStore


# ── Helpers ───────────────────────────────────────────────────────


def _sdk(ctx: click.Context) -> IdentitySDK:
    obj = ctx.find_root().obj or {}
    return obj.get("sdk") or LocalIdentitySDK()


def _lifecycle(ctx: click.Context) -> TrustLifecycle:
    return TrustLifecycle(TrustStore.for_cwd(), _sdk(ctx))


def _emit_json(payload: dict) -> None:
    click.echo(json.dumps(payload, indent=2))


def _fail(message: str, as_json: bool) -> NoReturn:
    if as_json:
        _emit_json({"error": message})
    else:
        click.echo(click.style(f"  ✗ {message}", fg="red"), err=True)
    sys.exit(1)


def _truncate(text: str, length: int = 60) -> str:
    return text if len(text) <= length else f"{text[:length]}..."


def _header(text: str) -> None:
    click.echo()
    click.echo(click.style(f"  {text}", fg="cyan", bold=True))
    click.echo(click.style(f"  {'─' * (len(text) + 2)}", dim=True))


def _label(key: str, value: Any) -> None:
    click.echo(f"  {click.style(key + ':', dim=True)} {value}")


def _success(text: str) -> None:
    click.echo(f"  {click.style('✓', fg='green')} {text}")


def _failure(text: str) -> None:
    click.echo(f"  {click.style('✗', fg='red')} {text}")


def _step(num: int, text: str) -> None:
    click.echo()
    click.echo(f"  {click.style(f'[{num}]', fg='yellow', bold=True)} {click.style(text, bold=True)}")


def _constraint_labels(constraints) -> None:
    if constraints is None:
        return
    if constraints.max_transaction_value is not None:
        _label("Max Value", constraints.max_transaction_value)
    if constraints.allowed_domains is not None:
        _label("Allowed Domains", ", ".join(constraints.allowed_domains))
    if constraints.rate_limit is not None:
        _label("Rate Limit", constraints.rate_limit)


# ── CLI ───────────────────────────────────────────────────────────


@click.group()
@click.version_option(version=__version__, prog_name="credat")
@click.option("--verbose", "-v", is_flag=True, default=False, help="Log flow progress to stderr.")
@click.pass_context
def main(ctx: click.Context, verbose: bool):
    """Credat — agent identity and delegation."""
    ctx.ensure_object(dict)
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@main.command()
@click.option("--domain", "-d", required=True, help="Domain for did:web (e.g. acme.corp)")
@click.option("--path", "-p", default=None, help="Optional sub-path (e.g. agents/my-agent)")
@click.option(
    "--algorithm",
    "-a",
    type=click.Choice([a.value for a in Algorithm], case_sensitive=False),
    default=Algorithm.ES256.value,
    show_default=True,
    help="Signing algorithm",
)
@click.option("--force", "-f", is_flag=True, default=False, help="Overwrite an existing agent identity")
@click.option("--json", "as_json", is_flag=True, default=False, help="Print the result as JSON")
@click.pass_context
def init(
    ctx: click.Context,
    domain: str,
    path: Optional[str],
    algorithm: str,
    force: bool,
    as_json: bool,
):
    """Create an agent identity with did:web."""
    try:
        result = _lifecycle(ctx).init(domain=domain, path=path, algorithm=algorithm, force=force)
    except CredatError as exc:
        _fail(str(exc), as_json)

    if as_json:
        _emit_json(result.to_dict())
        return

    _header("Agent Created")
    _label("DID", click.style(result.agent.did, fg="green"))
    _label("Algorithm", result.agent.algorithm.value)
    _label("Saved to", click.style(str(result.saved_to), dim=True))
    click.echo()
    click.echo(click.style("  Host this DID Document at:", bold=True))
    click.echo(f"  {click.style(result.hosting_url, fg='cyan')}")
    click.echo()
    click.echo(click.style("  Document contents:", dim=True))
    document = json.dumps(result.agent.did_document, indent=2)
    click.echo(click.style("\n".join(f"  {line}" for line in document.splitlines()), dim=True))
    click.echo()
    _success("Agent identity ready")


@main.command()
@click.option("--agent", "-a", "agent_did", default=None, help="Agent DID (defaults to .credat/agent.json)")
@click.option("--scopes", "-s", required=True, help="Comma-separated scopes (e.g. payments:read,invoices:create)")
@click.option("--max-value", "-m", default=None, help="Maximum transaction value constraint")
@click.option("--until", "-u", default=None, help="Expiration date (ISO 8601)")
@click.option("--allowed-domains", default=None, help="Comma-separated domains the agent may act on")
@click.option("--rate-limit", default=None, help="Rate limit constraint (positive integer)")
@click.option("--json", "as_json", is_flag=True, default=False, help="Print the result as JSON")
@click.pass_context
def delegate(
    ctx: click.Context,
    agent_did: Optional[str],
    scopes: str,
    max_value: Optional[str],
    until: Optional[str],
    allowed_domains: Optional[str],
    rate_limit: Optional[str],
    as_json: bool,
):
    """Issue a delegation credential to an agent."""
    try:
        result = _lifecycle(ctx).delegate(
            scopes=scopes,
            agent_did=agent_did,
            max_value=max_value,
            until=until,
            allowed_domains=allowed_domains,
            rate_limit=rate_limit,
        )
    except CredatError as exc:
        _fail(str(exc), as_json)

    if as_json:
        _emit_json(result.to_dict())
        return

    if result.owner_created:
        click.echo(click.style("  Created new owner identity → .credat/owner.json", dim=True))
    else:
        click.echo(click.style("  Loaded owner from .credat/owner.json", dim=True))

    _header("Delegation Issued")
    _label("Agent", click.style(result.agent, fg="green"))
    _label("Owner", click.style(result.owner, fg="cyan"))
    _label("Scopes", ", ".join(click.style(s, fg="yellow") for s in result.scopes))
    _constraint_labels(result.constraints)
    if result.valid_until:
        _label("Valid Until", result.valid_until)
    click.echo()
    _label("Token", click.style(_truncate(result.token, 80), dim=True))
    _label("Saved to", click.style(str(result.saved_to), dim=True))
    click.echo()
    _success("Delegation credential created")


@main.command()
@click.argument("token", required=False)
@click.option("--json", "as_json", is_flag=True, default=False, help="Print the result as JSON")
@click.pass_context
def verify(ctx: click.Context, token: Optional[str], as_json: bool):
    """Verify a delegation token (defaults to .credat/delegation.json)."""
    try:
        outcome = _lifecycle(ctx).verify(token)
    except CredatError as exc:
        _fail(str(exc), as_json)

    if as_json:
        _emit_json(outcome.to_dict())
        return

    result = outcome.result
    if outcome.token_from_store:
        click.echo(click.style("  Loaded token from .credat/delegation.json", dim=True))

    _header("Verification Result")
    if result.valid:
        _success(click.style("Valid delegation", bold=True))
    else:
        _failure(click.style("Invalid delegation", bold=True))
    click.echo()
    _label("Agent", result.agent or click.style("(unknown)", dim=True))
    _label("Owner", result.owner or click.style("(unknown)", dim=True))
    if result.scopes:
        _label("Scopes", ", ".join(click.style(s, fg="yellow") for s in result.scopes))
    _constraint_labels(result.constraints)
    if result.valid_from:
        _label("Valid From", result.valid_from)
    if result.valid_until:
        _label("Valid Until", result.valid_until)

    if result.errors:
        click.echo()
        click.echo(click.style("  Errors:", fg="red"))
        for issue in result.errors:
            click.echo(f"    {click.style('•', fg='red')} {issue.message}")
    click.echo()


@main.command()
@click.option("--json", "as_json", is_flag=True, default=False, help="Print the state as JSON")
def status(as_json: bool):
    """Show the local agent, owner and delegation state."""
    try:
        report = build_status(TrustStore.for_cwd())
    except CredatError as exc:
        _fail(str(exc), as_json)

    if as_json:
        _emit_json(report.to_dict())
        return

    for line in report.render_lines():
        if not line.startswith(" "):
            _header(line)
        elif line.lstrip().startswith("✓"):
            click.echo(click.style(line, fg="green"))
        elif line.lstrip().startswith("✗"):
            click.echo(click.style(line, fg="red"))
        else:
            click.echo(line)
    click.echo()


@main.command()
@click.pass_context
def demo(ctx: click.Context):
    """Run a full owner → agent → service trust flow in memory."""
    sdk = _sdk(ctx)

    click.echo()
    click.echo(click.style("  Credat Trust Flow Demo", fg="cyan", bold=True))
    click.echo(click.style("  Agent Identity + Delegation + Handshake", fg="cyan"))
    click.echo(click.style("  " + "=" * 42, fg="cyan"))

    _step(1, "Create Owner Identity")
    owner = sdk.create_identity("acme.corp", None, OWNER_ALGORITHM)
    _label("Owner DID", click.style(owner.did, fg="green"))
    _success("Owner created")

    _step(2, "Create Agent Identity")
    agent_identity = sdk.create_identity("acme.corp", "agents/assistant", Algorithm.ES256)
    agent = AgentIdentity(
        did=agent_identity.did,
        domain="acme.corp",
        path="agents/assistant",
        key_pair=agent_identity.key_pair,
        did_document=agent_identity.did_document,
    )
    _label("Agent DID", click.style(agent.did, fg="green"))
    _success("Agent created")

    _step(3, "Owner Delegates to Agent")
    scopes = ["payments:read", "payments:create", "invoices:read"]
    constraints = DelegationConstraints(
        max_transaction_value=1000,
        allowed_domains=parse_allowed_domains("api.stripe.com,api.acme.corp"),
    )
    valid_until = format_iso8601(utc_now() + timedelta(days=1))
    delegation = sdk.issue_delegation(
        agent_did=agent.did,
        owner_did=owner.did,
        owner_key_pair=owner.key_pair,
        scopes=scopes,
        constraints=constraints,
        valid_until=valid_until,
    )
    _label("Scopes", ", ".join(click.style(s, fg="yellow") for s in scopes))
    _constraint_labels(constraints)
    _label("Expires", valid_until)
    _label("Token", click.style(_truncate(delegation.token), dim=True))
    _success("Delegation VC issued")

    _step(4, "Verify Delegation (standalone)")
    standalone = sdk.verify_delegation(delegation.token, owner.key_pair.public_key)
    if standalone.valid:
        _success(f"Valid: {click.style('true', fg='green')}")
    else:
        _failure(f"Valid: {click.style('false', fg='red')}")
    _label("Agent (from VC)", standalone.agent)
    _label("Scopes (from VC)", ", ".join(standalone.scopes or []))

    _step(5, "Service Challenges Agent (Handshake)")
    service_did = "did:web:api.stripe.com"
    challenge = sdk.create_challenge(service_did)
    _label("Challenge from", click.style(service_did, fg="cyan"))
    _label("Nonce", click.style(_truncate(challenge.nonce, 40), dim=True))
    _success("Challenge created")

    _step(6, "Agent Presents Credentials")
    presentation = sdk.present_credentials(challenge, delegation.token, agent)
    _label("Presentation type", presentation.type)
    _label("Proof", click.style(_truncate(presentation.proof, 40), dim=True))
    _success("Credentials presented")

    _step(7, "Service Verifies Presentation")
    handshake = sdk.verify_presentation(
        presentation,
        challenge,
        owner_public_key=owner.key_pair.public_key,
        agent_public_key=agent.key_pair.public_key,
    )
    if not handshake.valid:
        _failure(click.style("Handshake failed", fg="red", bold=True))
        for issue in handshake.errors:
            click.echo(f"    {click.style('•', fg='red')} {issue.message}")
        sys.exit(1)
    _success(click.style("Handshake verified!", fg="green", bold=True))
    _label("Verified agent", handshake.agent)
    _label("Verified owner", handshake.owner)
    _label("Granted scopes", ", ".join(click.style(s, fg="yellow") for s in handshake.scopes or []))

    _step(8, "Check Scopes")
    for scope in ["payments:create", "payments:read", "admin:delete"]:
        if has_scope(handshake, scope):
            click.echo(f"  {click.style('✓', fg='green')} {scope}")
        else:
            click.echo(f"  {click.style('✗', fg='red')} {scope} {click.style('(not granted)', dim=True)}")

    click.echo()
    click.echo(click.style("  The full trust flow completed successfully.", bold=True))
    click.echo(click.style("  No passwords. No API keys. Just cryptographic trust.", dim=True))
    click.echo()


if __name__ == "__main__":
    main()
