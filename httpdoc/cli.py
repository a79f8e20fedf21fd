"""httpdoc CLI - run, check and list the requests in an .http file."""

import asyncio
import logging
import sys
from pathlib import Path

import click

from httpdoc.errors import HttpDocError

TOOL_HELP = """\
httpdoc — Run the requests in an .http file.

Parses an .http request file, resolves its variables, sends its requests
in order and chains values from earlier responses into later requests.

\b
MODES
─────
  Run:     httpdoc FILE [options]
  Check:   httpdoc FILE --check
  List:    httpdoc FILE --list

\b
FILE FORMAT
───────────
  \b
  @baseUrl = http://localhost:5000

  ### Log in
  # @name login
  POST {{baseUrl}}/auth/login
  Content-Type: application/json

  {"username": "admin", "password": "{{$processEnv ADMIN_PASSWORD}}"}

  ###
  GET {{baseUrl}}/me
  Authorization: Bearer {{login.response.body.$.token}}

\b
SELECTING REQUESTS (-n/--name)
──────────────────────────────
  Without -n every request runs in file order. With -n only the named
  requests run, each preceded by the requests it references:

    httpdoc api.http -n getProfile        # runs login, then getProfile

  Circular references are detected and reported.

\b
VARIABLES
─────────
  \b
  {{name}}                          File, request, environment or -v variable
  {{$guid}}                         Random UUID
  {{$randomInt 1 100}}              Random integer in [min, max)
  {{$timestamp -1 d}}               Unix seconds, with optional offset
  {{$datetime iso8601 1 h}}         UTC date/time (rfc1123, iso8601, custom)
  {{$localDatetime "yyyy-MM-dd"}}   Local date/time
  {{$processEnv NAME}}              Process environment variable
  {{$dotEnv NAME}}                  Variable from --dotenv / env_file

  Offset units: ms s m h d w M y

\b
RESPONSE REFERENCES
───────────────────
  \b
  {{login.response.body.$.token}}       JSONPath-lite
  {{login.response.body./auth/token}}   XPath-lite
  {{login.response.body.*}}             Whole body
  {{login.response.headers.Location}}   Response header
  {{login.request.body.$.username}}     Body that was sent

\b
VARIABLE PRECEDENCE
───────────────────
  When the same name appears in multiple sources:
  \b
  1. -v key=value          (CLI flag, highest priority)
  2. request variables     (@name = value inside a request block)
  3. file variables        (@name = value before the first request)
  4. environment file      (-e/--env in http-client.env.json, lowest)

\b
ENVIRONMENT FILE (http-client.env.json)
───────────────────────────────────────
  \b
  {
    "$shared": {"apiVersion": "v2"},
    "dev": {"baseUrl": "http://localhost:5000"},
    "prod": {"baseUrl": "https://api.example.com"}
  }

  Looked up next to the .http file unless --env-file or the config's
  environment_file says otherwise. Default environment: dev.

\b
OUTPUT FORMAT
─────────────
  Default output per request:
    STATUS: 200
    TIME: 45ms
    BODY:
    {"id": 1, "name": "test"}

  --verbose adds response headers.
  --raw outputs only the body.

\b
ASSERTIONS (--assert)
─────────────────────
  Checked against every executed request. Exit code 1 on failure.
    httpdoc api.http --assert status=200
    httpdoc api.http -n login --assert "body.$.token!="
    httpdoc api.http --assert "headers.Content-Type=application/json"

\b
CONFIG FILE FORMAT (.httpdoc.yaml)
──────────────────────────────────
  Config resolution order:
    1. -c/--config flag (explicit path)
    2. .httpdoc.yaml / .httpdoc.yml / httpdoc.yaml / httpdoc.yml in CWD
    3. ~/.httpdoc/config.yaml (global)

  \b
  defaults:
    environment: dev                       # -e/--env
    environment_file: http-client.env.json # --env-file
    env_file: .env                         # --dotenv
    timeout: 30                            # seconds
"""


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the CLI.

    Args:
        verbose: Enable debug logging
    """
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(message)s",
        datefmt="%H:%M:%S",
    )
    logging.getLogger("urllib3").setLevel(logging.WARNING)


@click.command(
    cls=click.Command,
    help=TOOL_HELP,
    context_settings={"max_content_width": 88},
)
@click.argument("http_file", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--check",
    is_flag=True,
    default=False,
    help="Parse the file and report diagnostics without sending anything.",
)
@click.option(
    "--list",
    "show_list",
    is_flag=True,
    default=False,
    help="List the requests in the file.",
)
@click.option(
    "-n",
    "--name",
    "names",
    multiple=True,
    help="Run only this named request (and what it references). Repeatable.",
)
@click.option(
    "-e",
    "--env",
    "environment",
    default=None,
    help="Environment name from the environment file. Default: dev.",
)
@click.option(
    "--env-file",
    "environment_file",
    default=None,
    help="Environment JSON file. Default: http-client.env.json next to FILE.",
)
@click.option(
    "--dotenv",
    "dotenv_file",
    default=None,
    help=".env file read by {{$dotEnv NAME}} and {{$processEnv NAME}}.",
)
@click.option(
    "-c",
    "--config",
    "config_file",
    default=None,
    help="Config file path. Default: .httpdoc.yaml in CWD, then ~/.httpdoc/config.yaml.",
)
@click.option(
    "-v",
    "--var",
    multiple=True,
    help="Variable as key=value. Overrides every other source. Repeatable.",
)
@click.option(
    "--timeout",
    type=int,
    default=None,
    help="Request timeout in seconds. Default: 30.",
)
@click.option(
    "--verbose",
    is_flag=True,
    default=False,
    help="Include response headers in output.",
)
@click.option(
    "--raw",
    is_flag=True,
    default=False,
    help="Output the response body only. Useful for piping.",
)
@click.option(
    "--assert",
    "assert_exprs",
    multiple=True,
    help="Assert on each response: 'status=200', 'body.$.id!=0', "
    "'headers.Content-Type=application/json'. Repeatable.",
)
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug logging on stderr.",
)
def main(
    http_file,
    check,
    show_list,
    names,
    environment,
    environment_file,
    dotenv_file,
    config_file,
    var,
    timeout,
    verbose,
    raw,
    assert_exprs,
    debug,
):
    """Run the requests in an .http file."""
    from httpdoc.core import (
        DEFAULT_ENVIRONMENT,
        DEFAULT_ENVIRONMENT_FILE,
        config_relative_path,
        list_environments,
        load_config,
        load_env,
        load_environment,
        resolve_config_path,
    )
    from httpdoc.parser import parse_file

    setup_logging(verbose=debug)

    # --- Load config ---
    config_path = resolve_config_path(config_file)
    config = load_config(config_path)
    defaults = config.get("defaults", {})

    parsed = parse_file(http_file)

    # --- Dispatch ---

    if check:
        _cmd_check(parsed)
        return

    if show_list:
        _cmd_list(parsed)
        return

    if parsed.errors:
        _echo_diagnostics(parsed, parsed.errors)
        click.echo(f"ERROR: {len(parsed.errors)} parse error(s) in {http_file}", err=True)
        sys.exit(1)
    _echo_diagnostics(parsed, parsed.warnings)

    # Parse -v key=value pairs
    overrides = {}
    for v_str in var:
        if "=" in v_str:
            k, val = v_str.split("=", 1)
            overrides[k.strip()] = val.strip()

    http_dir = Path(http_file).resolve().parent

    env_path = (
        Path(environment_file)
        if environment_file
        else config_relative_path(defaults.get("environment_file"), config)
        or http_dir / DEFAULT_ENVIRONMENT_FILE
    )
    env_name = environment or defaults.get("environment") or DEFAULT_ENVIRONMENT

    dotenv_path = dotenv_file or config_relative_path(defaults.get("env_file"), config)

    try:
        variables = load_environment(env_path, env_name)
        known = list_environments(env_path)
        if known and env_name not in known:
            click.echo(
                f"WARNING: Environment '{env_name}' not found in {env_path}. "
                f"Available: {', '.join(known)}",
                err=True,
            )
        environ = load_env(dotenv_path)
        _cmd_run(
            parsed,
            list(names),
            variables=variables,
            overrides=overrides,
            environ=environ,
            timeout=_resolve_timeout(timeout, defaults.get("timeout")),
            verbose=verbose,
            raw=raw,
            assert_exprs=assert_exprs,
        )
    except HttpDocError as e:
        click.echo(f"ERROR: {e}", err=True)
        sys.exit(1)


# ── Subcommand implementations ──────────────────────────────────────────


def _cmd_check(parsed):
    from httpdoc.output import format_diagnostic

    for diagnostic in parsed.diagnostics:
        click.echo(format_diagnostic(parsed.file_path, diagnostic))
    if parsed.errors:
        sys.exit(1)
    click.echo(
        f"OK: {len(parsed.requests)} request(s), {len(parsed.warnings)} warning(s)",
    )


def _cmd_list(parsed):
    from httpdoc.output import format_request_list

    click.echo(f"Requests in: {parsed.file_path}")
    click.echo(f"{len(parsed.requests)} found:\n")
    click.echo(format_request_list(parsed))


def _cmd_run(
    parsed,
    names,
    variables,
    overrides,
    environ,
    timeout,
    verbose,
    raw,
    assert_exprs,
):
    import requests

    from httpdoc.runner import HttpFileRunner

    with requests.Session() as session:
        runner = HttpFileRunner(
            parsed,
            variables=variables,
            overrides=overrides,
            environ=environ,
            timeout=timeout,
            session=session,
        )
        planned = runner.plan(names)
        if not planned:
            click.echo("No requests to run.", err=True)
            sys.exit(1)

        exit_code = asyncio.run(
            _run_requests(
                runner,
                names,
                show_titles=len(planned) > 1 and not raw,
                verbose=verbose,
                raw=raw,
                assert_exprs=assert_exprs,
            ),
        )
    if exit_code:
        sys.exit(exit_code)


async def _run_requests(runner, names, show_titles, verbose, raw, assert_exprs):
    """Print each outcome as it arrives. Returns the process exit code."""
    from httpdoc.output import format_output

    async for outcome in runner.iter_run(names):
        if show_titles:
            click.echo(f"### {outcome.request.display_name}")
        if outcome.result.error:
            click.echo(f"ERROR: {outcome.result.error}", err=True)
            return 1
        click.echo(format_output(outcome.result, verbose=verbose, raw=raw))
        if not _handle_asserts(assert_exprs, outcome.result):
            return 1
    return 0


# ── Helpers ──────────────────────────────────────────────────────────────


def _echo_diagnostics(parsed, diagnostics):
    from httpdoc.output import format_diagnostic

    for diagnostic in diagnostics:
        click.echo(format_diagnostic(parsed.file_path, diagnostic), err=True)


def _resolve_timeout(*sources, default=30):
    """Return the first truthy timeout from sources, or default."""
    for t in sources:
        if t:
            return t
    return default


def _handle_asserts(assert_exprs, result):
    """Evaluate all --assert expressions. False on first failure."""
    from httpdoc.assertions import evaluate_assert

    for expr in assert_exprs or ():
        try:
            passed, message = evaluate_assert(expr, result)
        except ValueError as e:
            click.echo(f"ERROR: {e}", err=True)
            return False
        if not passed:
            click.echo(message, err=True)
            return False
    return True
