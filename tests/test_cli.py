"""CLI integration tests: --check, --list and running .http files."""

import json
from unittest.mock import patch

import yaml

from httpdoc.cli import main
from tests.conftest import make_request_result, write_http_file

CHAINED = """\
@baseUrl = http://localhost:5000

# @name login
POST {{baseUrl}}/auth/login
Content-Type: application/json

{"username": "admin"}

###
# @name profile
GET {{baseUrl}}/me
Authorization: Bearer {{login.response.body.$.token}}

###
GET {{baseUrl}}/health
"""


def _urls(mock_exec):
    return [c.args[1] for c in mock_exec.call_args_list]


# ── --check ──────────────────────────────────────────────────────────────


class TestCheckCli:
    def test_clean_file(self, runner, tmp_project, global_httpdoc_dir):
        http_file = write_http_file(tmp_project, CHAINED)
        result = runner.invoke(main, [str(http_file), "--check"])
        assert result.exit_code == 0
        assert "OK: 3 request(s), 0 warning(s)" in result.output

    def test_malformed_request_line_exits_1(self, runner, tmp_project, global_httpdoc_dir):
        http_file = write_http_file(tmp_project, "GET\n")
        result = runner.invoke(main, [str(http_file), "--check"])
        assert result.exit_code == 1
        assert f"{http_file}:1:1: error DOTHTTP001: Malformed request line: 'GET'" in result.output

    def test_warnings_only_exit_0(self, runner, tmp_project, global_httpdoc_dir):
        http_file = write_http_file(tmp_project, "FETCH http://x.test\n")
        result = runner.invoke(main, [str(http_file), "--check"])
        assert result.exit_code == 0
        assert "warning DOTHTTP005" in result.output
        assert "OK: 1 request(s), 1 warning(s)" in result.output

    def test_missing_file(self, runner, tmp_project, global_httpdoc_dir):
        result = runner.invoke(main, [str(tmp_project / "nope.http"), "--check"])
        assert result.exit_code == 2


# ── --list ───────────────────────────────────────────────────────────────


class TestListCli:
    def test_lists_requests(self, runner, tmp_project, global_httpdoc_dir):
        http_file = write_http_file(tmp_project, CHAINED)
        result = runner.invoke(main, [str(http_file), "--list"])
        assert result.exit_code == 0
        assert "3 found" in result.output
        assert "@login" in result.output
        assert "(depends: login)" in result.output


# ── Running ──────────────────────────────────────────────────────────────


class TestRunCli:
    @patch("httpdoc.executor.execute_request")
    def test_runs_all_with_chaining(self, mock_exec, runner, tmp_project, global_httpdoc_dir):
        mock_exec.side_effect = [
            make_request_result(body={"token": "abc123"}),
            make_request_result(body={"name": "admin"}),
            make_request_result(body="ok"),
        ]
        http_file = write_http_file(tmp_project, CHAINED)
        result = runner.invoke(main, [str(http_file)])

        assert result.exit_code == 0
        assert _urls(mock_exec) == [
            "http://localhost:5000/auth/login",
            "http://localhost:5000/me",
            "http://localhost:5000/health",
        ]
        assert mock_exec.call_args_list[1].kwargs["headers"]["Authorization"] == "Bearer abc123"
        assert "### login" in result.output
        assert "### GET {{baseUrl}}/health" in result.output
        assert "STATUS: 200" in result.output

    @patch("httpdoc.executor.execute_request")
    def test_name_runs_dependencies_first(self, mock_exec, runner, tmp_project, global_httpdoc_dir):
        mock_exec.side_effect = [
            make_request_result(body={"token": "t"}),
            make_request_result(body={"name": "admin"}),
        ]
        http_file = write_http_file(tmp_project, CHAINED)
        result = runner.invoke(main, [str(http_file), "-n", "profile"])
        assert result.exit_code == 0
        assert _urls(mock_exec) == ["http://localhost:5000/auth/login", "http://localhost:5000/me"]

    @patch("httpdoc.executor.execute_request")
    def test_single_request_has_no_title(self, mock_exec, runner, tmp_project, global_httpdoc_dir):
        mock_exec.return_value = make_request_result(body={"token": "t"})
        http_file = write_http_file(tmp_project, CHAINED)
        result = runner.invoke(main, [str(http_file), "-n", "login"])
        assert result.exit_code == 0
        assert result.output.startswith("STATUS: 200")

    @patch("httpdoc.executor.execute_request")
    def test_raw_output(self, mock_exec, runner, tmp_project, global_httpdoc_dir):
        mock_exec.return_value = make_request_result(body={"token": "t"})
        http_file = write_http_file(tmp_project, CHAINED)
        result = runner.invoke(main, [str(http_file), "-n", "login", "--raw"])
        assert json.loads(result.output) == {"token": "t"}

    @patch("httpdoc.executor.execute_request")
    def test_cli_var_overrides(self, mock_exec, runner, tmp_project, global_httpdoc_dir):
        mock_exec.return_value = make_request_result(body="ok")
        http_file = write_http_file(tmp_project, "@host = a.test\nGET http://{{host}}/x\n")
        result = runner.invoke(main, [str(http_file), "-v", "host=b.test"])
        assert result.exit_code == 0
        assert _urls(mock_exec) == ["http://b.test/x"]

    @patch("httpdoc.executor.execute_request")
    def test_parse_error_aborts_before_sending(self, mock_exec, runner, tmp_project, global_httpdoc_dir):
        http_file = write_http_file(tmp_project, "GET http://x.test\nbroken header\n")
        result = runner.invoke(main, [str(http_file)])
        assert result.exit_code == 1
        assert "DOTHTTP002" in result.output
        assert not mock_exec.called

    @patch("httpdoc.executor.execute_request")
    def test_transport_error_exits_1(self, mock_exec, runner, tmp_project, global_httpdoc_dir):
        mock_exec.return_value = make_request_result(error="Connection error: refused")
        http_file = write_http_file(tmp_project, CHAINED)
        result = runner.invoke(main, [str(http_file)])
        assert result.exit_code == 1
        assert "ERROR: Connection error: refused" in result.output
        assert mock_exec.call_count == 1

    @patch("httpdoc.executor.requests.Session.request")
    def test_unencodable_header_exits_1(self, mock_send, runner, tmp_project, global_httpdoc_dir):
        mock_send.side_effect = UnicodeEncodeError("latin-1", "日本", 0, 2, "ordinal not in range(256)")
        http_file = write_http_file(tmp_project, "GET http://x.test\nX-Name: 日本\n")
        result = runner.invoke(main, [str(http_file)])
        assert result.exit_code == 1
        assert "ERROR: Unexpected error:" in result.output

    @patch("httpdoc.executor.execute_request")
    def test_circular_dependency_exits_1(self, mock_exec, runner, tmp_project, global_httpdoc_dir):
        content = (
            "# @name a\nGET http://x.test/{{b.response.body.$.id}}\n\n"
            "###\n# @name b\nGET http://x.test/{{a.response.body.$.id}}\n"
        )
        http_file = write_http_file(tmp_project, content)
        result = runner.invoke(main, [str(http_file), "-n", "a"])
        assert result.exit_code == 1
        assert "ERROR: Circular dependency: a → b → a" in result.output
        assert not mock_exec.called

    @patch("httpdoc.executor.execute_request")
    def test_missing_body_file_exits_1(self, mock_exec, runner, tmp_project, global_httpdoc_dir):
        http_file = write_http_file(tmp_project, "POST http://x.test\n\n< missing.json\n")
        result = runner.invoke(main, [str(http_file)])
        assert result.exit_code == 1
        assert "ERROR: Body file not found" in result.output

    @patch("httpdoc.executor.execute_request")
    def test_unknown_name(self, mock_exec, runner, tmp_project, global_httpdoc_dir):
        http_file = write_http_file(tmp_project, CHAINED)
        result = runner.invoke(main, [str(http_file), "-n", "nope"])
        assert result.exit_code == 1
        assert "No requests to run" in result.output


# ── Environments and config ──────────────────────────────────────────────


class TestEnvironmentCli:
    @patch("httpdoc.executor.execute_request")
    def test_environment_file_next_to_http_file(self, mock_exec, runner, tmp_project, global_httpdoc_dir):
        mock_exec.return_value = make_request_result(body="ok")
        (tmp_project / "http-client.env.json").write_text(
            json.dumps({"dev": {"host": "dev.test"}, "prod": {"host": "prod.test"}}),
        )
        http_file = write_http_file(tmp_project, "GET http://{{host}}/x\n")

        runner.invoke(main, [str(http_file)])
        runner.invoke(main, [str(http_file), "-e", "prod"])
        assert _urls(mock_exec) == ["http://dev.test/x", "http://prod.test/x"]

    @patch("httpdoc.executor.execute_request")
    def test_unknown_environment_warns(self, mock_exec, runner, tmp_project, global_httpdoc_dir):
        mock_exec.return_value = make_request_result(body="ok")
        (tmp_project / "http-client.env.json").write_text(json.dumps({"dev": {}}))
        http_file = write_http_file(tmp_project, "GET http://x.test\n")
        result = runner.invoke(main, [str(http_file), "-e", "qa"])
        assert result.exit_code == 0
        assert "WARNING: Environment 'qa' not found" in result.output

    @patch("httpdoc.executor.execute_request")
    def test_invalid_environment_file(self, mock_exec, runner, tmp_project, global_httpdoc_dir):
        (tmp_project / "broken.json").write_text("{nope")
        http_file = write_http_file(tmp_project, "GET http://x.test\n")
        result = runner.invoke(main, [str(http_file), "--env-file", str(tmp_project / "broken.json")])
        assert result.exit_code == 1
        assert "ERROR: Invalid environment file" in result.output
        assert not mock_exec.called

    @patch("httpdoc.executor.execute_request")
    def test_dotenv(self, mock_exec, runner, tmp_project, global_httpdoc_dir):
        mock_exec.return_value = make_request_result(body="ok")
        (tmp_project / ".env.test").write_text("API_TOKEN=from-dotenv\n")
        http_file = write_http_file(
            tmp_project,
            "GET http://x.test\nAuthorization: Bearer {{$dotEnv API_TOKEN}}\n",
        )
        runner.invoke(main, [str(http_file), "--dotenv", str(tmp_project / ".env.test")])
        assert mock_exec.call_args.kwargs["headers"]["Authorization"] == "Bearer from-dotenv"

    @patch("httpdoc.executor.execute_request")
    def test_config_defaults(self, mock_exec, runner, tmp_project, global_httpdoc_dir):
        mock_exec.return_value = make_request_result(body="ok")
        envs = tmp_project / "config" / "envs.json"
        envs.parent.mkdir()
        envs.write_text(json.dumps({"staging": {"host": "staging.test"}}))
        (tmp_project / ".httpdoc.yaml").write_text(
            yaml.dump(
                {
                    "defaults": {
                        "environment": "staging",
                        "environment_file": "config/envs.json",
                        "timeout": 7,
                    },
                },
            ),
        )
        http_file = write_http_file(tmp_project, "GET http://{{host}}/x\n")
        result = runner.invoke(main, [str(http_file)])
        assert result.exit_code == 0
        assert _urls(mock_exec) == ["http://staging.test/x"]
        assert mock_exec.call_args.kwargs["timeout"] == 7

    @patch("httpdoc.executor.execute_request")
    def test_timeout_flag_beats_config(self, mock_exec, runner, tmp_project, global_httpdoc_dir):
        mock_exec.return_value = make_request_result(body="ok")
        (tmp_project / ".httpdoc.yaml").write_text(yaml.dump({"defaults": {"timeout": 7}}))
        http_file = write_http_file(tmp_project, "GET http://x.test\n")
        runner.invoke(main, [str(http_file), "--timeout", "2"])
        assert mock_exec.call_args.kwargs["timeout"] == 2


class TestHelp:
    def test_help_mentions_modes(self, runner):
        result = runner.invoke(main, ["--help"])
        assert result.exit_code == 0
        assert "--check" in result.output
        assert "RESPONSE REFERENCES" in result.output
