"""Tests for the ingressbridge CLI."""

from __future__ import annotations

import json
import os
from unittest.mock import AsyncMock, patch

import pytest
import structlog
import yaml
from builders import backend, gateway_manifest, http_path, ingress_manifest, listener
from click.testing import CliRunner

from ingressbridge.cli import main
from ingressbridge.core.config import clear_config


@pytest.fixture(autouse=True)
def _reset_globals():
    yield
    clear_config()
    structlog.reset_defaults()


def _write_manifests(path, *docs):
    path.write_text(yaml.safe_dump_all(list(docs)))
    return str(path)


def _rule(host: str, *paths) -> dict:
    return {"host": host, "http": {"paths": list(paths)}}


GATEWAY = gateway_manifest("edge", "web", [listener("http"), listener("https", "*.example.com")])


class TestCLIBasics:
    """Basic CLI tests."""

    def test_main_without_arguments_shows_usage(self):
        runner = CliRunner()
        result = runner.invoke(main)

        assert result.exit_code == 0
        assert "Usage:" in result.output
        assert "ingressbridge render" in result.output

    def test_main_with_help(self):
        runner = CliRunner()
        result = runner.invoke(main, ["--help"])

        assert result.exit_code == 0
        assert "Gateway API HTTPRoutes" in result.output
        assert "render" in result.output

    def test_version_command(self):
        """Test version command."""
        from ingressbridge import __version__

        runner = CliRunner()
        result = runner.invoke(main, ["version"])

        assert result.exit_code == 0
        assert "Version:" in result.output
        assert __version__ in result.output
        assert "Python:" in result.output


class TestConfigCommand:
    """Tests for config show."""

    def test_show_json(self):
        runner = CliRunner()
        result = runner.invoke(main, ["config", "show", "--json"])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["synthesis"]["require_hostname"] is False
        assert data["controller"]["workers"] == 4

    def test_show_env_override(self):
        runner = CliRunner()
        with patch.dict(os.environ, {"INGRESSBRIDGE_REQUIRE_HOSTNAME": "true"}):
            result = runner.invoke(main, ["config", "show", "--json"])

        assert json.loads(result.stdout)["synthesis"]["require_hostname"] is True

    def test_show_config_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("workers: 7\n")

        runner = CliRunner()
        result = runner.invoke(main, ["-c", str(path), "config", "show", "--json"])

        assert result.exit_code == 0
        assert json.loads(result.stdout)["controller"]["workers"] == 7

    def test_show_section(self):
        runner = CliRunner()
        result = runner.invoke(main, ["config", "show", "--json", "--section", "logging"])

        assert result.exit_code == 0
        assert list(json.loads(result.stdout)) == ["logging"]

    def test_show_unknown_section(self):
        runner = CliRunner()
        result = runner.invoke(main, ["config", "show", "--section", "nope"])
        assert result.exit_code == 1

    def test_show_table(self):
        runner = CliRunner()
        result = runner.invoke(main, ["config", "show"])

        assert result.exit_code == 0
        assert "Synthesis" in result.output
        assert "workers" in result.output

    def test_invalid_config_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("workers: 0\n")

        runner = CliRunner()
        result = runner.invoke(main, ["-c", str(path), "config", "show"])

        assert result.exit_code == 1


class TestRenderCommand:
    """Tests for offline rendering."""

    def test_render_yaml(self, tmp_path):
        path = _write_manifests(
            tmp_path / "all.yaml",
            ingress_manifest(rules=[
                _rule("a.example.com", http_path("/", "shop")),
                _rule("b.example.com", http_path("/", "shop")),
            ]),
            GATEWAY,
        )

        runner = CliRunner()
        result = runner.invoke(main, ["--log-level", "error", "render", "-f", path])

        assert result.exit_code == 0
        routes = list(yaml.safe_load_all(result.stdout))
        assert [r["metadata"]["name"] for r in routes] == ["shop-a-example-com", "shop-b-example-com"]
        assert routes[0]["kind"] == "HTTPRoute"
        assert routes[0]["spec"]["hostnames"] == ["a.example.com"]
        assert "resourceVersion" not in routes[0]["metadata"]
        assert routes[0]["metadata"]["ownerReferences"][0]["name"] == "shop"

    def test_render_json_multiple_files(self, tmp_path):
        ingress = _write_manifests(
            tmp_path / "ingress.yaml", ingress_manifest(default_backend=backend("shop", 8080))
        )
        gateway = _write_manifests(tmp_path / "gateway.yaml", GATEWAY)

        runner = CliRunner()
        result = runner.invoke(
            main, ["--log-level", "error", "render", "-f", ingress, "-f", gateway, "-o", "json"]
        )

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["kind"] == "List"
        assert [item["metadata"]["name"] for item in data["items"]] == ["shop"]
        assert "hostnames" not in data["items"][0]["spec"]

    def test_render_failure_keeps_other_ingresses(self, tmp_path):
        """An Ingress that cannot be rendered fails the command, others still print."""
        path = _write_manifests(
            tmp_path / "all.yaml",
            ingress_manifest(name="good", rules=[_rule("a.example.com", http_path("/", "shop"))]),
            ingress_manifest(
                name="bad", rules=[_rule("b.example.com", http_path("/", "missing", "http"))]
            ),
            GATEWAY,
        )

        runner = CliRunner()
        result = runner.invoke(main, ["--log-level", "error", "render", "-f", path, "-o", "json"])

        assert result.exit_code == 1
        names = [item["metadata"]["name"] for item in json.loads(result.stdout)["items"]]
        assert names == ["good-a-example-com"]

    def test_render_invalid_manifest(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("kind: [unclosed\n")

        runner = CliRunner()
        result = runner.invoke(main, ["render", "-f", str(path)])

        assert result.exit_code == 1

    def test_render_requires_file(self):
        runner = CliRunner()
        result = runner.invoke(main, ["render"])
        assert result.exit_code != 0


class TestRunCommand:
    """Tests for the run command with the cluster mocked out."""

    def test_run_builds_controller(self):
        runner = CliRunner()
        with (
            patch("ingressbridge.store.load_kubernetes_config") as load_config,
            patch("ingressbridge.store.KubernetesStore") as store_class,
            patch("ingressbridge.controller.Controller") as controller_class,
            patch("ingressbridge.cli._run_controller", new_callable=AsyncMock) as run_controller,
        ):
            result = runner.invoke(
                main,
                ["run", "--context", "staging", "-n", "shop", "-w", "2", "--require-hostname"],
            )

        assert result.exit_code == 0, result.output
        load_config.assert_called_once_with(None, "staging")
        store_class.assert_called_once_with(request_timeout=30.0)
        config = controller_class.call_args.args[1]
        assert config.watch_namespace == "shop"
        assert config.workers == 2
        assert config.require_hostname is True
        assert config.cross_namespace is False
        run_controller.assert_awaited_once_with(controller_class.return_value)

    def test_run_without_cluster_access(self):
        runner = CliRunner()
        with patch(
            "ingressbridge.store.load_kubernetes_config", side_effect=Exception("no config")
        ):
            result = runner.invoke(main, ["run"])

        assert result.exit_code == 1

    def test_run_rejects_zero_workers(self):
        runner = CliRunner()
        result = runner.invoke(main, ["run", "-w", "0"])
        assert result.exit_code == 1
