"""Shared fixtures for CLI tests."""

from pathlib import Path
from unittest.mock import patch

import pytest
import yaml


@pytest.fixture(autouse=True)
def no_logging_setup():
    """Keep the CLI from reconfiguring the root logger during tests."""
    with (
        patch("plugin_broker.cli.run_cmd.configure_logging") as run_mock,
        patch("plugin_broker.cli.plan_cmd.configure_logging"),
    ):
        yield run_mock


@pytest.fixture
def metas_file(tmp_path: Path) -> Path:
    """Preformed meta list with one server plugin and one sidecar extension."""
    path = tmp_path / "metas.yaml"
    path.write_text(
        yaml.dump(
            [
                {
                    "apiVersion": "v2",
                    "id": "a/exec/1",
                    "type": "Che Plugin",
                    "publisher": "a",
                    "name": "exec",
                    "version": "1",
                    "description": "Exec",
                    "spec": {"containers": [{"name": "exec", "image": "exec:1"}]},
                },
                {
                    "apiVersion": "v2",
                    "id": "b/java/2",
                    "type": "VS Code extension",
                    "publisher": "b",
                    "name": "java",
                    "version": "2",
                    "spec": {
                        "extensions": ["https://x/java.vsix"],
                        "containers": [{"name": "java", "image": "java:2"}],
                    },
                },
            ]
        )
    )
    return path
