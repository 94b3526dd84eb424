"""Fixtures for running the command line tool against fake binaries."""

from collections.abc import Callable
import json
from pathlib import Path

import pytest
import yaml

TESTDATA = Path("tests/testdata/charts")

# Knows no releases, except an existing kube-state-metrics when EXISTING_VERSION
# is set. Installs always succeed.
FAKE_HELM = """
echo "$@" >> {log}
case "$1" in
status)
    if [ -n "{existing_version}" ]; then
        echo '{{"info": {{"status": "deployed"}}, "chart": {{"metadata": {{"version": "{existing_version}"}}}}}}'
    else
        echo 'Error: release: not found' >&2
        exit 1
    fi
    ;;
get)
    echo '{{"replicas": 1}}'
    ;;
install)
    echo "NAME: $2"
    ;;
esac
"""

# An empty cluster apart from the Chart resources in {charts}.
FAKE_KUBECTL = """
echo "$@" >> {log}
case "$1" in
get)
    case "$2" in
    charts.application.giantswarm.io) cat {charts} ;;
    *)
        if [ "$3" = "--namespace" ]; then
            echo '{{"items": []}}'
        fi
        ;;
    esac
    ;;
create)
    cat > /dev/null
    ;;
esac
"""


@pytest.fixture(name="existing_version")
def existing_version_fixture() -> str:
    """Version of an existing native release, empty if there is none."""
    return ""


@pytest.fixture(name="helm_log")
def helm_log_fixture(tmp_path: Path) -> Path:
    """File the fake helm binary writes its arguments to."""
    return tmp_path / "helm.log"


@pytest.fixture(name="kubectl_log")
def kubectl_log_fixture(tmp_path: Path) -> Path:
    """File the fake kubectl binary writes its arguments to."""
    return tmp_path / "kubectl.log"


@pytest.fixture(name="cluster_flags")
def cluster_flags_fixture(
    tmp_path: Path,
    fake_bin: Callable[[str, str], str],
    existing_version: str,
    helm_log: Path,
    kubectl_log: Path,
) -> list[str]:
    """Flags pointing the tool at the fake binaries."""
    doc = yaml.safe_load((TESTDATA / "kube-state-metrics.yaml").read_text())
    charts = tmp_path / "charts.json"
    charts.write_text(json.dumps({"items": [doc]}))
    helm_bin = fake_bin(
        "helm", FAKE_HELM.format(log=helm_log, existing_version=existing_version)
    )
    kubectl_bin = fake_bin(
        "kubectl", FAKE_KUBECTL.format(log=kubectl_log, charts=charts)
    )
    return ["--helm-bin", helm_bin, "--kubectl-bin", kubectl_bin]
