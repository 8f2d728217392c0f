from __future__ import annotations

import pytest

from im_provision import cli
from im_provision.errors import StageError
from im_provision.orchestrator import ProvisionResult


@pytest.fixture
def provision_calls(monkeypatch: pytest.MonkeyPatch) -> list:
    calls: list = []

    def fake_provision(cfg):  # noqa: ANN001
        calls.append(cfg)
        return ProvisionResult(project_id=cfg.project_id, deployment_name="dynamic-web-app")

    monkeypatch.setattr(cli, "provision", fake_provision)
    return calls


def test_missing_project_flag_exits_1_without_calls(provision_calls, fake_gcloud, capsys) -> None:  # noqa: ANN001
    with pytest.raises(SystemExit) as excinfo:
        cli.main([])

    assert excinfo.value.code == 1
    assert provision_calls == []
    assert fake_gcloud.calls == []
    assert "Usage" in capsys.readouterr().err


def test_unknown_flag_exits_1(provision_calls, fake_gcloud) -> None:  # noqa: ANN001
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["-p", "acme-1", "-x"])

    assert excinfo.value.code == 1
    assert provision_calls == []
    assert fake_gcloud.calls == []


def test_empty_project_id_exits_1(provision_calls) -> None:  # noqa: ANN001
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["-p", ""])

    assert excinfo.value.code == 1
    assert provision_calls == []


def test_success_prints_summary(tmp_path, provision_calls, clean_env, capsys) -> None:  # noqa: ANN001
    cli.main(["-p", "acme-1", "-C", str(tmp_path)])

    assert len(provision_calls) == 1
    assert provision_calls[0].project_id == "acme-1"
    assert provision_calls[0].base_dir == str(tmp_path)
    out = capsys.readouterr().out
    assert "# Provision summary" in out
    assert "Deployment completed successfully!" in out


def test_stage_error_maps_to_exit_code(tmp_path, monkeypatch: pytest.MonkeyPatch, clean_env, capsys) -> None:  # noqa: ANN001
    def failing(cfg):  # noqa: ANN001, ARG001
        raise StageError("resolve-service-account", "no service account", exit_code=1)

    monkeypatch.setattr(cli, "provision", failing)

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["-p", "acme-1", "-C", str(tmp_path)])

    assert excinfo.value.code == 1
    assert "stage=resolve-service-account" in capsys.readouterr().err


def test_command_exit_code_is_propagated(tmp_path, monkeypatch: pytest.MonkeyPatch, clean_env) -> None:  # noqa: ANN001
    def failing(cfg):  # noqa: ANN001, ARG001
        raise StageError("write-tfvars", "describe failed", exit_code=7)

    monkeypatch.setattr(cli, "provision", failing)

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["-p", "acme-1", "-C", str(tmp_path)])

    assert excinfo.value.code == 7


def test_missing_credentials_reports_bucket_stage(tmp_path, monkeypatch: pytest.MonkeyPatch, fake_gcloud, clean_env, capsys) -> None:  # noqa: ANN001
    from google.auth.exceptions import DefaultCredentialsError

    from im_provision import gcp_gcs

    (tmp_path / "roles.txt").write_text("roles/viewer\n", encoding="utf-8")
    (tmp_path / "infra").mkdir()
    fake_gcloud.on(
        "describe",
        stdout={"serviceAccount": "projects/acme-1/serviceAccounts/sa@acme-1.iam.gserviceaccount.com"},
    )

    def no_credentials(project=None):  # noqa: ANN001, ARG001
        raise DefaultCredentialsError("Your default credentials were not found")

    monkeypatch.setattr(gcp_gcs.storage, "Client", no_credentials)

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["-p", "acme-1", "-C", str(tmp_path)])

    assert excinfo.value.code == 1
    err = capsys.readouterr().err
    assert "stage=staging-bucket" in err
    assert "DefaultCredentialsError" in err
    assert fake_gcloud.calls_with("apply") == []
