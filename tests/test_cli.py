"""Tests for the reimage / reimage-async / reboot-instances commands."""

from unittest.mock import Mock

import pytest

import reimage
from cloud_service_client.errors import ManagementAPIError
from tests.conftest import BUSY, READY, make_snapshot


@pytest.fixture
def certificate(tmp_path):
    path = tmp_path / "management.pem"
    path.write_text("-----BEGIN CERTIFICATE-----\n", encoding="utf-8")
    return path


@pytest.fixture
def install_client(monkeypatch, fake_client_factory):
    """Replace the HTTP client with a scripted fake and remember how it was built."""
    created = {}

    def install(snapshots):
        fake = fake_client_factory(snapshots)

        def build(subscription_id, certificate_file, config=None):
            created.update(subscription_id=subscription_id, certificate_file=certificate_file, config=config)
            return fake

        monkeypatch.setattr(reimage, "ServiceManagementClient", build)
        return fake

    install.created = created
    return install


def cycle(*names):
    """Snapshots for a sequential run over ``names``: initial roster, then busy/ready per instance."""
    snapshots = [make_snapshot(*((name, READY) for name in names))]
    for name in names:
        snapshots.append(make_snapshot(*((other, BUSY if other == name else READY) for other in names)))
        snapshots.append(make_snapshot(*((other, READY) for other in names)))
    return snapshots


class TestUsage:
    """Argument validation."""

    def test_missing_arguments_exit_with_usage(self, capsys):
        assert reimage.main_reimage([]) == 1

        assert "usage: reimage <subscription-id> <certificate-filepath> <service-name>" in capsys.readouterr().err

    def test_missing_service_name(self, certificate, capsys):
        assert reimage.main_reimage(["sub-1", str(certificate)]) == 1
        assert "usage:" in capsys.readouterr().err

    def test_unreadable_certificate(self, tmp_path, capsys):
        assert reimage.main_reimage_async(["sub-1", str(tmp_path / "missing.pem"), "web"]) == 1
        assert "usage: reimage-async" in capsys.readouterr().err

    def test_invalid_option_exits_with_one(self, certificate):
        with pytest.raises(SystemExit) as excinfo:
            reimage.main_reimage(["sub-1", str(certificate), "web", "--slot", "Nowhere"])

        assert excinfo.value.code == 1


class TestCommands:
    """Dispatching to the orchestrator."""

    def test_reimage_is_sequential_on_production(self, certificate, install_client):
        fake = install_client(cycle("A", "B"))

        exit_code = reimage.main_reimage(["sub-1", str(certificate), "web", "--poll-seconds", "0"])

        assert exit_code == 0
        assert fake.actions("reimage") == ["A", "B"]
        assert fake.calls[0] == ("get_snapshot", "web", reimage.DeploymentSlot.PRODUCTION)
        assert install_client.created["subscription_id"] == "sub-1"

    def test_reimage_async_is_batched(self, certificate, install_client):
        fake = install_client(
            [
                make_snapshot(("A", READY), ("B", READY)),
                make_snapshot(("A", BUSY), ("B", BUSY)),
                make_snapshot(("A", READY), ("B", READY)),
            ]
        )

        exit_code = reimage.main_reimage_async(["sub-1", str(certificate), "web", "--poll-seconds", "0"])

        assert exit_code == 0
        assert [call[0] for call in fake.calls] == [
            "get_snapshot",
            "reimage",
            "reimage",
            "get_snapshot",
            "get_snapshot",
        ]

    def test_reboot_single_instance_on_staging(self, certificate, install_client):
        fake = install_client(cycle("A", "B"))

        exit_code = reimage.main_reboot(
            [
                "sub-1",
                str(certificate),
                "web",
                "--slot",
                "Staging",
                "--instance",
                "A",
                "--poll-seconds",
                "0",
            ]
        )

        assert exit_code == 0
        assert fake.calls[1] == ("reboot", "web", "A", reimage.DeploymentSlot.STAGING)
        assert fake.actions("reboot") == ["A"]

    def test_orchestration_failure_exits_non_zero(self, certificate, install_client, capsys):
        install_client([make_snapshot(("A", READY))])

        exit_code = reimage.main_reimage(
            ["sub-1", str(certificate), "web", "--poll-seconds", "0", "--max-polls", "2"]
        )

        assert exit_code == 1
        assert "Timed out after 2 poll(s)" in capsys.readouterr().out

    def test_settings_file_supplies_endpoint_and_polling(self, tmp_path, certificate, install_client):
        settings = tmp_path / "settings.yaml"
        settings.write_text(
            "management:\n"
            "  endpoint: https://management.example.test\n"
            "polling:\n"
            "  interval_seconds: 0\n",
            encoding="utf-8",
        )
        fake = install_client(cycle("A"))

        exit_code = reimage.main_reimage(["sub-1", str(certificate), "web", "--config", str(settings)])

        assert exit_code == 0
        assert fake.actions("reimage") == ["A"]
        config = install_client.created["config"]
        assert config.subscription_id == "sub-1"
        assert config.endpoint == "https://management.example.test"

    def test_missing_settings_file(self, tmp_path, certificate, capsys):
        exit_code = reimage.main_reimage(
            ["sub-1", str(certificate), "web", "--config", str(tmp_path / "absent.yaml")]
        )

        assert exit_code == 1
        assert "Configuration Error" in capsys.readouterr().out

    def test_unreadable_roster_prints_error_line(self, certificate, monkeypatch, capsys):
        client = Mock()
        client.get_snapshot.side_effect = ManagementAPIError(200, "Unreadable deployment document for web: syntax error")
        monkeypatch.setattr(reimage, "ServiceManagementClient", lambda *args, **kwargs: client)

        exit_code = reimage.main_reimage(["sub-1", str(certificate), "web"])

        assert exit_code == 1
        assert "Error: Management API returned HTTP 200" in capsys.readouterr().out
