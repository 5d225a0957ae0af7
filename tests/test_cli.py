"""
Tests for the command line interface, run in-process with click's CliRunner.
"""
import pytest
from click.testing import CliRunner

from passman.cli import cli

from conftest import MASTER_PASSWORD

UNLOCK = f"{MASTER_PASSWORD}\n"


@pytest.fixture
def runner(passman_home):
    return CliRunner(env={"PASSMAN_HOME": str(passman_home)})


@pytest.fixture
def initialized(runner):
    result = runner.invoke(
        cli, ["init", "--email", "owner@example.com"], input=UNLOCK * 2
    )
    assert result.exit_code == 0, result.output
    return runner


def add(runner, name, password="s3cret-value", *extra):
    return runner.invoke(
        cli,
        ["add", "--name", name, *extra],
        input=UNLOCK + f"{password}\n{password}\n",
    )


def test_init_creates_vault(initialized, passman_home):
    assert (passman_home / "vaults" / "default.vault").exists()


def test_init_twice_fails(initialized):
    result = initialized.invoke(cli, ["init", "--email", "x@example.com"], input=UNLOCK * 2)
    assert result.exit_code == 1
    assert "already exists" in result.output


def test_init_rejects_weak_password(runner):
    result = runner.invoke(cli, ["init", "--email", "x@example.com"], input="weak\nweak\n")
    assert result.exit_code == 1
    assert "at least 8 characters" in result.output


def test_add_list_show(initialized):
    result = add(initialized, "GitHub", "abc123", "--type", "work", "--username", "octocat")
    assert result.exit_code == 0, result.output
    assert "Account 'GitHub' saved" in result.output

    listed = initialized.invoke(cli, ["list"], input=UNLOCK)
    assert listed.exit_code == 0, listed.output
    assert "GitHub" in listed.output
    assert "octocat" in listed.output
    assert "abc123" not in listed.output

    shown = initialized.invoke(cli, ["show", "GitHub", "--show-password"], input=UNLOCK)
    assert shown.exit_code == 0, shown.output
    assert "abc123" in shown.output

    hidden = initialized.invoke(cli, ["show", "github"], input=UNLOCK)
    assert "abc123" not in hidden.output
    assert "******" in hidden.output


def test_add_generated_password(initialized):
    result = initialized.invoke(
        cli, ["add", "--name", "Bank", "--generate", "--length", "24"], input=UNLOCK
    )
    assert result.exit_code == 0, result.output
    assert "Generated password" in result.output


def test_show_unknown_suggests(initialized):
    add(initialized, "GitHub")
    result = initialized.invoke(cli, ["show", "Git"], input=UNLOCK)
    assert result.exit_code == 1
    assert "Did you mean" in result.output
    assert "GitHub" in result.output


def test_delete(initialized):
    add(initialized, "GitHub")
    result = initialized.invoke(cli, ["delete", "GitHub", "--force"], input=UNLOCK)
    assert result.exit_code == 0, result.output

    listed = initialized.invoke(cli, ["list"], input=UNLOCK)
    assert "No accounts found" in listed.output


def test_wrong_master_password(initialized):
    result = initialized.invoke(cli, ["list"], input="WrongHorse1!\n")
    assert result.exit_code == 1
    assert "Invalid master password" in result.output


def test_missing_vault(runner):
    result = runner.invoke(cli, ["--vault", "ghost", "list"], input=UNLOCK)
    assert result.exit_code == 1
    assert "not found" in result.output


def test_generate_needs_no_vault(runner):
    result = runner.invoke(cli, ["generate", "--length", "20", "--count", "3"])
    assert result.exit_code == 0, result.output
    lines = result.output.split()
    assert len(lines) == 3
    assert all(len(line) == 20 for line in lines)


def test_generate_rejects_no_classes(runner):
    result = runner.invoke(
        cli, ["generate", "--no-special", "--no-numbers", "--no-uppercase", "--no-lowercase"]
    )
    assert result.exit_code == 1


def test_vaults_and_delete_vault(initialized):
    result = initialized.invoke(cli, ["vaults"])
    assert "default" in result.output

    result = initialized.invoke(cli, ["delete-vault", "default", "--force"])
    assert result.exit_code == 0, result.output

    result = initialized.invoke(cli, ["vaults"])
    assert "No vaults yet" in result.output


def test_export_import(initialized, tmp_path):
    add(initialized, "GitHub")
    export_path = tmp_path / "default.export"
    result = initialized.invoke(cli, ["export", str(export_path)], input=UNLOCK)
    assert result.exit_code == 0, result.output
    assert export_path.exists()

    add(initialized, "Extra")
    result = initialized.invoke(cli, ["import", str(export_path), "--force"], input=UNLOCK)
    assert result.exit_code == 0, result.output
    assert "Imported 1 account(s)" in result.output


def test_info(initialized):
    result = initialized.invoke(cli, ["info"], input=UNLOCK)
    assert result.exit_code == 0, result.output
    assert "owner@example.com" in result.output
    assert "Backups" in result.output
