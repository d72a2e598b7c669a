from collections import OrderedDict

import pytest

from rollout.confirm import ZERO_ADDRESS, _confirm_resolution, _continue
from rollout.exceptions import DeploymentAborted
from tests.conftest import make_address


@pytest.fixture
def answers(monkeypatch):
    """Scripted replies to click.confirm; records every question asked."""
    questions = list()
    replies = list()

    def confirm(text, default=False):
        questions.append(text)
        return replies.pop(0)

    monkeypatch.setattr("rollout.confirm.click.confirm", confirm)
    return questions, replies


def test_continue_declined(answers):
    questions, replies = answers
    replies.append(False)
    with pytest.raises(DeploymentAborted, match="Deployment declined"):
        _continue()


def test_confirm_shows_arguments(answers, capsys):
    questions, replies = answers
    replies.append(True)
    _confirm_resolution(OrderedDict([("_factory", make_address(2)), ("_fee", 500)]), "Router")

    out = capsys.readouterr().out
    assert f"_factory={make_address(2)}" in out
    assert "_fee=500" in out
    assert questions == ["Deploy Router?"]


def test_contract_without_arguments(answers, capsys):
    questions, replies = answers
    replies.append(True)
    _confirm_resolution(OrderedDict(), "Deployer")
    assert "No constructor parameters for Deployer" in capsys.readouterr().out


def test_zero_address_needs_second_confirmation(answers, capsys):
    questions, replies = answers
    replies.extend([True, False])
    resolved = OrderedDict([("_owner", make_address(1)), ("_admins", [make_address(3), ZERO_ADDRESS])])

    with pytest.raises(DeploymentAborted, match="Zero address for Vault declined"):
        _confirm_resolution(resolved, "Vault")
    assert "Zero address passed as _admins[1]" in capsys.readouterr().out
    assert questions == ["Deploy Vault?", "Deploy anyway?"]
