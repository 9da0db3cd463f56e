import json

import pytest

from slackline import __main__ as cli
from slackline.errors import NotLoggedIn
from slackline.models import DaemonStatus


@pytest.fixture
def isolated_env(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SLACKLINE_STATE_DIR", str(tmp_path / "state"))
    for key in ("SLACKLINE_CDP_URL", "SLACKLINE_CHROME_PATH", "SLACKLINE_WORKSPACE_URL"):
        monkeypatch.delenv(key, raising=False)
    return tmp_path


class FakeManager:
    calls: list[tuple[str, object]] = []

    def __init__(self, settings):
        self.settings = settings

    async def status(self):
        FakeManager.calls.append(("status", None))
        return DaemonStatus(running=True, cdp_url=self.settings.cdp_url, pid=321, pid_alive=True, headless=True)

    async def start(self, headless=True):
        FakeManager.calls.append(("start", headless))
        return DaemonStatus(running=True, cdp_url=self.settings.cdp_url, pid=321)

    async def stop(self):
        FakeManager.calls.append(("stop", None))
        return DaemonStatus(running=False, cdp_url=self.settings.cdp_url)


@pytest.fixture
def fake_manager(monkeypatch):
    FakeManager.calls = []
    monkeypatch.setattr(cli, "DaemonManager", FakeManager)
    return FakeManager


def test_parser_global_flags_and_defaults():
    args = cli.build_parser().parse_args(["--json", "--cdp-url", "http://localhost:9333/", "messages", "-t", "#general"])

    assert args.json_output is True
    assert args.cdp_url == "http://localhost:9333/"
    assert args.headless is None
    assert args.command == "messages"
    assert args.limit == 20


def test_parser_headed_and_login_options():
    parser = cli.build_parser()

    headed = parser.parse_args(["--headed", "daemon", "start"])
    login = parser.parse_args(["login", "acme.slack.com", "--no-manual-confirm", "--timeout-seconds", "60"])

    assert headed.headless is False
    assert (headed.command, headed.subcommand) == ("daemon", "start")
    assert login.manual_confirm is False
    assert login.timeout_seconds == 60


def test_parser_requires_listen_webhook():
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args(["listen"])


def test_every_command_has_a_handler():
    parser = cli.build_parser()
    argv_by_command = [
        ["daemon", "start"],
        ["daemon", "stop"],
        ["daemon", "status"],
        ["daemon", "listen", "--webhook", "http://x"],
        ["login", "acme"],
        ["whoami"],
        ["profile"],
        ["messages", "-t", "x"],
        ["tail", "-t", "x"],
        ["post", "-t", "x", "-m", "hi"],
        ["search", "-q", "x"],
        ["listen", "--webhook", "http://x"],
    ]
    for argv in argv_by_command:
        args = parser.parse_args(argv)
        assert (args.command, getattr(args, "subcommand", None) or "") in cli.HANDLERS


def test_daemon_status_json(isolated_env, fake_manager, capsys):
    assert cli.run(["--json", "daemon", "status"]) == 0

    payload = json.loads(capsys.readouterr().out)
    assert payload == {
        "running": True,
        "cdp_url": "http://127.0.0.1:9222",
        "pid": 321,
        "pid_alive": True,
        "headless": True,
    }


def test_daemon_start_text_and_headed(isolated_env, fake_manager, capsys):
    assert cli.run(["--headed", "daemon", "start"]) == 0

    out = capsys.readouterr().out
    assert "Running: yes" in out
    assert "PID: 321" in out
    assert fake_manager.calls == [("start", False)]


def test_daemon_stop_text(isolated_env, fake_manager, capsys):
    assert cli.run(["daemon", "stop"]) == 0
    assert capsys.readouterr().out.strip() == "Running: no"


def test_errors_exit_non_zero_with_message(isolated_env, monkeypatch, capsys):
    async def failing(args, settings):
        raise NotLoggedIn()

    monkeypatch.setitem(cli.HANDLERS, ("whoami", ""), failing)

    assert cli.run(["whoami"]) == 1
    assert "Not logged in to Slack" in capsys.readouterr().err


def test_cdp_url_flag_reaches_settings(isolated_env, monkeypatch):
    seen = {}

    async def capture(args, settings):
        seen["cdp_url"] = settings.cdp_url

    monkeypatch.setitem(cli.HANDLERS, ("search", ""), capture)

    assert cli.run(["--cdp-url", "http://127.0.0.1:9333/", "search", "-q", "x"]) == 0
    assert seen["cdp_url"] == "http://127.0.0.1:9333"


def test_background_listen_spawns_process(isolated_env, monkeypatch, capsys):
    ensured = []

    class Manager(FakeManager):
        async def ensure_running(self, headless=True, cdp_url=None):
            ensured.append(headless)
            return DaemonStatus(running=True, cdp_url=self.settings.cdp_url)

    monkeypatch.setattr(cli, "DaemonManager", Manager)
    monkeypatch.setattr(cli, "spawn_background_listener", lambda settings, webhook: 999)

    assert cli.run(["--json", "daemon", "listen", "--webhook", "http://hook", "--background"]) == 0

    assert ensured == [True]
    assert json.loads(capsys.readouterr().out) == {"background": True, "pid": 999, "webhook": "http://hook"}
