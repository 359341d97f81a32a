"""Tests for the CLI entry point."""

from unittest.mock import MagicMock

import yaml
from click.testing import CliRunner
from nostr_sdk import EventBuilder, Keys, Kind, Tag

from dvmreview_cli.cli import _build_store, main
from dvmreview_core.capabilities.base import BaseWallet
from dvmreview_core.capabilities.keys import KeysSigner
from dvmreview_core.capabilities.loopback import LoopbackRelayPool
from dvmreview_core.config import DEFAULT_CONFIG
from dvmreview_core.diff import DiffFile, DiffResult
from dvmreview_core.errors import DiffError
from dvmreview_core.events import JOB_REQUEST_KIND, Event
from dvmreview_core.session import Session
from dvmreview_store.models import JobRecord, ResponseRecord
from dvmreview_store.noop import NoOpStore
from dvmreview_store.sqlite import SQLiteStore

PATCH = "diff --git a/src/app.py b/src/app.py\n@@ -1 +1 @@\n-x = 1\n+x = 2\n"
CLIENT = Keys.generate()
WORKER = Keys.generate()


def _make_config(**overrides):
    config = dict(DEFAULT_CONFIG)
    config.update(overrides)
    return config


def _make_diff():
    return DiffResult(
        output=PATCH,
        files=[DiffFile(filename="src/app.py", status="modified", additions=1, deletions=1, patch=PATCH)],
    )


def _patch_common(mocker, config=None, diff=None):
    """Patch load_config, _build_store and the git diff for most tests."""
    cfg = config or _make_config()
    mocker.patch("dvmreview_core.config.load_config", return_value=cfg)
    # Use SQLiteStore spec so isinstance(store, NoOpStore) returns False.
    mock_store = MagicMock(spec=SQLiteStore)
    mock_store.list_jobs.return_value = []
    mock_store.list_responses.return_value = []
    mocker.patch("dvmreview_cli.cli._build_store", return_value=mock_store)
    diff = diff or _make_diff()
    mocker.patch("dvmreview_cli.commands.submit.check_diffs", return_value=diff)
    mocker.patch("dvmreview_cli.commands.diff.check_diffs", return_value=diff)
    return cfg, mock_store


class FakeWallet(BaseWallet):
    def __init__(self):
        self.paid = []

    async def enable(self):
        pass

    async def send_payment(self, invoice):
        self.paid.append(invoice)
        return {}


class WorkerPool(LoopbackRelayPool):
    """A worker that answers every job request with one invoiced review."""

    async def _publish(self, event):
        accepted = await super()._publish(event)
        if event.kind == JOB_REQUEST_KIND:
            reply = EventBuilder(Kind(6005), "Rename `x` to something meaningful.").tags(
                [Tag.parse(["e", event.id]), Tag.parse(["amount", "21000", "lnbc210n1xyz"])]
            )
            await super()._publish(Event.from_nostr(reply.sign_with_keys(WORKER)))
        return accepted


class UnreachablePool(LoopbackRelayPool):
    """Every relay refuses the connection, so nothing can be published."""

    def __init__(self, relays, signer=None):
        super().__init__(relays, signer=signer, unreachable=set(relays))


def _patch_session(mocker, signer=None, wallet=None, pool_cls=WorkerPool):
    def from_config(config):
        return Session(
            config,
            signer=signer,
            wallet=wallet,
            pool_factory=lambda relays, signer=None: pool_cls(relays, signer=signer),
        )

    return mocker.patch.object(Session, "from_config", side_effect=from_config)


# ---------------------------------------------------------------------------
# _build_store
# ---------------------------------------------------------------------------


class TestBuildStore:
    def test_returns_noop_by_default(self):
        store = _build_store({})
        assert isinstance(store, NoOpStore)

    def test_returns_noop_when_explicitly_set(self):
        store = _build_store({"store": "noop"})
        assert isinstance(store, NoOpStore)

    def test_returns_sqlite_store(self, tmp_path):
        store = _build_store({"store": "sqlite", "store_path": str(tmp_path / "test.db")})
        assert isinstance(store, SQLiteStore)
        store.close()

    def test_sqlite_uses_default_path_when_not_specified(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        store = _build_store({"store": "sqlite"})
        assert isinstance(store, SQLiteStore)
        store.close()
        assert (tmp_path / ".dvmreview.db").exists()

    def test_unknown_store_falls_back_to_noop(self):
        store = _build_store({"store": "gist"})
        assert isinstance(store, NoOpStore)


# ---------------------------------------------------------------------------
# diff command
# ---------------------------------------------------------------------------


class TestDiffCommand:
    def test_lists_changed_files(self, mocker):
        _patch_common(mocker)

        result = CliRunner().invoke(main, ["diff"])

        assert result.exit_code == 0
        assert "src/app.py" in result.output
        assert "modified" in result.output

    def test_empty_diff(self, mocker):
        _patch_common(mocker, diff=DiffResult(output=""))

        result = CliRunner().invoke(main, ["diff"])

        assert result.exit_code == 0
        assert "No changes found" in result.output

    def test_git_error_is_reported(self, mocker):
        _patch_common(mocker)
        mocker.patch("dvmreview_cli.commands.diff.check_diffs", side_effect=DiffError("not a git repository"))

        result = CliRunner().invoke(main, ["diff"])

        assert result.exit_code != 0
        assert "not a git repository" in result.output


# ---------------------------------------------------------------------------
# submit command
# ---------------------------------------------------------------------------


class TestSubmitCommand:
    def test_nothing_to_submit(self, mocker):
        _patch_common(mocker, diff=DiffResult(output=""))
        from_config = _patch_session(mocker, signer=KeysSigner(CLIENT))

        result = CliRunner().invoke(main, ["submit", "--yes"])

        assert result.exit_code == 0
        assert "Nothing to submit" in result.output
        from_config.assert_not_called()

    def test_shadow_prints_unsigned_request(self, mocker):
        _patch_common(mocker)
        from_config = _patch_session(mocker, signer=KeysSigner(CLIENT))

        result = CliRunner().invoke(main, ["submit", "--shadow"])

        assert result.exit_code == 0
        assert "Shadow mode" in result.output
        assert "68005" in result.output
        assert "code-review" in result.output
        from_config.assert_not_called()

    def test_declining_confirmation_publishes_nothing(self, mocker):
        _patch_common(mocker)
        from_config = _patch_session(mocker, signer=KeysSigner(CLIENT))

        result = CliRunner().invoke(main, ["submit"], input="n\n")

        assert result.exit_code == 0
        from_config.assert_not_called()

    def test_missing_signer_is_usage_error(self, mocker):
        _, mock_store = _patch_common(mocker)
        _patch_session(mocker, signer=None)

        result = CliRunner().invoke(main, ["submit", "--yes", "--wait", "0"])

        assert result.exit_code == 2
        assert "No signer available" in result.output
        mock_store.save_job.assert_not_called()

    def test_publishes_and_shows_responses(self, mocker):
        _, mock_store = _patch_common(mocker)
        _patch_session(mocker, signer=KeysSigner(CLIENT))

        result = CliRunner().invoke(main, ["submit", "--yes", "--wait", "0"])

        assert result.exit_code == 0, result.output
        assert "published" in result.output
        assert "Rename" in result.output
        assert "21 sats" in result.output

        job = mock_store.save_job.call_args[0][0]
        assert job.kind == 68005
        assert job.files == ["src/app.py"]
        response = mock_store.save_response.call_args[0][0]
        assert response.job_id == job.event_id
        assert response.invoice == "lnbc210n1xyz"

    def test_relay_option_overrides_config(self, mocker):
        _, mock_store = _patch_common(mocker)
        from_config = _patch_session(mocker, signer=KeysSigner(CLIENT))

        CliRunner().invoke(main, ["submit", "--yes", "--wait", "0", "--relay", "wss://relay.custom"])

        assert from_config.call_args[0][0]["relays"] == ["wss://relay.custom"]
        assert mock_store.save_job.call_args[0][0].relays == ["wss://relay.custom"]

    def test_no_responses(self, mocker):
        _patch_common(mocker)
        _patch_session(mocker, signer=KeysSigner(CLIENT), pool_cls=LoopbackRelayPool)

        result = CliRunner().invoke(main, ["submit", "--yes", "--wait", "0"])

        assert result.exit_code == 0
        assert "No responses yet" in result.output

    def test_pay_forwards_invoice_to_wallet(self, mocker):
        _, mock_store = _patch_common(mocker)
        wallet = FakeWallet()
        _patch_session(mocker, signer=KeysSigner(CLIENT), wallet=wallet)

        result = CliRunner().invoke(main, ["submit", "--yes", "--wait", "0", "--pay"], input="1\n")

        assert result.exit_code == 0, result.output
        assert wallet.paid == ["lnbc210n1xyz"]
        assert "Paid 21 sats" in result.output
        assert mock_store.save_response.call_args[0][0].payment_state == "paid"

    def test_pay_without_wallet_explains_what_is_missing(self, mocker):
        _patch_common(mocker)
        _patch_session(mocker, signer=KeysSigner(CLIENT), wallet=None)

        result = CliRunner().invoke(main, ["submit", "--yes", "--wait", "0", "--pay"], input="1\n")

        assert result.exit_code == 0
        assert "WebLN" in result.output

    def test_store_failure_does_not_abort(self, mocker):
        _, mock_store = _patch_common(mocker)
        mock_store.save_job.side_effect = OSError("disk full")
        _patch_session(mocker, signer=KeysSigner(CLIENT))

        result = CliRunner().invoke(main, ["submit", "--yes", "--wait", "0"])

        assert result.exit_code == 0
        assert "could not persist" in result.output
        assert "Rename" in result.output

    def test_unbroadcast_job_is_recorded_as_failed(self, mocker):
        _, mock_store = _patch_common(mocker)
        _patch_session(mocker, signer=KeysSigner(CLIENT), pool_cls=UnreachablePool)

        result = CliRunner().invoke(main, ["submit", "--yes", "--wait", "0"])

        assert result.exit_code == 1
        assert "not broadcast" in result.output
        job = mock_store.save_job.call_args[0][0]
        assert job.status == "failed"
        assert job.kind == 68005
        mock_store.save_response.assert_not_called()

    def test_without_transport_is_usage_error(self, mocker):
        _, mock_store = _patch_common(mocker)

        result = CliRunner().invoke(main, ["submit", "--yes", "--wait", "0"])

        assert result.exit_code == 2
        assert "No relay transport configured" in result.output
        mock_store.save_job.assert_not_called()


# ---------------------------------------------------------------------------
# status command
# ---------------------------------------------------------------------------


class TestStatusCommand:
    def test_reports_connected_relays(self, mocker):
        _patch_common(mocker, config=_make_config(relays=["wss://relay.one"]))
        _patch_session(mocker, signer=KeysSigner(CLIENT))

        result = CliRunner().invoke(main, ["status"])

        assert result.exit_code == 0
        assert "Connected" in result.output
        assert "wss://relay.one" in result.output
        assert CLIENT.public_key().to_hex() in result.output

    def test_warns_about_missing_signer_and_wallet(self, mocker):
        _patch_common(mocker)
        _patch_session(mocker, signer=None, wallet=None)

        result = CliRunner().invoke(main, ["status"])

        assert result.exit_code == 0
        assert "No signer configured" in result.output
        assert "No wallet configured" in result.output

    def test_connection_error_exits_nonzero(self, mocker):
        _patch_common(mocker)

        def broken(relays, signer=None):
            raise OSError("no network")

        mocker.patch.object(Session, "from_config", side_effect=lambda config: Session(config, pool_factory=broken))

        result = CliRunner().invoke(main, ["status"])

        assert result.exit_code == 1
        assert "Error" in result.output
        assert "no network" in result.output

    def test_without_transport_does_not_report_connected(self, mocker):
        _patch_common(mocker)

        result = CliRunner().invoke(main, ["status"])

        assert result.exit_code == 1
        assert "Relay status: Connected" not in result.output
        assert "No relay transport configured" in result.output


# ---------------------------------------------------------------------------
# history command
# ---------------------------------------------------------------------------


def _make_job_record(event_id="abcdef12" + "0" * 56):
    return JobRecord(
        event_id=event_id,
        pubkey="a" * 64,
        created_at=1_700_000_000,
        kind=68005,
        job_type="code-review",
        bid="10000",
        relays=["wss://relay.one"],
        files=["src/app.py"],
        content=PATCH,
    )


def _make_response_record(job_id):
    return ResponseRecord(
        event_id="r" * 64,
        job_id=job_id,
        author="b" * 64,
        created_at=1_700_000_060,
        kind=6005,
        content="Consider a constant here.",
        amount_msats=21000,
        invoice="lnbc210n1xyz",
        payment_state="paid",
    )


class TestHistoryCommand:
    def test_shows_table_when_records_exist(self, mocker):
        _, mock_store = _patch_common(mocker)
        mock_store.list_jobs.return_value = [_make_job_record()]

        result = CliRunner().invoke(main, ["history"])

        assert result.exit_code == 0
        assert "abcdef12" in result.output
        assert "src/app.py" in result.output

    def test_shows_empty_message_when_no_records(self, mocker):
        _patch_common(mocker)

        result = CliRunner().invoke(main, ["history"])

        assert result.exit_code == 0
        assert "No jobs found" in result.output

    def test_errors_when_noop_store(self, mocker):
        mocker.patch("dvmreview_core.config.load_config", return_value=_make_config())
        mocker.patch("dvmreview_cli.cli._build_store", return_value=NoOpStore())

        result = CliRunner().invoke(main, ["history"])

        assert result.exit_code != 0
        assert "No store configured" in result.output

    def test_limit_applied(self, mocker):
        _, mock_store = _patch_common(mocker)

        CliRunner().invoke(main, ["history", "--limit", "5"])

        mock_store.list_jobs.assert_called_once_with(limit=5)

    def test_shows_responses_for_job_prefix(self, mocker):
        _, mock_store = _patch_common(mocker)
        job = _make_job_record()
        mock_store.list_jobs.return_value = [job]
        mock_store.list_responses.return_value = [_make_response_record(job.event_id)]

        result = CliRunner().invoke(main, ["history", "--job", "abcd"])

        assert result.exit_code == 0
        mock_store.list_responses.assert_called_once_with(job.event_id)
        assert "Consider a constant here." in result.output
        assert "paid" in result.output

    def test_unknown_job_prefix(self, mocker):
        _, mock_store = _patch_common(mocker)
        mock_store.list_jobs.return_value = [_make_job_record()]

        result = CliRunner().invoke(main, ["history", "--job", "ffff"])

        assert result.exit_code != 0
        assert "No job matching" in result.output

    def test_ambiguous_job_prefix(self, mocker):
        _, mock_store = _patch_common(mocker)
        mock_store.list_jobs.return_value = [
            _make_job_record("abcdef12" + "0" * 56),
            _make_job_record("abcdef34" + "0" * 56),
        ]

        result = CliRunner().invoke(main, ["history", "--job", "abcdef"])

        assert result.exit_code != 0
        assert "matches 2 jobs" in result.output

    def test_failed_job_status_is_shown(self, mocker):
        _, mock_store = _patch_common(mocker)
        job = _make_job_record()
        job.status = "failed"
        mock_store.list_jobs.return_value = [job]

        result = CliRunner().invoke(main, ["history"])

        assert result.exit_code == 0
        assert "failed" in result.output

    def test_payment_states_share_one_style_table(self):
        from dvmreview_cli import render
        from dvmreview_cli.commands import history

        assert history.PAYMENT_STYLE is render.PAYMENT_STYLE
        assert set(render.PAYMENT_STYLE) == {"unpaid", "pending", "paid", "failed"}


# ---------------------------------------------------------------------------
# init command
# ---------------------------------------------------------------------------


class TestInitCommand:
    def test_writes_relays_and_capabilities(self, mocker, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        _patch_common(mocker)

        result = CliRunner().invoke(
            main,
            ["init"],
            input="wss://relay.one, wss://relay.two\nloopback\nnone\nmy_signer:build\nmy_wallet:build\n",
        )

        assert result.exit_code == 0
        config = yaml.safe_load((tmp_path / ".dvmreview.yml").read_text())
        assert config["relays"] == ["wss://relay.one", "wss://relay.two"]
        assert config["signer"] == "my_signer:build"
        assert config["wallet"] == "my_wallet:build"
        assert config["transport"] == "loopback"
        assert "store" not in config

    def test_writes_sqlite_store_config(self, mocker, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        _patch_common(mocker)

        CliRunner().invoke(main, ["init"], input="\n\nsqlite\njobs.db\n\n\n")

        config = yaml.safe_load((tmp_path / ".dvmreview.yml").read_text())
        assert config["store"] == "sqlite"
        assert config["store_path"] == "jobs.db"
        assert config["relays"] == DEFAULT_CONFIG["relays"]
        assert "signer" not in config
        assert "transport" not in config

    def test_preserves_existing_keys(self, mocker, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        (tmp_path / ".dvmreview.yml").write_text("bid: '21000'\n")
        _patch_common(mocker)

        CliRunner().invoke(main, ["init"], input="\n\nnone\n\n\n")

        config = yaml.safe_load((tmp_path / ".dvmreview.yml").read_text())
        assert config["bid"] == "21000"
        assert "relays" in config
