"""
Tests for the purge workflow: ownership gate, inactive selection,
confirmation, dry runs and removal scopes.
"""
import pytest

from conftest import FakeClient, FakeConsole, make_tester
from errors import ApiError, ApiFailure, CredentialsNotFound, InvalidInput
from prompts import PurgeOptions
from utils import App, BetaGroup, InactivityWindow, OutputFormat, RemovalScope

OPTIONS = PurgeOptions(app_id="app", beta_group_id="group", window=InactivityWindow.DAYS_30)


def purge_options(**overrides):
    values = dict(app_id="app", beta_group_id="group", window=InactivityWindow.DAYS_30)
    values.update(overrides)
    return PurgeOptions(**values)


class TestPurgeRemoval:

    @pytest.mark.asyncio
    async def test_removes_inactive_testers_from_testflight(self, make_cleaner, owned_group):
        console = FakeConsole()
        client = FakeClient(
            group=owned_group,
            testers=[
                make_tester("active", email="active@example.com"),
                make_tester("inactive", email="inactive@example.com"),
            ],
            usage={"active": 5},
        )

        report = await make_cleaner(console, client).purge(OPTIONS)

        assert client.called("remove_testers_from_testflight") == [
            ("remove_testers_from_testflight", ["inactive"])
        ]
        assert client.called("remove_testers_from_group") == []
        assert client.called("fetch_apps") == []
        assert console.contains("Found 1 inactive tester(s) with no sessions in the last 30 days:")
        assert console.contains(" - inactive@example.com")
        assert console.contains("Removed 1 tester(s) from TestFlight.")
        assert report.successfully_removed == 1
        assert client.entered and client.exited

    @pytest.mark.asyncio
    async def test_float_session_counts_keep_testers(self, make_cleaner, owned_group):
        console = FakeConsole()
        client = FakeClient(
            group=owned_group,
            testers=[make_tester("active"), make_tester("idle")],
            usage={"active": 3.0, "idle": 0.0},
        )

        report = await make_cleaner(console, client).purge(OPTIONS)

        assert client.removal_calls == [("remove_testers_from_testflight", ["idle"])]
        assert report.testers_identified == 1

    @pytest.mark.asyncio
    async def test_group_only_scope(self, make_cleaner, owned_group):
        console = FakeConsole()
        client = FakeClient(group=owned_group, testers=[make_tester("t1")])

        await make_cleaner(console, client).purge(
            purge_options(removal_scope=RemovalScope.GROUP_ONLY)
        )

        assert client.called("remove_testers_from_group") == [
            ("remove_testers_from_group", "group", ["t1"])
        ]
        assert client.called("remove_testers_from_testflight") == []
        assert console.contains("Removed 1 tester(s) from beta group group.")

    @pytest.mark.asyncio
    async def test_window_is_passed_to_usage_fetch(self, make_cleaner, owned_group):
        client = FakeClient(group=owned_group, testers=[make_tester("t1")], usage={"t1": 1})

        await make_cleaner(FakeConsole(), client).purge(
            purge_options(window=InactivityWindow.DAYS_365)
        )

        assert client.called("fetch_usage") == [("fetch_usage", "group", InactivityWindow.DAYS_365)]

    @pytest.mark.asyncio
    async def test_testers_listed_in_display_name_order(self, make_cleaner, owned_group):
        console = FakeConsole()
        client = FakeClient(
            group=owned_group,
            testers=[make_tester("1", "zoe"), make_tester("2", "Adam"), make_tester("3", "mia")],
        )

        await make_cleaner(console, client).purge(purge_options(dry_run=True))

        listed = [line for line in console.lines if line.startswith(" - ") and "testers:" not in line]
        assert listed == [" - Adam", " - mia", " - zoe"]


class TestPurgeDryRun:

    @pytest.mark.asyncio
    async def test_dry_run_flag_never_removes(self, make_cleaner, owned_group):
        console = FakeConsole()
        client = FakeClient(group=owned_group, testers=[make_tester("inactive")])

        report = await make_cleaner(console, client).purge(purge_options(dry_run=True))

        assert client.removal_calls == []
        assert console.confirmations == []
        assert console.lines[-4:] == [
            "Dry run summary:",
            " - Total testers: 1",
            " - Inactive testers: 1",
            "Dry run: no testers were removed.",
        ]
        assert report.dry_run is True

    @pytest.mark.asyncio
    async def test_declined_confirmation_downgrades_to_dry_run(self, make_cleaner, owned_group):
        console = FakeConsole(answers=["n"], confirm=False)
        client = FakeClient(
            apps=[App(id="app")], groups=[owned_group], group=owned_group,
            testers=[make_tester("inactive")],
        )

        report = await make_cleaner(console, client).purge(
            purge_options(interactive=True, output_path="", removal_scope=RemovalScope.TESTFLIGHT)
        )

        assert console.prompts[0] == "Dry run? (Y/n): "
        assert console.confirmations == ["Proceed with removal? (y/N): "]
        assert client.removal_calls == []
        assert console.contains("Dry run: no testers were removed.")
        assert report.dry_run is True

    @pytest.mark.asyncio
    async def test_accepted_confirmation_removes(self, make_cleaner, owned_group):
        console = FakeConsole(answers=["n", "n"], confirm=True)
        client = FakeClient(
            apps=[App(id="app")], groups=[owned_group], group=owned_group,
            testers=[make_tester("inactive")],
        )

        await make_cleaner(console, client).purge(
            purge_options(interactive=True, removal_scope=RemovalScope.TESTFLIGHT)
        )

        assert len(client.removal_calls) == 1


class TestPurgeTerminals:

    @pytest.mark.asyncio
    async def test_ownership_mismatch_fails_before_tester_fetch(self, make_cleaner):
        client = FakeClient(group=BetaGroup(id="group", app_id="other-app"))

        with pytest.raises(InvalidInput, match="Beta group group does not belong to app app."):
            await make_cleaner(FakeConsole(), client).purge(OPTIONS)

        assert client.called("fetch_beta_testers") == []
        assert client.removal_calls == []

    @pytest.mark.asyncio
    async def test_ownership_falls_back_to_app_group_list(self, make_cleaner):
        client = FakeClient(
            group=BetaGroup(id="group"),
            groups=[BetaGroup(id="group")],
            testers=[make_tester("t1")],
            usage={"t1": 3},
        )

        await make_cleaner(FakeConsole(), client).purge(OPTIONS)

        assert client.called("fetch_beta_groups_for_app") == [("fetch_beta_groups_for_app", "app")]
        assert client.called("fetch_beta_testers")

    @pytest.mark.asyncio
    async def test_group_missing_from_app_list_is_rejected(self, make_cleaner):
        client = FakeClient(group=BetaGroup(id="group"), groups=[BetaGroup(id="elsewhere")])

        with pytest.raises(InvalidInput):
            await make_cleaner(FakeConsole(), client).purge(OPTIONS)

    @pytest.mark.asyncio
    async def test_empty_roster_stops_without_further_calls(self, make_cleaner, owned_group):
        console = FakeConsole()
        client = FakeClient(group=owned_group, testers=[])

        await make_cleaner(console, client).purge(OPTIONS)

        assert console.lines == ["No testers found in beta group group."]
        assert [call[0] for call in client.calls] == ["fetch_beta_group", "fetch_beta_testers"]

    @pytest.mark.asyncio
    async def test_no_inactive_testers(self, make_cleaner, owned_group):
        console = FakeConsole()
        client = FakeClient(group=owned_group, testers=[make_tester("a")], usage={"a": 2})

        report = await make_cleaner(console, client).purge(OPTIONS)

        assert console.lines == [
            "No inactive testers found for beta group group in the last 30 days."
        ]
        assert client.removal_calls == []
        assert report.testers_identified == 0

    @pytest.mark.asyncio
    async def test_missing_credentials(self, make_cleaner):
        client = FakeClient()

        with pytest.raises(CredentialsNotFound, match="No saved credentials"):
            await make_cleaner(FakeConsole(), client, saved_credentials=None).purge(OPTIONS)

        assert client.calls == []


class TestPurgeOutputAndErrors:

    @pytest.mark.asyncio
    async def test_file_output_suppresses_tester_lines(self, make_cleaner, owned_group, tmp_path):
        console = FakeConsole()
        path = tmp_path / "out" / "inactive.csv"
        client = FakeClient(group=owned_group, testers=[make_tester("t1", "Ada")])

        report = await make_cleaner(console, client).purge(
            purge_options(dry_run=True, output_path=str(path), output_format=OutputFormat.CSV)
        )

        assert path.read_text().splitlines() == ["tester_id,first_name,last_name,email,state", "t1,Ada,,,"]
        assert console.contains(f"Wrote 1 inactive tester(s) to {path}.")
        assert not console.contains(" - Ada")
        assert report.output_path == str(path)

    @pytest.mark.asyncio
    async def test_text_output_header_names_window(self, make_cleaner, owned_group, tmp_path):
        path = tmp_path / "inactive.txt"
        client = FakeClient(group=owned_group, testers=[make_tester("t1", "Ada")])

        await make_cleaner(FakeConsole(), client).purge(
            purge_options(dry_run=True, output_path=str(path), window=InactivityWindow.DAYS_7)
        )

        assert path.read_text() == "Inactive testers (no sessions in last 7 days)\n\nAda\n"

    @pytest.mark.asyncio
    async def test_api_errors_are_rewrapped(self, make_cleaner, owned_group):
        client = FakeClient(
            group=owned_group,
            errors={"fetch_beta_testers": ApiError(403, ["FORBIDDEN_ERROR: not allowed", "X: y"])},
        )

        with pytest.raises(ApiFailure) as excinfo:
            await make_cleaner(FakeConsole(), client).purge(OPTIONS)

        assert excinfo.value.status == 403
        assert "status code 403" in str(excinfo.value)
        assert "FORBIDDEN_ERROR: not allowed, X: y" in str(excinfo.value)

    @pytest.mark.asyncio
    async def test_failed_removal_is_reported_as_is(self, make_cleaner, owned_group):
        console = FakeConsole()
        client = FakeClient(
            group=owned_group,
            testers=[make_tester("t1")],
            errors={"remove_testers_from_testflight": ApiError(500, ["UNEXPECTED_ERROR: boom"])},
        )

        with pytest.raises(ApiFailure, match="UNEXPECTED_ERROR: boom"):
            await make_cleaner(console, client).purge(OPTIONS)

        assert not console.contains("Removed")
