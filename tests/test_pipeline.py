import csv
import xml.etree.ElementTree as ET
from pathlib import Path

from typer.testing import CliRunner

from substack_wxr.cli import app
from substack_wxr.config import ConverterConfig, PollConfig
from substack_wxr.models import ChannelMetadata, JobStatus, WxrAuthor
from substack_wxr.pipeline import convert_export

NS = {"wp": "http://wordpress.org/export/1.2/", "dc": "http://purl.org/dc/elements/1.1/"}


def _write_export(root: Path) -> Path:
    (root / "posts").mkdir(parents=True)
    rows = [
        {"post_id": "111.first", "post_date": "2021-05-04T16:03:52Z", "is_published": "true", "title": "First"},
        {"post_id": "222.second", "post_date": "garbage", "is_published": "true", "title": "Second"},
        {"post_id": "333.third", "post_date": "2021-06-01T08:00:00Z", "is_published": "false", "title": "Third"},
    ]
    with (root / "posts.csv").open("w", newline="", encoding="utf-8") as handle:
        writer = csv.DictWriter(handle, fieldnames=["post_id", "post_date", "is_published", "title"])
        writer.writeheader()
        writer.writerows(rows)
    (root / "posts" / "111.first.html").write_text("<p>One</p>", encoding="utf-8")
    return root


def _metadata() -> ChannelMetadata:
    return ChannelMetadata(
        title="Example",
        link="https://example.substack.com",
        authors=[WxrAuthor(author_id=1, login="alice")],
    )


def test_convert_export_writes_wxr_and_reports_failures(tmp_path: Path) -> None:
    export = _write_export(tmp_path / "export")
    seen: list[int] = []

    report = convert_export(
        export,
        tmp_path / "out" / "site",
        _metadata(),
        ConverterConfig(batch_size=1),
        poll_config=PollConfig(interval_seconds=0),
        on_progress=lambda snapshot: seen.append(snapshot.processed),
    )

    assert report.status == JobStatus.DONE
    assert (report.total, report.succeeded, report.failed) == (3, 2, 1)
    assert report.output == tmp_path / "out" / "site.xml"
    assert seen == [1, 2, 3]
    assert "222.second" in report.failures[0]

    root = ET.fromstring(report.output.read_bytes())
    items = root.findall("channel/item")
    assert [item.findtext("wp:post_id", namespaces=NS) for item in items] == ["111", "333"]
    assert items[0].findtext("dc:creator", namespaces=NS) == "alice"
    assert items[1].findtext("wp:status", namespaces=NS) == "draft"


def test_convert_export_resumes_finished_job_without_rewriting(tmp_path: Path) -> None:
    export = _write_export(tmp_path / "export")
    state_dir = tmp_path / "state"
    output = tmp_path / "site.xml"
    kwargs = {"poll_config": PollConfig(interval_seconds=0), "state_dir": state_dir, "job_id": "nightly"}

    first = convert_export(export, output, _metadata(), ConverterConfig(), **kwargs)
    written = output.read_bytes()
    second = convert_export(export, output, _metadata(), ConverterConfig(), **kwargs)

    assert first.job_id == second.job_id == "nightly"
    assert second.status == JobStatus.DONE
    assert output.read_bytes() == written


def test_convert_export_keeps_wxr_extension(tmp_path: Path) -> None:
    export = _write_export(tmp_path / "export")

    report = convert_export(
        export,
        tmp_path / "site.wxr",
        _metadata(),
        ConverterConfig(),
        poll_config=PollConfig(interval_seconds=0),
    )

    assert report.output == tmp_path / "site.wxr"
    assert ET.fromstring(report.output.read_bytes()).tag == "rss"


def test_cli_convert_and_status(tmp_path: Path) -> None:
    export = _write_export(tmp_path / "export")
    state_dir = tmp_path / "state"
    output = tmp_path / "site.xml"
    runner = CliRunner()

    result = runner.invoke(
        app,
        [
            "convert",
            str(export),
            "--output",
            str(output),
            "--site-title",
            "Example",
            "--site-url",
            "https://example.substack.com",
            "--batch-size",
            "2",
            "--state-dir",
            str(state_dir),
            "--job-id",
            "cli-job",
        ],
    )

    assert result.exit_code == 0, result.output
    assert "2 converted, 1 skipped, status done" in result.stdout
    assert output.exists()

    status = runner.invoke(app, ["status", "--state-dir", str(state_dir), "--job-id", "cli-job"])
    assert status.exit_code == 0
    assert "3/3 (100%) done" in status.stdout


def test_cli_status_unknown_job(tmp_path: Path) -> None:
    (tmp_path / "state").mkdir()
    result = CliRunner().invoke(app, ["status", "--state-dir", str(tmp_path / "state"), "--job-id", "nope"])

    assert result.exit_code == 1
