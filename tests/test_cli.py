import asyncio

import pytest

from media_twins import cli
from media_twins.config import settings
from media_twins.storage.record_store import RecordStore


def test_split_positionals():
    assert cli.split_positionals(["12", "post_type=page", "post__in=1,2", "7"]) == (
        [12, 7], {"post_type": "page", "post__in": "1,2"},
    )
    with pytest.raises(ValueError):
        cli.split_positionals(["abc"])


def test_parser():
    args = cli.build_parser().parse_args(
        ["clean-up-unreferenced", "--dry-run", "--keep-id", "194", "--keep-key", "gallery", "post_type=page"]
    )
    assert args.command == "clean-up-unreferenced"
    assert args.dry_run
    assert args.keep_ids == [194]
    assert args.keep_keys == ["gallery"]
    assert args.args == ["post_type=page"]


def test_summary_dry_run():
    text = cli.format_summary({
        "scanned": 4, "purged": [9001], "rows": {"wp_posts": "?"},
        "statements": ["DELETE FROM wp_posts WHERE ID = 9001"], "dry_run": True,
    })
    assert text.splitlines() == [
        "Scanned: 4",
        "Purged attachments: 9001",
        "Deleted: ? from wp_posts",
        "Dry-run: DELETE FROM wp_posts WHERE ID = 9001",
    ]


def test_summary_many_ids():
    text = cli.format_summary({"scanned": 0, "kept": 1, "purged": list(range(100)), "rows": {},
                               "statements": [], "dry_run": False})
    assert "Purged attachments: 100" in text


@pytest.fixture
def site(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "redis_url", "disabled")
    path = str(tmp_path / "site.db")

    async def seed():
        s = RecordStore(path)
        await s.initialize()
        for title in ("photo-1", "photo-1-2", "other"):
            pid = await s.insert_post(title=title)
            await s.insert_translation(element_id=pid)
        await s.close()

    asyncio.run(seed())
    return path


def test_main_deletes_twins(site, capsys):
    assert cli.main(["clean-up-media-twins", "--db", site]) == 0
    out = capsys.readouterr().out
    assert "Purged attachments: 2" in out
    assert "Deleted: 1 from wp_posts" in out
    assert "Deleted: 1 from wp_icl_translations" in out
    assert "Deleted: 0 from wp_postmeta" in out


def test_main_reports_configuration_errors(site):
    assert cli.main(["clean-up-media-twins", "--db", site, "orderby=rand"]) == 1
