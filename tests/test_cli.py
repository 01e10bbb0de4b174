import json

import pytest
from docx import Document
from pypdf import PdfReader

from card_printer.__main__ import build_parser, main, settings_overrides
from card_printer.deck import load_deck


def test_overrides_only_include_given_flags():
    args = build_parser().parse_args(["plan", "deck.json", "--margin", "5", "--no-auto-fit", "--flip", "long"])
    assert settings_overrides(args) == {"margin": 5.0, "autoFit": False, "backFlipMode": "long"}


def test_build_writes_pdf(deck_file, tmp_path):
    out = tmp_path / "sheets.pdf"
    main(["build", str(deck_file), "--no-relay", "--output", str(out), "--sides", "front-back", "--flip", "short"])
    assert len(PdfReader(str(out)).pages) == 4


def test_build_docx(deck_file, tmp_path):
    out = tmp_path / "sheets.docx"
    main(["build", str(deck_file), "--no-relay", "--format", "docx", "--output", str(out)])
    assert len(Document(str(out)).tables) == 2


def test_build_warns_when_pages_hold_fewer_rows(deck_file, tmp_path, capsys):
    out = tmp_path / "short.pdf"
    main([
        "build", str(deck_file), "--no-relay", "--output", str(out),
        "--page-size", "letter", "--no-auto-fit",
    ])
    assert "does not fit the page" in capsys.readouterr().out
    # two rows of three per page for 11 prints
    assert len(PdfReader(str(out)).pages) == 2


def test_plan_prints_page_fill(deck_file, capsys):
    main(["plan", str(deck_file)])
    assert "2 (9, 2)" in capsys.readouterr().out


def test_ydk_import_then_export(tmp_path):
    ydk = tmp_path / "deck.ydk"
    ydk.write_text("#main\n10\n20\n10\n#extra\n!side\n")
    deck_path = tmp_path / "deck.json"

    main(["ydk-import", str(ydk), "--output", str(deck_path)])
    deck = load_deck(deck_path)
    assert [(c.card_id, c.quantity) for c in deck.cards] == [("10", 2), ("20", 1)]

    out = tmp_path / "out.ydk"
    main(["ydk-export", str(deck_path), "--output", str(out)])
    assert out.read_text().splitlines()[2:5] == ["10", "10", "20"]


def test_merge_updates_target(deck_file, tmp_path):
    other = tmp_path / "other.json"
    other.write_text(json.dumps({"cards": [{"src": "https://x/new.jpg", "qty": 2}]}))

    main(["merge", str(other), str(deck_file)])

    assert [c.src for c in load_deck(deck_file).cards][-1] == "https://x/new.jpg"
    raw = json.loads(deck_file.read_text())
    assert [c["src"] for c in raw["cards"]][:3] == ["images/red.png", "images/green.png", "images/blue.png"]
    assert raw["backImage"] == "images/back.png"


def test_docx_check(tmp_path):
    out = tmp_path / "check.docx"
    main(["docx-check", "--output", str(out)])
    assert out.exists()


def test_empty_deck_exits_with_error(tmp_path):
    empty = tmp_path / "empty.json"
    empty.write_text(json.dumps({"cards": []}))
    with pytest.raises(SystemExit) as exc:
        main(["build", str(empty), "--no-relay", "--output", str(tmp_path / "x.pdf")])
    assert exc.value.code == 1


def test_missing_deck_file_exits_with_error(tmp_path):
    with pytest.raises(SystemExit) as exc:
        main(["plan", str(tmp_path / "nope.json")])
    assert exc.value.code == 1
