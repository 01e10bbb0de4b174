from dataclasses import replace

import pytest
from docx import Document
from pypdf import PdfReader

from card_printer.deck import load_deck
from card_printer.errors import CardPrinterError, ExportPreconditionError, GeometryError
from card_printer.models import CropMode, FlipMode, JobState, PrintSettings, SideMode
from card_printer.normalizer import ImageNormalizer
from card_printer.pipeline import ExportPipeline, build_job, job_from_deck

FULL_PATH = [
    JobState.IDLE,
    JobState.EXPANDING,
    JobState.RESOLVING_GEOMETRY,
    JobState.TILING,
    JobState.NORMALIZING_IMAGES,
    JobState.RENDERING,
    JobState.DONE,
]


def _pipeline():
    return ExportPipeline(normalizer=ImageNormalizer(relay_url=None, max_workers=2))


def _deck(deck_file, **settings):
    deck = load_deck(deck_file)
    deck.settings = replace(deck.settings, **settings)
    return deck


def test_empty_card_list_refused():
    with pytest.raises(ExportPreconditionError):
        build_job([], PrintSettings())


def test_back_mode_without_back_image_refused(deck_file):
    deck = _deck(deck_file, side_mode=SideMode.FRONT_BACK)
    with pytest.raises(ExportPreconditionError):
        build_job(deck.cards, deck.settings, back_src=None)


def test_front_only_flip_is_forced_to_none(deck_file):
    job = job_from_deck(_deck(deck_file, flip_mode=FlipMode.LONG))
    assert job.flip_mode is FlipMode.NONE


def test_front_only_pdf(deck_file, tmp_path):
    pipeline = _pipeline()
    out = tmp_path / "out" / "cards.pdf"
    result = pipeline.run(job_from_deck(_deck(deck_file)), out)

    assert result.states == FULL_PATH
    assert pipeline.state is JobState.DONE
    assert result.missing_count == 0
    assert result.front.slot_counts() == [9, 2]
    assert result.back is None

    reader = PdfReader(str(out))
    assert len(reader.pages) == 2
    box = reader.pages[0].mediabox
    assert float(box.width) == pytest.approx(595.28, abs=0.01)
    assert float(box.height) == pytest.approx(841.89, abs=0.01)


def test_front_back_appends_reordered_back_pages(deck_file, tmp_path):
    deck = _deck(deck_file, side_mode=SideMode.FRONT_BACK, flip_mode=FlipMode.SHORT)
    result = _pipeline().run(job_from_deck(deck), tmp_path / "duplex.pdf")

    assert result.front.page_count == 2
    assert result.back.page_count == 2
    assert result.back.manifest == [deck.back_src]
    # Partial last page: the two present slots swap within their row
    last_back = result.back.pages()[1]
    assert [p.slot.index for p in last_back if p.slot] == [10, 9]
    assert len(PdfReader(str(tmp_path / "duplex.pdf")).pages) == 4
    assert len(result.images) == 4


def test_back_only_uses_shared_back_image(deck_file, tmp_path):
    deck = _deck(deck_file, side_mode=SideMode.BACK_ONLY, flip_mode=FlipMode.LONG)
    result = _pipeline().run(job_from_deck(deck), tmp_path / "backs.pdf")

    assert result.front is None
    assert result.back.slot_counts() == [9, 2]
    assert list(result.images) == [deck.back_src]


def test_missing_images_are_counted_and_export_continues(deck_file, tmp_path):
    deck = _deck(deck_file)
    deck.cards[1] = replace(deck.cards[1], src=str(tmp_path / "gone.png"))
    result = _pipeline().run(job_from_deck(deck), tmp_path / "partial.pdf")

    assert result.missing_count == 1
    assert result.failed_images[0].key == str(tmp_path / "gone.png")
    assert len(PdfReader(str(tmp_path / "partial.pdf")).pages) == 2


def test_failed_back_drops_back_pages_in_front_back_mode(deck_file, tmp_path):
    deck = _deck(deck_file, side_mode=SideMode.FRONT_BACK)
    deck.back_src = str(tmp_path / "no-back.png")
    result = _pipeline().run(job_from_deck(deck), tmp_path / "fronts.pdf")

    assert result.back is None
    assert result.missing_count == 1
    assert len(PdfReader(str(tmp_path / "fronts.pdf")).pages) == 2


def test_failed_back_fails_back_only_job(deck_file, tmp_path):
    deck = _deck(deck_file, side_mode=SideMode.BACK_ONLY)
    deck.back_src = str(tmp_path / "no-back.png")
    pipeline = _pipeline()
    with pytest.raises(CardPrinterError):
        pipeline.run(job_from_deck(deck), tmp_path / "nothing.pdf")
    assert pipeline.state is JobState.FAILED
    assert not (tmp_path / "nothing.pdf").exists()


def test_geometry_failure_aborts_before_output(deck_file, tmp_path):
    deck = _deck(deck_file, bleed_mm=5.0, auto_fit=False)
    pipeline = _pipeline()
    with pytest.raises(GeometryError):
        pipeline.run(job_from_deck(deck), tmp_path / "never.pdf")
    assert pipeline.states[-2:] == [JobState.TILING, JobState.FAILED]
    assert not (tmp_path / "never.pdf").exists()


def test_unknown_format_refused(deck_file, tmp_path):
    with pytest.raises(ExportPreconditionError):
        _pipeline().run(job_from_deck(_deck(deck_file)), tmp_path / "x.odt", fmt="odt")


def test_docx_one_table_per_page(deck_file, tmp_path):
    deck = _deck(deck_file, side_mode=SideMode.FRONT_BACK, crop_marks=CropMode.NONE, gap_mm=2.0)
    out = tmp_path / "cards.docx"
    result = _pipeline().run(job_from_deck(deck), out, fmt="docx")

    doc = Document(str(out))
    assert len(doc.tables) == result.page_count == 4
    assert len(doc.sections) == 4
    section = doc.sections[0]
    # Section lengths are stored in twips
    assert section.page_width.mm == pytest.approx(210, abs=0.05)
    assert section.left_margin.mm == pytest.approx(10, abs=0.05)
    assert section.top_margin.mm == pytest.approx(10, abs=0.05)
    # 11 front prints + 11 backs
    assert len(doc.inline_shapes) == 22
    assert all(len(table.rows) == 3 and len(table.columns) == 3 for table in doc.tables)


def test_docx_leaves_room_below_grid_on_letter(deck_file, tmp_path):
    # 63x88 on letter portrait: the grid height is what limits auto-fit
    deck = _deck(deck_file, page_size="letter")
    out = tmp_path / "letter.docx"
    _pipeline().run(job_from_deck(deck), out, fmt="docx")

    doc = Document(str(out))
    for section, table in zip(doc.sections, doc.tables):
        body_pt = section.page_height.pt - section.top_margin.pt - section.bottom_margin.pt
        table_pt = sum(row.height.pt for row in table.rows)
        assert body_pt - table_pt > 1.0


def test_pipeline_reuse_starts_a_fresh_state_path(deck_file, tmp_path):
    pipeline = _pipeline()
    job = job_from_deck(_deck(deck_file))
    first = pipeline.run(job, tmp_path / "first.pdf")
    second = pipeline.run(job, tmp_path / "second.pdf")

    assert first.states == FULL_PATH
    assert second.states == FULL_PATH
    assert pipeline.states == FULL_PATH


def test_plan_only_runs_synchronous_stages(deck_file):
    pipeline = _pipeline()
    geometry, front, back = pipeline.plan(job_from_deck(_deck(deck_file)))
    assert geometry.capacity == 9
    assert front.page_count == 2
    assert back is None
    assert pipeline.states == FULL_PATH[:4]
