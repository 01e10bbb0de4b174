import pytest

from card_printer.errors import GeometryError
from card_printer.expander import expand_cards
from card_printer.geometry import resolve_geometry
from card_printer.models import Card, CropMode
from card_printer.tiler import page_capacity, plan_placements, rows_per_page


def _geometry(**overrides):
    params = dict(
        page_size="a4",
        orientation="portrait",
        margin_mm=10,
        gap_mm=2,
        bleed_mm=0,
        card_width_mm=60,
        card_height_mm=85,
        auto_fit=True,
    )
    params.update(overrides)
    return resolve_geometry(**params)


def _slots(n):
    return expand_cards([Card(src="a", quantity=n)])


def test_21_slots_fill_three_pages():
    plan = plan_placements(_slots(21), _geometry(), CropMode.NONE)

    assert plan.page_count == 3
    assert plan.slot_counts() == [9, 9, 3]
    assert len(plan.placements) == 27
    last_page = plan.pages()[2]
    assert [p.is_empty for p in last_page] == [False] * 3 + [True] * 6


def test_row_major_positions():
    g = _geometry()
    plan = plan_placements(_slots(9), g)
    cells = [(p.row, p.col) for p in plan.placements]
    assert cells == [(r, c) for r in range(3) for c in range(3)]

    p = plan.placements[5]
    assert p.x_mm == pytest.approx(10 + 2 * (g.card_width_mm + 2))
    assert p.y_mm == pytest.approx(10 + 1 * (g.card_height_mm + 2))
    assert p.width_mm == pytest.approx(g.card_width_mm)


def test_slots_keep_sequence_order():
    slots = expand_cards([Card(src="a", quantity=2), Card(src="b", quantity=2)])
    plan = plan_placements(slots, _geometry())
    assert [p.slot.card.src for p in plan.placements if p.slot] == ["a", "a", "b", "b"]
    assert plan.manifest == ["a", "b"]


def test_crop_marks_follow_non_empty_cells():
    plan = plan_placements(_slots(4), _geometry(), CropMode.SHORT)
    for p in plan.placements:
        if p.is_empty:
            assert p.crop is None
        else:
            assert p.crop.mode is CropMode.SHORT
            assert (p.crop.x_mm, p.crop.y_mm) == (p.x_mm, p.y_mm)


def test_shared_image_key_for_back_side():
    plan = plan_placements(_slots(5), _geometry(), side="back", image_key="back.png")
    assert plan.side == "back"
    assert plan.manifest == ["back.png"]
    assert {p.image_key for p in plan.placements if not p.is_empty} == {"back.png"}
    assert all(p.image_key is None for p in plan.placements if p.is_empty)


def test_none_entries_stay_empty():
    slots = _slots(3)
    plan = plan_placements([slots[0], None, slots[2]], _geometry())
    assert plan.placements[1].is_empty
    assert plan.slot_counts() == [2]


def test_empty_sequence_gives_empty_plan():
    plan = plan_placements([], _geometry())
    assert plan.page_count == 0
    assert plan.placements == []


def test_too_tall_grid_closes_page_early():
    g = resolve_geometry("a4", "landscape", 10, 0, 0, 63, 88, auto_fit=False)
    assert not g.fits
    assert rows_per_page(g) == 2
    assert page_capacity(g) == 6

    plan = plan_placements(_slots(9), g)
    assert plan.slot_counts() == [6, 3]
    for p in plan.placements:
        assert p.y_mm + p.height_mm <= g.page_height_mm - g.margin_mm + 1e-6


def test_too_wide_row_is_refused():
    g = resolve_geometry("a4", "portrait", 10, 0, 3, 63, 88, auto_fit=False)
    with pytest.raises(GeometryError):
        plan_placements(_slots(3), g)


def test_single_card_larger_than_page_is_refused():
    g = resolve_geometry("a4", "portrait", 10, 0, 0, 100, 300, auto_fit=False)
    with pytest.raises(GeometryError):
        plan_placements(_slots(1), g)
