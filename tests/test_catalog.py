"""Tests for the effect catalog and selection strategies."""

import threading

import pytest

from slidecompose.catalog import (
    COLOR_GRADE_NAMES,
    COLOR_GRADES,
    PAN_ZOOM_NAMES,
    PAN_ZOOMS,
    TRANSITION_NAMES,
    TRANSITIONS,
    CyclePicker,
    FixedPicker,
    RandomPicker,
    describe_catalog,
)


class TestTables:
    def test_tables_are_read_only(self):
        with pytest.raises(TypeError):
            TRANSITIONS["new"] = TRANSITIONS["crossfade"]

    def test_names_match_keys(self):
        for table in (TRANSITIONS, PAN_ZOOMS, COLOR_GRADES):
            for name, entry in table.items():
                assert entry.name == name

    def test_crossfade_is_xfade_fade(self):
        assert TRANSITIONS["crossfade"].xfade == "fade"

    def test_catalog_has_wipes(self):
        assert {"wipe_left", "wipe_right", "wipe_up", "wipe_down"} <= set(TRANSITION_NAMES)

    def test_pan_zoom_fractions_in_range(self):
        for effect in PAN_ZOOMS.values():
            for lo, hi in (effect.x, effect.y):
                assert 0.0 <= lo <= 1.0 and 0.0 <= hi <= 1.0
            assert min(effect.zoom) >= 1.0

    def test_rotations_zoom_enough_to_hide_corners(self):
        for effect in PAN_ZOOMS.values():
            if effect.rotates:
                assert min(effect.zoom) >= 1.1

    def test_natural_grade_is_identity(self):
        assert COLOR_GRADES["natural"].is_identity
        assert not COLOR_GRADES["warm"].is_identity

    def test_describe_catalog(self):
        described = describe_catalog()
        assert described["transitions"] == TRANSITION_NAMES
        assert described["ken_burns"] == PAN_ZOOM_NAMES
        assert described["color_grades"] == COLOR_GRADE_NAMES


class TestPickers:
    def test_seeded_random_picker_is_reproducible(self):
        a = RandomPicker(seed=42)
        b = RandomPicker(seed=42)
        picks_a = [a.pick(TRANSITION_NAMES) for _ in range(20)]
        picks_b = [b.pick(TRANSITION_NAMES) for _ in range(20)]
        assert picks_a == picks_b

    def test_random_picker_picks_members(self):
        picker = RandomPicker(seed=1)
        for _ in range(50):
            assert picker.pick(PAN_ZOOM_NAMES) in PAN_ZOOMS

    def test_random_picker_is_thread_safe(self):
        picker = RandomPicker(seed=3)
        results = []

        def worker():
            for _ in range(200):
                results.append(picker.pick(TRANSITION_NAMES))

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(results) == 800
        assert set(results) <= set(TRANSITION_NAMES)

    def test_cycle_picker_wraps(self):
        picker = CyclePicker()
        assert [picker.pick(("a", "b")) for _ in range(5)] == ["a", "b", "a", "b", "a"]

    def test_fixed_picker(self):
        picker = FixedPicker("wipe_left")
        assert picker.pick(TRANSITION_NAMES) == "wipe_left"
        # Not in this family: falls back to the first entry.
        assert picker.pick(COLOR_GRADE_NAMES) == COLOR_GRADE_NAMES[0]

    @pytest.mark.parametrize("picker", [RandomPicker(), CyclePicker(), FixedPicker("x")])
    def test_empty_entries_raise(self, picker):
        with pytest.raises(ValueError, match="empty"):
            picker.pick(())
