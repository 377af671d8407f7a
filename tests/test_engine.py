# Panoplan imports
from panoplan import AnnotationEngine, Building, Floor, JsonSessionStore, Notifier, Pano, Room, stage_rows
from panoplan.point_capture import CaptureStage

# Third-party imports
import pytest


SQUARE = [(0, 0), (100, 0), (100, 100), (0, 100)]


@pytest.fixture
def engine():
    """Engine with a building, two floors and the ground floor active"""
    eng = AnnotationEngine(Notifier())
    eng.set_building(Building(id="b1", name="HQ"))
    eng.set_floors([
        Floor(id="f0", building_id="b1", name="Ground", order_index=0),
        Floor(id="f1", building_id="b1", name="First", order_index=1),
    ])
    eng.set_active_floor("f0")
    return eng


def _calibrate(engine, p1, p2, distance, unit="meters"):
    engine.start_calibration()
    engine.handle_click(p1)
    engine.handle_click(p2)
    return engine.commit_calibration(distance, unit)


def _measure(engine, p1, p2, name, unit="meters"):
    engine.start_measuring()
    engine.handle_click(p1)
    engine.handle_click(p2)
    return engine.commit_measurement(name, unit)


class TestCalibration:
    """Scale calibration through the engine"""

    def test_commit_sets_pixels_per_meter(self, engine):
        cal = _calibrate(engine, (0, 0), (50, 0), 1)
        assert cal.pixels_per_meter == pytest.approx(50.0)
        assert engine.get_active_floor().calibration == cal
        assert engine.unsaved_changes

    def test_negative_distance_rejected(self, engine):
        _calibrate(engine, (0, 0), (50, 0), 1)
        before = engine.get_active_floor().calibration

        assert _calibrate(engine, (0, 0), (10, 0), "-3") is None

        assert engine.get_active_floor().calibration == before
        assert engine.notifier.last == ("Please enter a valid distance", "error")

    @pytest.mark.parametrize("distance", [0, "0", "abc", ""])
    def test_invalid_distance_never_calibrates(self, engine, distance):
        assert _calibrate(engine, (0, 0), (10, 0), distance) is None
        assert engine.get_active_floor().calibration is None

    @pytest.mark.parametrize("distance, unit", [("5e-324", "feet"), ("1e-310", "meters")])
    def test_underflowing_distance_rejected(self, engine, distance, unit):
        assert _calibrate(engine, (0, 0), (10, 0), distance, unit) is None
        assert engine.get_active_floor().calibration is None
        assert engine.notifier.last == ("Please enter a valid distance", "error")

    def test_commit_without_points_rejected(self, engine):
        engine.start_calibration()
        assert engine.commit_calibration(2.0) is None
        assert engine.get_active_floor().calibration is None

    def test_recalibration_replaces_wholesale(self, engine):
        _calibrate(engine, (0, 0), (50, 0), 1)
        cal = _calibrate(engine, (10, 10), (10, 110), 2)
        assert engine.get_active_floor().calibration == cal
        assert cal.pixels_per_meter == pytest.approx(50.0)
        assert cal.p1.as_tuple() == (10.0, 10.0)

    def test_feet(self, engine):
        cal = _calibrate(engine, (0, 0), (100, 0), 3.28084, "feet")
        assert cal.pixels_per_meter == pytest.approx(100.0)

    def test_cancel_discards_pending(self, engine):
        engine.start_calibration()
        engine.handle_click((0, 0))
        engine.handle_click((5, 0))
        assert engine.pending_calibration is not None
        engine.cancel_calibration()
        assert engine.pending_calibration is None
        assert engine.get_active_floor().calibration is None
        assert not engine.unsaved_changes

    def test_no_active_floor(self, engine):
        engine.set_active_floor(None)
        assert _calibrate(engine, (0, 0), (50, 0), 1) is None
        assert engine.notifier.last[1] == "error"


class TestMeasurements:
    """Measurement ledger through the engine"""

    def test_recalibration_scenario(self, engine):
        m = _measure(engine, (0, 0), (100, 0), "Corridor")
        assert engine.measurement_length(m.id) == pytest.approx(100.0)

        _calibrate(engine, (0, 0), (50, 0), 1)

        assert engine.format_measurement(m.id) == "2.00 m"
        assert engine.get_measurement(m.id).px_length == 100.0

    def test_empty_name_rejected(self, engine):
        assert _measure(engine, (0, 0), (10, 0), "   ") is None
        assert engine.measurements == ()
        assert engine.measure_capture.stage is CaptureStage.READY

    def test_tagged_with_selected_room(self, engine):
        room = engine.draw_room("Office", SQUARE)
        engine.select_room(room.id)
        m = _measure(engine, (0, 0), (10, 0), "Desk")
        assert m.room_id == room.id
        assert engine.measurements_by_room(room.id) == [m]

    def test_display_in_other_unit(self, engine):
        _calibrate(engine, (0, 0), (50, 0), 1)
        m = _measure(engine, (0, 0), (100, 0), "Wall", unit="feet")
        assert engine.format_measurement(m.id) == "6.56 ft"
        assert engine.format_measurement(m.id, "meters") == "2.00 m"

    def test_round_trip_through_calibration(self, engine):
        cal = _calibrate(engine, (0, 0), (37, 0), 1.3)
        m = _measure(engine, (3, 4), (90, 61), "Diagonal")
        meters = engine.measurement_length(m.id, "meters")
        assert meters * cal.pixels_per_meter == pytest.approx(m.px_length)

    def test_pending_display(self, engine):
        engine.start_measuring()
        engine.handle_click((0, 0))
        engine.handle_click((30, 40))
        assert engine.format_pending_measurement() == "50.00 m"

    def test_update_and_delete(self, engine):
        m = _measure(engine, (0, 0), (10, 0), "Door")
        engine.update_measurement(m.id, name="Front door")
        assert engine.get_measurement(m.id).name == "Front door"
        engine.delete_measurement(m.id)
        assert engine.measurements == ()
        engine.delete_measurement(m.id)

    @pytest.mark.parametrize("changes, message", [
        ({"name": "   "}, "Please enter a measurement name"),
        ({"unit": "yards"}, "Unknown unit 'yards'. Use one of meters, feet"),
    ])
    def test_invalid_edit_reported_and_ignored(self, engine, changes, message):
        m = _measure(engine, (0, 0), (10, 0), "Door")

        assert engine.update_measurement(m.id, **changes) is False

        assert engine.get_measurement(m.id) == m
        assert engine.notifier.last == (message, "error")

    def test_measurements_per_floor(self, engine):
        m0 = _measure(engine, (0, 0), (10, 0), "Ground")
        engine.set_active_floor("f1")
        m1 = _measure(engine, (0, 0), (10, 0), "First")
        assert engine.measurements_on_active_floor() == [m1]
        engine.set_active_floor("f0")
        assert engine.measurements_on_active_floor() == [m0]

    def test_clicks_route_to_armed_capture_only(self, engine):
        engine.start_calibration()
        engine.start_measuring()
        assert engine.calibration_capture.stage is CaptureStage.IDLE
        engine.handle_click((0, 0))
        assert engine.measure_capture.stage is CaptureStage.AWAITING_SECOND

    def test_click_with_nothing_armed(self, engine):
        assert engine.handle_click((1, 1)) is None


class TestRoomsAndPanos:
    """Room drawing, pano assignment and cascading delete"""

    @pytest.fixture
    def seeded(self, engine):
        engine.set_panos([
            Pano(id="p1", building_id="b1", node_id="N1", title="Office East", floor_id="f0"),
            Pano(id="p2", building_id="b1", node_id="N2", title="Office West", floor_id="f0"),
            Pano(id="p3", building_id="b1", node_id="N3", title="Roof", floor_id="f1"),
        ])
        return engine

    def test_draw_room_requires_three_points(self, engine):
        assert engine.draw_room("Bad", [(0, 0), (1, 1)]) is None
        assert engine.draw_room("Bad", []) is None
        assert engine.rooms == ()

    def test_draw_room_requires_name(self, engine):
        assert engine.draw_room("  ", SQUARE) is None

    def test_delete_room_unassigns_panos(self, seeded):
        room = seeded.draw_room("Office", SQUARE)
        assert seeded.assign_pano_to_room("p1", room.id)
        assert seeded.assign_pano_to_room("p2", room.id)
        seeded.select_room(room.id)

        seeded.delete_room(room.id)

        assert all(p.room_id is None for p in seeded.panos)
        assert {p.id for p in seeded.get_unassigned_panos()} == {"p1", "p2", "p3"}
        assert seeded.get_selected_room() is None

    def test_assign_to_missing_room_rejected(self, seeded):
        assert not seeded.assign_pano_to_room("p1", "nope")
        assert seeded.get_pano("p1").room_id is None

    def test_assign_across_floors_rejected(self, seeded):
        room = seeded.draw_room("Office", SQUARE)
        assert not seeded.assign_pano_to_room("p3", room.id)
        assert seeded.get_room_panos(room.id) == []

    def test_unassign(self, seeded):
        room = seeded.draw_room("Office", SQUARE)
        seeded.assign_pano_to_room("p1", room.id)
        seeded.unassign_pano("p1")
        assert seeded.get_room_panos(room.id) == []

    def test_filter_unassigned_view(self, seeded):
        room = seeded.draw_room("Office", SQUARE)
        seeded.assign_pano_to_room("p1", room.id)
        assert [p.id for p in seeded.filter_panos("office", unassigned_only=True)] == ["p2"]
        assert [p.id for p in seeded.filter_panos("office")] == ["p1", "p2"]

    def test_room_at_active_floor(self, engine):
        room = engine.draw_room("Office", SQUARE)
        assert engine.room_at((50, 50)) == room
        engine.set_active_floor("f1")
        assert engine.room_at((50, 50)) is None

    def test_room_area_uses_calibration(self, engine):
        room = engine.draw_room("Office", SQUARE)
        _calibrate(engine, (0, 0), (50, 0), 1)
        assert engine.room_area(room.id) == pytest.approx(4.0)
        assert engine.room_perimeter(room.id) == pytest.approx(8.0)
        assert engine.room_area(room.id, "feet") == pytest.approx(4.0 * 3.28084 ** 2)

    def test_visibility_filter(self, engine):
        assert engine.shows_rooms and engine.shows_panos
        engine.set_visibility_filter("panos")
        assert engine.shows_panos and not engine.shows_rooms

    def test_update_room(self, engine):
        room = engine.draw_room("Office", SQUARE)
        engine.update_room(room.id, name="Boardroom")
        assert engine.get_room(room.id).name == "Boardroom"


class TestFloors:
    """Floor registry through the engine"""

    def test_delete_active_floor(self, engine):
        engine.delete_floor("f0")
        assert engine.get_active_floor() is None
        assert [f.id for f in engine.floors] == ["f1"]

    def test_get_floor_by_order(self, engine):
        assert engine.get_floor_by_order(1).id == "f1"

    def test_add_floor_from_image(self, engine, tmp_path):
        from PIL import Image
        image_path = tmp_path / "level2.png"
        Image.new("L", (64, 48)).save(image_path)

        floor = engine.add_floor_from_image(image_path, "Second")

        assert floor.order_index == 2
        assert (floor.width_px, floor.height_px) == (64, 48)
        assert engine.get_floor_by_order(2) == floor

    def test_seeding_does_not_mark_unsaved(self, engine):
        assert not engine.unsaved_changes


class TestImport:
    """Room creation from staged import tables"""

    def test_blank_row_is_not_imported(self, engine):
        result = stage_rows([
            ["Ref", "Room Name"],
            ["REF", "ROOM_NAME"],
            ["G01", "Office"],
            ["", ""],
            ["G02", "Store"],
        ])

        rooms = engine.import_rooms(result)

        assert len(rooms) == 2
        assert len(engine.rooms) == 2
        assert all(r.floor_id == "f0" for r in engine.rooms)
        assert engine.state.import_headers == (("Ref", "Room Name"), ("REF", "ROOM_NAME"))
        assert engine.unsaved_changes

    def test_failed_import_reports_errors(self, engine):
        assert engine.import_rooms(stage_rows([["A"]])) == []
        assert engine.rooms == ()
        assert engine.notifier.last[1] == "error"

    def test_import_needs_active_floor(self, engine):
        engine.set_active_floor(None)
        result = stage_rows([["A"], ["NAME"], ["Office"]])
        assert engine.import_rooms(result) == []

    def test_import_room_file(self, engine, tmp_path):
        path = tmp_path / "rooms.csv"
        path.write_text("Room Name,Outline\nROOM_NAME,POLYGON\nOffice,\"0,0;10,0;10,10\"\n")
        rooms = engine.import_room_file(path)
        assert rooms[0].name == "Office"
        assert rooms[0].is_drawn


class TestPersistence:
    """Load / save hooks and the unsaved flag"""

    class FailingStore:
        def save(self, snapshot, unsaved_changes):
            raise OSError("disk full")

    def test_save_clears_flag(self, engine, tmp_path):
        engine.draw_room("Office", SQUARE)
        assert engine.unsaved_changes
        assert engine.save(JsonSessionStore(tmp_path / "s.json"))
        assert not engine.unsaved_changes

    def test_failed_save_keeps_flag(self, engine):
        engine.draw_room("Office", SQUARE)
        assert not engine.save(self.FailingStore())
        assert engine.unsaved_changes
        assert engine.notifier.last == ("Save failed: disk full", "error")

    def test_load_seeds_state(self, engine, tmp_path):
        room = engine.draw_room("Office", SQUARE)
        _calibrate(engine, (0, 0), (50, 0), 1)
        m = _measure(engine, (0, 0), (100, 0), "Corridor")
        store = JsonSessionStore(tmp_path / "s.json")
        engine.save(store)

        fresh = AnnotationEngine()
        fresh.load(store)

        assert not fresh.unsaved_changes
        assert fresh.get_active_floor().id == "f0"
        assert fresh.get_room(room.id).polygon == room.polygon
        assert fresh.format_measurement(m.id) == "2.00 m"
        assert fresh.building.name == "HQ"

    def test_load_accepts_snapshot(self, engine):
        engine.add_room(Room(id="r1", floor_id="f0", name="R"))
        fresh = AnnotationEngine()
        fresh.load(engine.snapshot())
        assert [r.id for r in fresh.rooms] == ["r1"]

    @pytest.mark.parametrize("content", [None, "{not json", '{"floors": [{"name": "Ground"}]}'])
    def test_failed_load_keeps_state(self, engine, tmp_path, content):
        path = tmp_path / "session.json"
        if content is not None:
            path.write_text(content, encoding="utf-8")
        engine.draw_room("Office", SQUARE)
        before = engine.state

        assert engine.load(JsonSessionStore(path)) is False

        assert engine.state is before
        assert engine.notifier.last[0].startswith("Load failed")
        assert engine.notifier.last[1] == "error"
