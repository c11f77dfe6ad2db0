"""Tests for the course editor mutations."""

import threading

import pytest

from course_editor.exceptions import InvalidArgumentError
from course_editor.moodle.api import MoodleAPIError, MoodleResponseError
from course_editor.mutations import Mutations, SequencedMutations
from course_editor.state.manager import StateManager


@pytest.fixture
def mutations(fake_api) -> Mutations:
    return Mutations(fake_api)


def edit_args(fake_api) -> dict:
    """Arguments of the last core_course_edit call."""
    args, kwargs = fake_api.call_json.call_args
    assert args == ("core_course_edit",)
    return kwargs


class TestMoveModules:
    def test_move_to_section_reconciles_returned_update(self, mutations, fake_api, state_manager):
        fake_api.call_json.return_value = [{"action": "update", "name": "cm", "fields": {"id": 12, "sectionid": 3}}]

        mutations.move_modules(state_manager, [12], target_section_id=3)

        assert edit_args(fake_api) == {"action": "cm_move", "courseid": 42, "ids": [12], "targetsectionid": 3}
        assert state_manager.get("cm", 12)["sectionid"] == 3

    def test_move_before_module_sends_target_cm(self, mutations, fake_api, state_manager):
        mutations.move_modules(state_manager, [12], target_cm_id=10)

        assert edit_args(fake_api) == {"action": "cm_move", "courseid": 42, "ids": [12], "targetcmid": 10}

    def test_move_with_both_targets_sends_both(self, mutations, fake_api, state_manager):
        mutations.move_modules(state_manager, [12], target_section_id=1, target_cm_id=10)

        assert edit_args(fake_api)["targetcmid"] == 10
        assert edit_args(fake_api)["targetsectionid"] == 1

    def test_move_without_target_fails_before_any_call(self, mutations, fake_api, state_manager):
        before = state_manager.snapshot()

        with pytest.raises(InvalidArgumentError):
            mutations.move_modules(state_manager, [12])

        fake_api.call_json.assert_not_called()
        assert state_manager.snapshot() == before

    @pytest.mark.parametrize("ids", [[], None, ["12"], [True]])
    def test_move_with_invalid_ids_fails(self, mutations, fake_api, state_manager, ids):
        with pytest.raises(InvalidArgumentError):
            mutations.move_modules(state_manager, ids, target_section_id=3)
        fake_api.call_json.assert_not_called()

    def test_move_locks_modules_during_the_call(self, mutations, fake_api, state_manager):
        locked_during_call = []

        def call_json(method, **args):
            locked_during_call.append(state_manager.get("cm", 12).get("locked"))
            return []

        fake_api.call_json.side_effect = call_json

        mutations.move_modules(state_manager, [12], target_section_id=3)

        assert locked_during_call == [True]
        assert state_manager.get("cm", 12)["locked"] is False

    def test_remote_failure_propagates_and_unlocks(self, mutations, fake_api, state_manager):
        fake_api.call_json.side_effect = MoodleAPIError("Request failed")

        with pytest.raises(MoodleAPIError):
            mutations.move_modules(state_manager, [12], target_section_id=3)

        cm = state_manager.get("cm", 12)
        assert cm["sectionid"] == 2
        assert cm["locked"] is False

    def test_malformed_update_list_applies_nothing(self, mutations, fake_api, state_manager):
        fake_api.call_json.return_value = [
            {"action": "update", "name": "cm", "fields": {"id": 12, "sectionid": 3}},
            {"action": "update", "name": "section", "fields": "bad"},
        ]

        with pytest.raises(MoodleResponseError):
            mutations.move_modules(state_manager, [12], target_section_id=3)

        assert state_manager.get("cm", 12)["sectionid"] == 2

    def test_move_requires_loaded_state(self, mutations, fake_api):
        with pytest.raises(InvalidArgumentError):
            mutations.move_modules(StateManager(), [12], target_section_id=3)
        fake_api.call_json.assert_not_called()


class TestMoveSections:
    def test_move_sections(self, mutations, fake_api, state_manager):
        fake_api.call_json.return_value = [
            {"action": "update", "name": "section", "fields": {"id": 3, "number": 1}},
            {"action": "update", "name": "section", "fields": {"id": 2, "number": 2}},
        ]

        mutations.move_sections(state_manager, [3], 1)

        assert edit_args(fake_api) == {"action": "section_move", "courseid": 42, "ids": [3], "targetsectionid": 1}
        assert state_manager.get("section", 3)["number"] == 1
        assert state_manager.get("section", 2)["number"] == 2

    def test_move_sections_without_target_fails(self, mutations, fake_api, state_manager):
        with pytest.raises(InvalidArgumentError):
            mutations.move_sections(state_manager, [3], None)
        fake_api.call_json.assert_not_called()


class TestRefresh:
    def test_refresh_unknown_section_inserts_it(self, mutations, fake_api, state_manager):
        fields = {"id": 7, "number": 3, "title": "Week 3", "visible": True, "cmlist": []}
        fake_api.call_json.return_value = [{"action": "update", "name": "section", "fields": fields}]

        mutations.refresh_sections(state_manager, [7])

        assert edit_args(fake_api) == {"action": "section_state", "courseid": 42, "ids": [7]}
        assert state_manager.get("section", 7) == fields

    def test_refresh_modules_merges_known_module(self, mutations, fake_api, state_manager):
        fake_api.call_json.return_value = [{"action": "update", "name": "cm", "fields": {"id": 12, "name": "Quiz A"}}]

        mutations.refresh_modules(state_manager, [12])

        assert edit_args(fake_api)["action"] == "cm_state"
        assert state_manager.get("cm", 12)["name"] == "Quiz A"
        assert state_manager.get("cm", 12)["sectionid"] == 2

    def test_refresh_course(self, mutations, fake_api, state_manager):
        fake_api.call_json.return_value = [
            {"action": "update", "name": "course", "fields": {"id": 42, "sectionlist": [1, 2, 3, 4]}},
            {"action": "update", "name": "section", "fields": {"id": 4, "number": 3, "cmlist": []}},
        ]

        mutations.refresh_course(state_manager)

        assert edit_args(fake_api) == {"action": "course_state", "courseid": 42, "ids": []}
        assert state_manager.get("course")["sectionlist"] == [1, 2, 3, 4]
        assert state_manager.has("section", 4)

    def test_default_policy_still_drops_unknown_updates(self, mutations, fake_api, state_manager):
        fake_api.call_json.return_value = [{"action": "update", "name": "section", "fields": {"id": 7}}]

        mutations.move_sections(state_manager, [3], 1)

        assert not state_manager.has("section", 7)


class TestVisibility:
    def test_hide_skips_hidden_and_unknown_modules(self, mutations, fake_api, state_manager):
        fake_api.call_json.return_value = [{"action": "update", "name": "cm", "fields": {"id": 10, "visible": False}}]

        mutations.cm_hide(state_manager, [10, 11, 99])

        assert edit_args(fake_api) == {"action": "cm_hide", "courseid": 42, "ids": [10]}
        assert state_manager.get("cm", 10)["visible"] is False

    def test_show_without_pending_modules_makes_no_call(self, mutations, fake_api, state_manager):
        mutations.cm_show(state_manager, [10, 12])
        fake_api.call_json.assert_not_called()

    def test_section_show(self, mutations, fake_api, state_manager):
        mutations.section_show(state_manager, [2, 3])
        assert edit_args(fake_api) == {"action": "section_show", "courseid": 42, "ids": [3]}


class TestBulkSelection:
    def test_bulk_enable_resets_selection(self, mutations, state_manager):
        mutations.bulk_enable(state_manager, True)
        mutations.cm_select(state_manager, [10])

        mutations.bulk_enable(state_manager, True)

        assert state_manager.get("bulk") == {"enabled": True, "selected_type": "", "selection": []}

    def test_select_filters_unknown_ids(self, mutations, state_manager):
        mutations.bulk_enable(state_manager, True)

        mutations.cm_select(state_manager, [10, 99, 12])

        bulk = state_manager.get("bulk")
        assert bulk["selected_type"] == "cm"
        assert bulk["selection"] == [10, 12]

    def test_select_other_type_is_ignored(self, mutations, state_manager):
        mutations.bulk_enable(state_manager, True)
        mutations.cm_select(state_manager, [10])

        mutations.section_select(state_manager, [1])

        bulk = state_manager.get("bulk")
        assert bulk["selected_type"] == "cm"
        assert bulk["selection"] == [10]

    def test_unselecting_everything_resets_type(self, mutations, state_manager):
        mutations.bulk_enable(state_manager, True)
        mutations.section_select(state_manager, [1, 2])

        mutations.section_unselect(state_manager, [1, 2])

        bulk = state_manager.get("bulk")
        assert bulk["selection"] == []
        assert bulk["selected_type"] == ""

    def test_selection_makes_no_remote_call(self, mutations, fake_api, state_manager):
        mutations.cm_select(state_manager, [10])
        mutations.cm_unselect(state_manager, [10])
        fake_api.call_json.assert_not_called()


def test_sequenced_mutations_behave_like_plain_ones(fake_api, state_manager):
    fake_api.call_json.return_value = [{"action": "update", "name": "cm", "fields": {"id": 12, "sectionid": 3}}]
    mutations = SequencedMutations(fake_api)

    mutations.move_modules(state_manager, [12], target_section_id=3)
    mutations.move_modules(state_manager, [12], target_section_id=3)

    assert fake_api.call_json.call_count == 2
    assert state_manager.get("cm", 12)["sectionid"] == 3
    assert mutations._lock_for(42) is mutations._lock_for(42)
    assert lock_is_free(mutations._lock_for(42))


def lock_is_free(lock) -> bool:
    """Whether another thread could take the lock right now."""
    result = []

    def try_acquire():
        acquired = lock.acquire(blocking=False)
        result.append(acquired)
        if acquired:
            lock.release()

    worker = threading.Thread(target=try_acquire)
    worker.start()
    worker.join()
    return result == [True]


def test_sequenced_selection_waits_for_running_mutation(fake_api, state_manager):
    mutations = SequencedMutations(fake_api)
    lock = mutations._lock_for(42)

    with lock:
        worker = threading.Thread(target=mutations.cm_select, args=(state_manager, [10]))
        worker.start()
        worker.join(timeout=0.2)
        assert worker.is_alive()
        assert state_manager.get("bulk")["selection"] == []

    worker.join(timeout=5)
    assert not worker.is_alive()
    assert state_manager.get("bulk")["selection"] == [10]
    assert lock_is_free(lock)


def test_sequenced_watcher_can_dispatch_nested_mutation(fake_api, state_manager):
    fake_api.call_json.return_value = [{"action": "update", "name": "cm", "fields": {"id": 12, "sectionid": 3}}]
    mutations = SequencedMutations(fake_api)
    state_manager.subscribe("cm.sectionid:updated", lambda detail: mutations.cm_select(state_manager, [12]))

    mutations.move_modules(state_manager, [12], target_section_id=3)

    assert state_manager.get("bulk")["selection"] == [12]
