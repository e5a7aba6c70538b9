import pytest

from wui.item import ProjectSummary
from wui.tasklist import (
    NO_GROUP,
    TaskListState,
    extract_unique_projects,
    extract_unique_tags,
    group_by_project,
    group_by_tag,
    sort_tasks,
)


def names(groups):
    return [g.name for g in groups]


@pytest.mark.unit
class TestGroupByTag:
    def test_every_tag_holds_its_tasks(self, sample_tasks):
        groups = group_by_tag(sample_tasks)
        assert names(groups) == ["family", "office", "outside", "phone", NO_GROUP]
        by_name = {g.name: g for g in groups}
        for task in sample_tasks:
            for tag in task.tags:
                assert task in by_name[tag].tasks
        assert [t.uuid for t in by_name[NO_GROUP].tasks] == ["b"]

    def test_case_insensitive_order(self, task_factory):
        tasks = [task_factory("1", tags=["beta"]), task_factory("2", tags=["Alpha"])]
        assert names(group_by_tag(tasks)) == ["Alpha", "beta"]

    def test_no_untagged_group_when_all_tagged(self, task_factory):
        assert NO_GROUP not in names(group_by_tag([task_factory("1", tags=["x"])]))


@pytest.mark.unit
class TestGroupByProject:
    def test_hierarchy(self, sample_tasks, sample_summaries):
        groups = group_by_project(sample_tasks, sample_summaries)
        assert names(groups) == ["home", "home.garage", "home.garden", "work", NO_GROUP]

        by_name = {g.name: g for g in groups}
        assert by_name["home"].count == 2
        assert by_name["home"].percentage == 40
        assert by_name["home.garden"].depth == 1
        assert by_name["home.garden"].parent == "home"
        assert by_name["home.garden"].label == "garden"
        assert [t.uuid for t in by_name[NO_GROUP].tasks] == ["d"]

    def test_parent_created_without_summary(self, task_factory):
        groups = group_by_project([task_factory("1", project="a.b.c")])
        assert names(groups) == ["a", "a.b", "a.b.c"]
        assert all(g.count == 1 for g in groups)
        assert groups[0].percentage is None

    def test_summary_only_projects_are_listed(self, task_factory):
        groups = group_by_project(
            [task_factory("1", project="work")], [ProjectSummary("idle", 100)]
        )
        assert names(groups) == ["idle", "work"]
        assert groups[0].count == 0

    def test_children_follow_their_parent(self, task_factory):
        tasks = [
            task_factory("1", project="a-b"),
            task_factory("2", project="a.z"),
            task_factory("3", project="a"),
        ]
        assert names(group_by_project(tasks)) == ["a", "a.z", "a-b"]


@pytest.mark.unit
class TestSorting:
    @pytest.mark.parametrize("method", ["due", "scheduled", "modified", "created"])
    def test_undated_tasks_last(self, task_factory, method):
        attr = "entry" if method == "created" else method
        tasks = [
            task_factory("none1"),
            task_factory("early", **{attr: "2025-01-01"}),
            task_factory("none2"),
            task_factory("late", **{attr: "2025-06-01"}),
        ]
        ordered = [t.uuid for t in sort_tasks(tasks, method)]
        assert ordered == ["early", "late", "none1", "none2"]

        # reverse inverts the whole date comparison
        reversed_order = [t.uuid for t in sort_tasks(tasks, method, reverse=True)]
        assert reversed_order == ["none1", "none2", "late", "early"]

    @pytest.mark.parametrize("reverse", [False, True])
    def test_completed_always_last(self, task_factory, reverse):
        tasks = [
            task_factory("done", "aaa", status="completed"),
            task_factory("open1", "bbb"),
            task_factory("open2", "ccc"),
        ]
        ordered = [t.uuid for t in sort_tasks(tasks, "alphabetic", reverse)]
        assert ordered[-1] == "done"

    def test_urgency_descending(self, sample_tasks):
        ordered = [t.uuid for t in sort_tasks(sample_tasks, "urgency")]
        assert ordered == ["b", "a", "d", "c"]

    def test_alphabetic_aliases(self, sample_tasks):
        expected = [t.uuid for t in sort_tasks(sample_tasks, "alphabetic")]
        assert expected == ["d", "b", "c", "a"]
        assert [t.uuid for t in sort_tasks(sample_tasks, "alpha")] == expected
        assert [t.uuid for t in sort_tasks(sample_tasks, "description")] == expected

    def test_no_method_keeps_export_order(self, sample_tasks):
        assert sort_tasks(sample_tasks) == sample_tasks


@pytest.mark.unit
def test_unique_projects_and_tags(sample_tasks):
    assert extract_unique_projects(sample_tasks) == ("home.garage", "home.garden", "work")
    assert extract_unique_tags(sample_tasks) == ("family", "office", "outside", "phone")


@pytest.mark.unit
class TestTaskListState:
    def test_flat_list(self, sample_tasks):
        state = TaskListState().for_section("", "urgency", False).load(sample_tasks)
        assert not state.grouped
        assert state.current_task.uuid == "b"
        assert state.item_count == 4

    def test_cursor_clamped(self, sample_tasks):
        state = TaskListState().load(sample_tasks)
        assert state.move(10).cursor == 3
        assert state.move(-10).cursor == 0
        assert state.last().cursor == 3
        assert state.last().first().cursor == 0
        assert state.load(sample_tasks[:1]).move(5).cursor == 0

    def test_page(self, task_factory):
        tasks = [task_factory(str(i)) for i in range(25)]
        state = TaskListState(page_size=10).load(tasks)
        assert state.page(1).cursor == 10
        assert state.page(1).page(1).page(1).cursor == 24
        assert state.page(-1).cursor == 0

    def test_empty_list(self):
        state = TaskListState().load([])
        assert state.current_task is None
        assert state.move(1).cursor == 0
        assert state.selected_tasks() == []

    def test_selection_keeps_marking_order(self, sample_tasks):
        state = TaskListState().load(sample_tasks)
        state = state.last().toggle_selection().first().toggle_selection()
        assert [t.uuid for t in state.selected_tasks()] == ["d", "a"]
        state = state.toggle_selection()
        assert state.selected == ("d",)

    def test_selection_pruned_on_reload(self, sample_tasks):
        state = TaskListState().load(sample_tasks).toggle_selection()
        assert state.selected == ("a",)
        state = state.load(sample_tasks[1:])
        assert state.selected == ()

    def test_cursor_task_when_nothing_marked(self, sample_tasks):
        state = TaskListState().load(sample_tasks).move(2)
        assert [t.uuid for t in state.selected_tasks()] == ["c"]

    def test_drill_down_and_back(self, sample_tasks, sample_summaries):
        state = TaskListState().for_section("project", "", False).load(sample_tasks)
        state = state.with_summaries(sample_summaries)
        assert state.grouped
        assert state.current_task is None
        assert state.selected_tasks() == []

        state = state.move(2).drill_down()
        assert not state.grouped
        assert state.selected_group == "home.garden"
        assert [t.uuid for t in state.visible] == ["c"]

        back = state.back_to_groups()
        assert back.grouped
        assert back.current_group.name == "home.garden"

    def test_back_to_groups_recomputes(self, sample_tasks, task_factory):
        state = TaskListState().for_section("tag", "", False).load(sample_tasks)
        state = state.drill_down()
        assert state.selected_group == "family"
        state = state.load(sample_tasks + [task_factory("e", tags=["errand"])])
        back = state.back_to_groups()
        assert "errand" in names(back.groups)
        assert back.current_group.name == "family"

    def test_drilled_group_vanishes(self, sample_tasks):
        state = TaskListState().for_section("tag", "", False).load(sample_tasks)
        state = state.drill_down()
        state = state.load(sample_tasks[:1])
        assert state.visible == ()
        assert state.current_task is None
