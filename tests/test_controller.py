import curses

import pytest

from luet_browse_core import Attribute, CatalogEntry, Mode, Operation
from luet_browse_controller import MAX_MACRO_DEPTH, BrowseController


class FakeRenderer:
    def __init__(self):
        self.calls = []
        self.colored = None

    def draw(self, controller):
        self.calls.append("draw")

    def set_footer(self, text):
        self.calls.append(("footer", text))

    def usable_height(self):
        return 2

    def assign_colors(self, entries, attr):
        self.colored = (len(entries), attr)

    def suspend(self):
        self.calls.append("suspend")

    def resume(self):
        self.calls.append("resume")


class FakeRunner:
    def __init__(self):
        self.commands = []

    def run_interactive(self, command):
        self.commands.append(command)
        return 0


def pkg(name, description, category="shells", state="not installed"):
    return CatalogEntry({
        Attribute.NAME: name,
        Attribute.DESCRIPTION: description,
        Attribute.CATEGORY: category,
        Attribute.INSTALLSTATE: state,
    })


def shells():
    return [pkg("bash", "shell"), pkg("zsh", "shell")]


def make_controller(catalog=None, macros=None):
    catalog = shells() if catalog is None else catalog
    renderer = FakeRenderer()
    runner = FakeRunner()
    controller = BrowseController(lambda: list(catalog), renderer, runner, macros)
    controller.start()
    return controller


def names(entries):
    return [e.name for e in entries]


def type_command(controller, key, text):
    controller.handle_key(ord(key))
    for c in text:
        controller.handle_key(ord(c))
    controller.handle_key(10)


def test_start_state():
    c = make_controller()
    assert c.mode == Mode.STANDARD
    assert c.op == Operation.NONE
    assert names(c.view) == ["bash", "zsh"]
    assert c.sorted_by == Attribute.NAME
    assert c.colored_by == Attribute.INSTALLSTATE
    assert c.renderer.colored == (2, Attribute.INSTALLSTATE)
    assert c.focused_pane is c.list_pane


def test_filter_by_name_keeps_matching_entries():
    c = make_controller()
    c.apply_command(Operation.FILTER, "n:sh")
    assert names(c.view) == ["bash", "zsh"]
    assert c.filter.selection == [Attribute.NAME]

    c.apply_command(Operation.FILTER, "n:ba")
    assert names(c.view) == ["bash"]
    assert c.filter_description == "n:sh, n:ba"


def test_negated_filter_removes_matches():
    c = make_controller([pkg("bash", "shell"), pkg("vim", "editor", "apps")])
    c.apply_command(Operation.FILTER, "d!:shell")
    assert names(c.view) == ["vim"]


def test_filter_without_fields_keeps_selection():
    c = make_controller([pkg("bash", "shell"), pkg("shellcheck", "linter")])
    c.apply_command(Operation.FILTER, "n:sh")
    c.apply_command(Operation.FILTER, "check")
    assert names(c.view) == ["shellcheck"]
    assert c.filter.selection == [Attribute.NAME]


def test_regex_filter():
    c = make_controller([pkg("bash", "shell"), pkg("zsh", "shell"), pkg("dash", "shell")])
    c.apply_command(Operation.FILTER, "n:^[bd]a")
    assert names(c.view) == ["bash", "dash"]

    c.apply_command(Operation.FILTER, "n!:^d.*")
    assert names(c.view) == ["bash"]


def test_invalid_regex_leaves_state_untouched():
    c = make_controller()
    c.apply_command(Operation.FILTER, "zsh")
    view_before = list(c.view)
    description_before = c.filter_description

    c.apply_command(Operation.FILTER, "n:[unbalanced")

    assert c.view == view_before
    assert c.filter_description == description_before
    assert c.filter.selection == [Attribute.NAME, Attribute.DESCRIPTION]
    assert c.history(Operation.FILTER).entries == ["zsh", "n:[unbalanced"]


def test_filter_shows_processing_message_and_resets_focus():
    c = make_controller([pkg("a", "x"), pkg("b", "x"), pkg("c", "x")])
    c.list_pane.move_abs(2)
    c.apply_command(Operation.FILTER, "x")
    assert ("footer", "Processing...") in c.renderer.calls
    assert c.list_pane.focused_index() == 0


def test_empty_filter_pattern_is_recorded_but_does_nothing():
    c = make_controller()
    c.apply_command(Operation.FILTER, "n:")
    assert names(c.view) == ["bash", "zsh"]
    assert c.filter_description == ""
    assert c.history(Operation.FILTER).entries == ["n:"]


def test_filtered_view_is_subsequence_of_catalog():
    catalog = [pkg(n, d) for n, d in [("a", "one"), ("b", "two"), ("c", "one"), ("d", "three")]]
    c = make_controller(catalog)
    c.apply_command(Operation.FILTER, "d:o")
    c.apply_command(Operation.FILTER, "d!:thr")
    keys = [e.key for e in c.catalog]
    positions = [keys.index(e.key) for e in c.view]
    assert positions == sorted(positions)
    assert names(c.view) == ["a", "b", "c"]


def test_clear_filter_restores_sorted_catalog():
    c = make_controller([pkg("a", "z"), pkg("b", "y")])
    c.apply_command(Operation.SORT, "d")
    c.apply_command(Operation.FILTER, "a")
    c.handle_key(ord('c'))
    assert names(c.view) == ["b", "a"]
    assert c.filter_description == ""
    assert c.list_pane.focused_index() == 0


def test_sort():
    c = make_controller([pkg("zsh", "a"), pkg("bash", "b")])
    c.apply_command(Operation.SORT, "xd")
    assert names(c.view) == ["zsh", "bash"]
    assert c.sorted_by == Attribute.DESCRIPTION

    c.apply_command(Operation.SORT, "n")
    assert names(c.view) == ["bash", "zsh"]

    c.apply_command(Operation.SORT, "xyz")
    assert c.sorted_by == Attribute.NAME


def test_search_wraps_once():
    c = make_controller([pkg("alpha", "first"), pkg("beta", "second"), pkg("gamma", "third")])
    c.list_pane.move_to_end()
    c.apply_command(Operation.SEARCH, "alp")
    assert c.list_pane.focused_index() == 0


def test_search_starts_after_focused_entry():
    c = make_controller([pkg("lib1", "x"), pkg("lib2", "x"), pkg("lib3", "x")])
    c.apply_command(Operation.SEARCH, "lib")
    assert c.list_pane.focused_index() == 1
    c.apply_command(Operation.SEARCH, "lib")
    assert c.list_pane.focused_index() == 2
    c.apply_command(Operation.SEARCH, "lib")
    assert c.list_pane.focused_index() == 0


def test_search_with_field_prefix_and_miss():
    c = make_controller([pkg("bash", "shell"), pkg("vim", "editor")])
    c.apply_command(Operation.SEARCH, "n:edit")
    assert c.list_pane.focused_index() == 0
    c.apply_command(Operation.SEARCH, "d:edit")
    assert c.list_pane.focused_index() == 1
    c.apply_command(Operation.SEARCH, "nothing")
    assert c.list_pane.focused_index() == 1


def test_colorcode():
    c = make_controller()
    c.filter.set_selection("v")
    c.apply_command(Operation.COLORCODE, "d")
    assert c.colored_by == Attribute.DESCRIPTION
    assert c.renderer.colored == (2, Attribute.DESCRIPTION)
    assert c.filter.selection == [Attribute.NAME, Attribute.DESCRIPTION]

    c.apply_command(Operation.COLORCODE, "?")
    assert c.colored_by == Attribute.DESCRIPTION


def test_queue_has_no_duplicates():
    c = make_controller()
    c.handle_key(curses.KEY_RIGHT)
    assert [e.key for e in c.queue] == ["shells/bash"]
    assert c.list_pane.focused_index() == 1

    c.list_pane.move_abs(0)
    c.handle_key(curses.KEY_RIGHT)
    assert len(c.queue) == 1


def test_queue_membership_uses_key_not_identity():
    c = make_controller()
    c.queue.append(pkg("bash", "shell"))
    c.handle_key(curses.KEY_RIGHT)
    assert len(c.queue) == 1


def test_tab_and_dequeue():
    c = make_controller()
    c.handle_key(9)
    assert c.focused_pane is c.list_pane

    c.handle_key(curses.KEY_RIGHT)
    c.handle_key(curses.KEY_RIGHT)
    assert len(c.queue) == 2
    c.handle_key(9)
    assert c.focused_pane is c.queue_pane
    assert c.queue_pane.focused

    c.handle_key(curses.KEY_LEFT)
    assert [e.name for e in c.queue] == ["bash"]
    c.handle_key(curses.KEY_LEFT)
    assert c.queue == []
    assert c.focused_pane is c.list_pane


def test_clear_queue():
    c = make_controller()
    c.handle_key(curses.KEY_RIGHT)
    c.handle_key(curses.KEY_RIGHT)
    c.handle_key(9)
    c.handle_key(ord('C'))
    assert c.queue == []
    assert c.focused_pane is c.list_pane


def test_navigation_is_clamped():
    c = make_controller([pkg(str(i), "x") for i in range(5)])
    c.handle_key(curses.KEY_UP)
    assert c.list_pane.focused_index() == 0
    c.handle_key(curses.KEY_NPAGE)
    assert c.list_pane.focused_index() == 2
    c.handle_key(ord('j'))
    c.handle_key(curses.KEY_NPAGE)
    assert c.list_pane.focused_index() == 4
    c.handle_key(curses.KEY_HOME)
    assert c.list_pane.focused_index() == 0
    c.handle_key(curses.KEY_END)
    assert c.list_pane.focused_index() == 4
    c.handle_key(ord('k'))
    assert c.list_pane.focused_index() == 3


def test_exec_substitutes_queue():
    c = make_controller()
    c.handle_key(curses.KEY_RIGHT)
    c.handle_key(curses.KEY_RIGHT)
    c.apply_command(Operation.EXEC, "luet install %p && echo %p")
    assert c.command_runner.commands == ["luet install bash zsh && echo bash zsh"]
    assert c.renderer.calls[-2:] == ["suspend", "resume"]


def test_input_mode_commit_through_keys():
    c = make_controller()
    type_command(c, 'n', "ba")
    assert c.mode == Mode.STANDARD
    assert c.op == Operation.NONE
    assert names(c.view) == ["bash"]
    assert c.history(Operation.FILTER).entries == ["n:ba"]


def test_input_mode_cancel_and_empty_commit():
    c = make_controller()
    c.handle_key(ord('/'))
    assert c.mode == Mode.INPUT
    assert c.op == Operation.FILTER
    c.handle_key(ord('z'))
    c.handle_key(27)
    assert c.mode == Mode.STANDARD
    assert c.history(Operation.FILTER).is_empty()
    assert names(c.view) == ["bash", "zsh"]

    c.handle_key(ord('.'))
    c.handle_key(10)
    assert c.mode == Mode.STANDARD
    assert c.history(Operation.SORT).is_empty()


def test_input_mode_history_browse():
    c = make_controller()
    type_command(c, '?', "zsh")
    c.handle_key(ord('?'))
    assert c.inputbuf.contents == ""
    c.handle_key(curses.KEY_UP)
    assert c.inputbuf.contents == "zsh"
    c.handle_key(curses.KEY_DOWN)
    assert c.inputbuf.contents == ""

    # the filter history is still empty, so browsing does nothing
    c.handle_key(27)
    c.handle_key(ord('/'))
    c.handle_key(ord('x'))
    c.handle_key(curses.KEY_UP)
    assert c.inputbuf.contents == "x"


def test_input_mode_editing_keys():
    c = make_controller()
    c.handle_key(ord('/'))
    for ch in "bsh":
        c.handle_key(ord(ch))
    c.handle_key(curses.KEY_LEFT)
    c.handle_key(curses.KEY_LEFT)
    c.handle_key(ord('a'))
    c.handle_key(curses.KEY_HOME)
    c.handle_key(curses.KEY_DC)
    c.handle_key(curses.KEY_END)
    c.handle_key(127)
    assert c.inputbuf.contents == "as"


def test_help_mode():
    c = make_controller()
    c.handle_key(ord('h'))
    assert c.mode == Mode.HELP
    c.handle_key(ord('q'))
    assert c.mode == Mode.STANDARD
    assert not c.quit
    c.handle_key(ord('q'))
    assert c.quit


def test_unknown_standard_key_is_ignored():
    c = make_controller()
    c.handle_key(ord('Z'))
    c.handle_key(curses.KEY_F5)
    assert c.mode == Mode.STANDARD
    assert names(c.view) == ["bash", "zsh"]


def test_macro_runs_like_typed_filter():
    typed = make_controller()
    type_command(typed, '/', "n:bash")

    c = make_controller(macros={"1": "/n:bash"})
    c.handle_key(ord('1'))
    assert names(c.view) == names(typed.view) == ["bash"]
    assert c.filter_description == typed.filter_description
    assert c.history(Operation.MACRO).entries == ["1"]
    assert c.history(Operation.FILTER).entries == ["n:bash"]


def test_macro_chain_stops_at_unknown_name():
    c = make_controller(macros={"a": ".d", "b": "/n:zsh"})
    c.apply_command(Operation.MACRO, "a, missing, b")
    assert c.sorted_by == Attribute.DESCRIPTION
    assert names(c.view) == ["bash", "zsh"]
    assert c.status_message


def test_macro_with_invalid_operation_stops_chain():
    c = make_controller(macros={"a": "xd", "b": ".d"})
    c.apply_command(Operation.MACRO, "a,b")
    assert c.sorted_by == Attribute.NAME


def test_nested_macros():
    c = make_controller(macros={"inner": "/n:z", "outer": "@inner,sort", "sort": ".d"})
    c.apply_command(Operation.MACRO, "outer")
    assert names(c.view) == ["zsh"]
    assert c.sorted_by == Attribute.DESCRIPTION


@pytest.mark.parametrize("macros", [
    {"loop": "@loop"},
    {"loop": "@loop,loop"},
    {"a": "@b", "b": "@a"},
])
def test_self_referencing_macros_terminate(macros):
    c = make_controller(macros=macros)
    c.apply_command(Operation.MACRO, next(iter(macros)))
    assert c._macro_depth == 0
    assert len(c.history(Operation.MACRO).entries) <= MAX_MACRO_DEPTH + 1
    assert c.status_message


def test_startup_macro_runs_on_start():
    c = make_controller(macros={"startup": ".d"})
    assert c.sorted_by == Attribute.DESCRIPTION


def test_reload_discards_session_state():
    c = make_controller()
    c.apply_command(Operation.FILTER, "zsh")
    c.handle_key(curses.KEY_RIGHT)
    c.handle_key(ord('r'))
    assert names(c.view) == ["bash", "zsh"]
    assert c.queue == []
    assert c.filter_description == ""
    assert "suspend" in c.renderer.calls
    assert c.history(Operation.FILTER).entries == ["zsh"]
