#!/usr/bin/env python3
"""
luet_browse_controller.py — the modal input controller of luet-browse.

Interprets keystrokes, keeps the view, the queue and the per operation
histories, and runs filter, search, sort, colorcode, exec and macro commands.
Drawing is left to a renderer object (see luet_browse_ncurses.CursesRenderer);
the controller only tells it what changed.
"""

import os
import re
import sys
import curses
import curses.ascii

from luet_browse_core import (
    Attribute,
    AttributeInfo,
    FilterEngine,
    History,
    InputBuffer,
    ListCursor,
    Mode,
    Operation,
    TerminalTooSmallError,
    FILTER_PREFIX_RE,
    SEARCH_PREFIX_RE,
    _,
)

KEY_TAB = 9
KEY_ESC = 27
KEYS_RETURN = (curses.KEY_ENTER, 10, 13)
KEYS_BACKSPACE = (curses.KEY_BACKSPACE, 127, 8)

MIN_WIDTH = 60
MIN_HEIGHT = 20

MAX_MACRO_DEPTH = 16
STARTUP_MACRO = "startup"

# -------------------------
# Resize flag
# -------------------------
class ResizeFlag:
    """
    Set from the SIGWINCH handler, read and cleared by the display updater once
    per loop tick.
    """
    def __init__(self):
        # written from the SIGWINCH handler in the main thread; no locks
        self._requested = False

    def request(self, signum=None, frame=None):
        self._requested = True

    def consume(self):
        if not self._requested:
            return False
        self._requested = False
        return True


def ensure_min_size(width, height):
    if width < MIN_WIDTH or height < MIN_HEIGHT:
        raise TerminalTooSmallError(
            _("Window size is below required minimum ({}x{})").format(MIN_WIDTH, MIN_HEIGHT))


def terminal_size():
    size = os.get_terminal_size(sys.__stdout__.fileno())
    return size.columns, size.lines

# -------------------------
# Controller
# -------------------------
class BrowseController:
    """
    :param catalog_loader: Callable returning the catalog (list of CatalogEntry)
    :param renderer: Drawing sink, see CursesRenderer
    :param command_runner: Object with run_interactive(command), used by exec
    :param macros: dict mapping macro name to command string ("/n:bash")
    """

    def __init__(self, catalog_loader, renderer, command_runner, macros=None):
        self.catalog_loader = catalog_loader
        self.renderer = renderer
        self.command_runner = command_runner
        self.macros = macros or {}

        self.quit = False
        self.mode = Mode.STANDARD
        self.op = Operation.NONE
        self.inputbuf = InputBuffer()
        self.histories = {op: History() for op in Operation if op != Operation.NONE}

        self.catalog = []
        self.view = []
        self.queue = []
        self.filter = FilterEngine()
        self.sorted_by = Attribute.NAME
        self.colored_by = Attribute.INSTALLSTATE
        self.filter_description = ""
        self.status_message = ""

        self.list_pane = ListCursor(self.view)
        self.queue_pane = ListCursor(self.queue)
        self.focused_pane = self.list_pane

        self._macro_depth = 0
        self._macro_overflow = False

        self._handlers = {
            Operation.FILTER: self.filter_packages,
            Operation.SORT: self.sort_packages,
            Operation.SEARCH: self.search_packages,
            Operation.COLORCODE: self.colorcode_packages,
            Operation.EXEC: self.exec_command,
            Operation.MACRO: self.run_macro,
        }

    # --- Session ---

    def start(self, catalog=None):
        """Load the catalog (unless one is given) and set up a fresh session."""
        if catalog is None:
            catalog = self.catalog_loader()
        self.catalog = list(catalog)
        self.view[:] = self.catalog
        self.queue.clear()
        self.filter.reset_selection()
        self.sorted_by = Attribute.NAME
        self.filter_description = ""
        self.list_pane.move_abs(0)
        self.queue_pane.move_abs(0)
        self.set_focus(self.list_pane)

        self.colorcode_packages(AttributeInfo.attr_to_char(self.colored_by))

        if STARTUP_MACRO in self.macros:
            self.run_macro(STARTUP_MACRO)

    def reload(self):
        self.renderer.suspend()
        self.catalog = []
        self.view.clear()
        self.queue.clear()
        catalog = self.catalog_loader()
        self.renderer.resume()
        self.start(catalog)

    def set_status(self, msg):
        self.status_message = str(msg)

    def set_focus(self, pane):
        self.list_pane.focused = False
        self.queue_pane.focused = False

        if pane is self.queue_pane and not self.queue:
            pane = self.list_pane

        self.focused_pane = pane
        pane.focused = True

    def history(self, op):
        return self.histories[op]

    # --- Key handling ---

    def handle_key(self, ch):
        # a status message lives until the next key
        self.status_message = ""
        if self.mode == Mode.STANDARD:
            self.handle_standard_key(ch)
        elif self.mode == Mode.INPUT:
            self.handle_input_key(ch)
        elif self.mode == Mode.HELP:
            # any key leaves the help screen
            self.mode = Mode.STANDARD

    def handle_standard_key(self, ch):
        pane = self.focused_pane

        if ch in (ord('k'), curses.KEY_UP):
            pane.move(-1)
        elif ch in (ord('j'), curses.KEY_DOWN):
            pane.move(1)
        elif ch == curses.KEY_HOME:
            pane.move_abs(0)
        elif ch == curses.KEY_END:
            pane.move_to_end()
        elif ch == curses.KEY_PPAGE:
            pane.move(-self.renderer.usable_height())
        elif ch == curses.KEY_NPAGE:
            pane.move(self.renderer.usable_height())
        elif ch == KEY_TAB:
            self.set_focus(self.queue_pane if pane is self.list_pane else self.list_pane)
        elif ch == curses.KEY_RIGHT:
            self.enqueue_focused()
        elif ch == curses.KEY_LEFT:
            self.dequeue_focused()
        elif ch == ord('C'):
            self.clear_queue()
        elif ch == ord('c'):
            self.clear_filter()
        elif ch == ord('r'):
            self.reload()
        elif ch == ord('h'):
            self.mode = Mode.HELP
        elif ch == ord('q'):
            self.quit = True
        elif ord('0') <= ch <= ord('9'):
            self.apply_command(Operation.MACRO, chr(ch))
        elif ch in (ord('n'), ord('d')):
            self.enter_input_mode(Operation.FILTER)
            self.inputbuf.set(chr(ch) + ":")
        elif 0 <= ch < 128 and Operation.for_prefix(chr(ch)) != Operation.NONE:
            self.enter_input_mode(Operation.for_prefix(chr(ch)))

    def handle_input_key(self, ch):
        if ch == KEY_ESC:
            self.exit_input_mode(commit=False)
        elif ch in KEYS_RETURN:
            self.exit_input_mode(commit=True)
        elif ch == curses.KEY_DC:
            self.inputbuf.delete()
        elif ch in KEYS_BACKSPACE:
            self.inputbuf.backspace()
        elif ch == curses.KEY_LEFT:
            self.inputbuf.move_left()
        elif ch == curses.KEY_RIGHT:
            self.inputbuf.move_right()
        elif ch == curses.KEY_HOME:
            self.inputbuf.move_start()
        elif ch == curses.KEY_END:
            self.inputbuf.move_end()
        elif ch == curses.KEY_UP:
            if not self.history(self.op).is_empty():
                self.inputbuf.set(self.history(self.op).move_back())
        elif ch == curses.KEY_DOWN:
            if not self.history(self.op).is_empty():
                self.inputbuf.set(self.history(self.op).move_forward())
        elif 0 <= ch < 128 and curses.ascii.isprint(ch):
            self.inputbuf.insert(chr(ch))

    def enter_input_mode(self, op):
        self.mode = Mode.INPUT
        self.op = op
        self.inputbuf.clear()
        self.history(op).reset()

    def exit_input_mode(self, commit):
        op, text = self.op, self.inputbuf.contents
        self.mode = Mode.STANDARD
        self.op = Operation.NONE
        self.inputbuf.clear()

        if commit and text:
            self.apply_command(op, text)

    # --- Queue and view ---

    def enqueue_focused(self):
        if self.focused_pane is not self.list_pane or not self.view:
            return
        entry = self.list_pane.focused_item()
        if any(queued.key == entry.key for queued in self.queue):
            return
        self.queue.append(entry)
        self.queue_pane.move_to_end()
        self.list_pane.move(1)

    def dequeue_focused(self):
        if self.focused_pane is not self.queue_pane:
            return
        self.queue_pane.remove_selected()
        if not self.queue:
            self.set_focus(self.list_pane)

    def clear_queue(self):
        while self.queue:
            self.queue_pane.remove_selected()
        self.set_focus(self.list_pane)

    def clear_filter(self):
        self.view[:] = FilterEngine.sorted_by(self.catalog, self.sorted_by)
        self.filter_description = ""
        self.list_pane.move_abs(0)

    # --- Commands ---

    def apply_command(self, op, text):
        """
        Run one committed command. Interactive input and macros both end up here.
        """
        handler = self._handlers.get(op)
        if handler is None:
            return
        self.history(op).add(text)
        handler(text)

    def display_processing_msg(self):
        self.renderer.set_footer(_("Processing..."))
        self.renderer.draw(self)

    def filter_packages(self, text):
        match = FILTER_PREFIX_RE.match(text)
        fields, negate, phrase = match.group(2) or "", match.group(3), match.group(4)

        if not phrase:
            return

        # alphanumeric phrases take the plain substring test, anything else is a regexp
        if phrase.isalnum():
            needle = phrase
            excludes = (self.filter.excludes_substring_negated if negate
                        else self.filter.excludes_substring)
        else:
            try:
                needle = re.compile(phrase, re.IGNORECASE)
            except re.error as e:
                self.set_status(_("Invalid pattern '{}': {}").format(phrase, e))
                return
            excludes = (self.filter.excludes_pattern_negated if negate
                        else self.filter.excludes_pattern)

        if fields:
            self.filter.set_selection(fields)

        self.display_processing_msg()

        self.view[:] = [entry for entry in self.view if not excludes(entry, needle)]

        if self.filter_description:
            self.filter_description += ", "
        self.filter_description += text

        self.list_pane.move_abs(0)

    def search_packages(self, text):
        self.filter.reset_selection()
        match = SEARCH_PREFIX_RE.match(text)
        if match:
            self.filter.set_selection(match.group(1))
            phrase = match.group(2)
        else:
            phrase = text

        if not phrase or not self.view:
            return

        # start after the focused package, wrap around once
        start = self.list_pane.focused_index() + 1
        found = self._find(phrase, start, len(self.view))
        if found is None and start != 0:
            found = self._find(phrase, 0, start)

        if found is not None:
            self.list_pane.move_abs(found)

    def _find(self, phrase, begin, end):
        for i in range(begin, end):
            if self.filter.matches_substring(self.view[i], phrase):
                return i
        return None

    def sort_packages(self, text):
        attr = AttributeInfo.first_attr_in(text)
        if attr == Attribute.NONE:
            return

        self.sorted_by = attr
        self.view[:] = FilterEngine.sorted_by(self.view, attr)

    def colorcode_packages(self, text):
        attr = AttributeInfo.first_attr_in(text)
        if attr == Attribute.NONE:
            return

        self.filter.reset_selection()
        self.renderer.assign_colors(self.catalog, attr)
        self.colored_by = attr

    def exec_command(self, text):
        packages = " ".join(entry.name for entry in self.queue)
        command = text.replace("%p", packages)

        self.renderer.suspend()
        try:
            self.command_runner.run_interactive(command)
        finally:
            self.renderer.resume()

    def run_macro(self, text):
        """
        Run the comma separated macros named in text. An unknown name stops the
        rest of the chain; parts already run stay applied.
        """
        if self._macro_depth == 0:
            self._macro_overflow = False
        if self._macro_depth >= MAX_MACRO_DEPTH:
            self._macro_overflow = True
            self.set_status(_("Macro nesting too deep, giving up"))
            return

        self._macro_depth += 1
        try:
            for part in text.split(","):
                name = part.strip()
                command = self.macros.get(name)
                if command is None:
                    self.set_status(_("Unknown macro '{}'").format(name))
                    return

                op = Operation.for_prefix(command[:1])
                if op == Operation.NONE:
                    self.set_status(_("Macro '{}' has no valid operation").format(name))
                    return

                self.apply_command(op, command[1:])
                if self._macro_overflow:
                    return
        finally:
            self._macro_depth -= 1

# -------------------------
# Display updater
# -------------------------
class DisplayUpdater:
    """
    Draws the controller state, repositioning the panes first when a resize
    was requested since the last tick.
    """

    def __init__(self, renderer, resize_flag, get_size=terminal_size):
        self.renderer = renderer
        self.resize_flag = resize_flag
        self.get_size = get_size

    def process_resize(self):
        if not self.resize_flag.consume():
            return False
        width, height = self.get_size()
        ensure_min_size(width, height)
        self.renderer.reposition(width, height)
        return True

    def update(self, controller):
        self.process_resize()
        self.renderer.draw(controller)
