#!/usr/bin/env python3
"""
luet_browse_ncurses.py — curses front end of luet-browse

Draws the package list, the queue, the info pane, the status bar, the input
line and the help screen, and runs the key loop around BrowseController.
"""

import curses
import signal
import textwrap
import sys

from luet_browse_core import (
    AboutInfo,
    AttributeInfo,
    BrowseError,
    ColorCoder,
    Mode,
    _,
    ngettext,
)
from luet_browse_catalog import BrowseConfig, CatalogLoader, CommandRunner
from luet_browse_controller import (
    BrowseController,
    DisplayUpdater,
    ResizeFlag,
    ensure_min_size,
    terminal_size,
)

# color pairs
C_INV = 1        # status bar
C_DEF_HL1 = 2
C_DEF_HL2 = 3
C_INV_HL1 = 4
# pairs for the color coding slots start here
C_SLOT_BASE = 10

SLOT_COLORS = [
    -1,
    curses.COLOR_GREEN,
    curses.COLOR_CYAN,
    curses.COLOR_MAGENTA,
    curses.COLOR_YELLOW,
    curses.COLOR_RED,
]

HELP_LINES = [
    ("esc: ", _("cancel")),
    ("q: ", _("quit")),
    ("1 to 0: ", _("run the macro of that name (as configured in {})").format(AboutInfo.get_config_name())),
    ("!: ", _("execute command, replacing %p with the queued package names")),
    ("@: ", _("run the specified macros, separated by commas")),
    ("r: ", _("reload package info")),
    ("/: ", _("filter packages by specified fields (using regexp)")),
    ("", _("   [fields][!]:pattern, e.g. nd:^lib or c!:devel. filters can be chained.")),
    ("n: ", _("filter packages by name")),
    ("d: ", _("filter packages by description")),
    ("c: ", _("clear all package filters")),
    ("C: ", _("clear the package queue")),
    ("?: ", _("search packages")),
    (".: ", _("sort packages by specified field")),
    (";: ", _("colorcode packages by specified field")),
    ("tab: ", _("switch focus between list and queue panes")),
    ("left/right arrows: ", _("add/remove packages from the queue")),
    ("up/down arrows, pg up/down, home/end: ", _("navigation")),
    ("up/down arrows (in input mode): ", _("browse history")),
]


def queue_footer(count):
    return ngettext("%d package", "%d packages", count) % count


class CursesRenderer:
    """
    Owns the curses windows. BrowseController calls draw() at least once per
    key and the other methods when its state calls for it.
    """

    def __init__(self, stdscr):
        self.stdscr = stdscr
        self.colors = {}
        self.footer = ""
        self.offsets = {"list": 0, "queue": 0}
        self.list_height = 1

        self.list_win = None
        self.queue_win = None
        self.info_win = None
        self.status_win = None
        self.input_win = None
        self.help_win = None

        self.init_curses()

        h, w = self.stdscr.getmaxyx()
        ensure_min_size(w, h)
        self.reposition(w, h)

    def init_curses(self):
        curses.curs_set(0)
        curses.cbreak()
        curses.noecho()
        self.stdscr.keypad(True)
        # getch() paces the main loop; short enough to notice resizes promptly
        self.stdscr.timeout(50)

        curses.start_color()
        try:
            curses.use_default_colors()
        except curses.error:
            pass
        curses.init_pair(C_INV, curses.COLOR_BLACK, curses.COLOR_WHITE)
        curses.init_pair(C_DEF_HL1, curses.COLOR_GREEN, -1)
        curses.init_pair(C_DEF_HL2, curses.COLOR_CYAN, -1)
        curses.init_pair(C_INV_HL1, curses.COLOR_BLUE, curses.COLOR_WHITE)
        for slot, color in enumerate(SLOT_COLORS):
            curses.init_pair(C_SLOT_BASE + slot, color, -1)

    # --- Layout ---

    def reposition(self, width, height):
        try:
            curses.resizeterm(height, width)
        except curses.error:
            pass
        self.stdscr.clear()

        info_h = max(6, (height - 2) // 3)
        top_h = height - 2 - info_h
        list_w = (width * 2) // 3

        self.list_win = curses.newwin(top_h, list_w, 0, 0)
        self.queue_win = curses.newwin(top_h, width - list_w, 0, list_w)
        self.info_win = curses.newwin(info_h, width, top_h, 0)
        self.status_win = curses.newwin(1, width, height - 2, 0)
        self.input_win = curses.newwin(1, width, height - 1, 0)
        self.help_win = curses.newwin(height, width, 0, 0)
        self.list_height = top_h

    def usable_height(self):
        return max(1, self.list_height - 2)

    # --- Hooks used by the controller ---

    def set_footer(self, text):
        self.footer = text

    def assign_colors(self, entries, attr):
        self.colors = ColorCoder.assign(entries, attr)

    def suspend(self):
        curses.endwin()

    def resume(self):
        self.stdscr.refresh()
        width, height = terminal_size()
        ensure_min_size(width, height)
        self.reposition(width, height)

    # --- Drawing ---

    def draw(self, controller):
        try:
            if controller.mode == Mode.HELP:
                self.draw_help()
            else:
                self.stdscr.erase()
                self.stdscr.noutrefresh()
                footer = self.footer or "{}/{}".format(len(controller.view), len(controller.catalog))
                self.draw_list(self.list_win, "list", _("Packages"), controller.list_pane, footer)
                self.draw_list(self.queue_win, "queue", _("Queue"), controller.queue_pane,
                               queue_footer(len(controller.queue)))
                self.draw_info(controller.focused_pane.focused_item())
                self.draw_status(controller)
                self.draw_input(controller)
            curses.doupdate()
        except curses.error:
            pass
        self.footer = ""

    def draw_list(self, win, name, title, cursor, footer):
        win.erase()
        win.box()
        h, w = win.getmaxyx()
        win.addnstr(0, 2, f" {title} ", w - 4, curses.A_BOLD if cursor.focused else curses.A_NORMAL)
        if footer:
            win.addnstr(h - 1, max(2, w - len(footer) - 4), f" {footer} ", w - 4)

        rows = h - 2
        items = cursor.items
        idx = cursor.focused_index()

        top = self.offsets[name]
        if idx < top:
            top = idx
        elif idx >= top + rows:
            top = idx - rows + 1
        top = max(0, min(top, max(0, len(items) - rows)))
        self.offsets[name] = top

        for row, entry in enumerate(items[top:top + rows]):
            attr = curses.color_pair(C_SLOT_BASE + self.colors.get(entry.key, 0))
            if top + row == idx:
                attr |= curses.A_REVERSE if cursor.focused else curses.A_BOLD
            win.addnstr(1 + row, 1, entry.key.ljust(w - 2), w - 2, attr)
        win.noutrefresh()

    def draw_info(self, entry):
        win = self.info_win
        win.erase()
        h, w = win.getmaxyx()
        if entry is None:
            win.noutrefresh()
            return

        y = 0
        for attr in AttributeInfo.all():
            text = entry.attribute(attr)
            if not text:
                continue
            caption = AttributeInfo.attr_name(attr)
            hotkey = AttributeInfo.attr_to_char(attr)
            lines = textwrap.wrap(text, max(10, w - len(caption) - 3)) or [""]
            if y + len(lines) > h:
                break

            win.move(y, 0)
            highlighted = False
            for c in caption:
                if not highlighted and c.lower() == hotkey:
                    win.addstr(c, curses.A_BOLD)
                    highlighted = True
                else:
                    win.addstr(c, curses.color_pair(C_DEF_HL2))
            win.addstr(": ", curses.color_pair(C_DEF_HL2))
            indent = len(caption) + 2
            for i, line in enumerate(lines):
                win.addnstr(y + i, indent, line, w - indent - 1)
            y += len(lines)
        win.noutrefresh()

    def draw_status(self, controller):
        win = self.status_win
        win.erase()
        win.bkgd(" ", curses.color_pair(C_INV))
        h, w = win.getmaxyx()

        parts = [
            (_("Sorted by: "), AttributeInfo.attr_name(controller.sorted_by)),
            (_(" Colored by: "), AttributeInfo.attr_name(controller.colored_by)),
            (_(" Filtered by: "), controller.filter_description or "-"),
        ]
        if controller.status_message:
            parts.append((" | ", controller.status_message))

        win.move(0, 0)
        for label, value in parts:
            y, x = win.getyx()
            if x >= w - 1:
                break
            win.addnstr(label, w - 1 - x, curses.color_pair(C_INV_HL1) | curses.A_BOLD)
            y, x = win.getyx()
            if x >= w - 1:
                break
            win.addnstr(value, w - 1 - x, curses.color_pair(C_INV))
        win.noutrefresh()

    def draw_input(self, controller):
        win = self.input_win
        win.erase()
        if controller.mode != Mode.INPUT:
            curses.curs_set(0)
            win.noutrefresh()
            return
        h, w = win.getmaxyx()
        win.addnstr(0, 0, controller.op.prefix + controller.inputbuf.contents, w - 1)
        win.move(0, min(w - 1, controller.inputbuf.pos + len(controller.op.prefix)))
        curses.curs_set(1)
        win.noutrefresh()

    def draw_help(self):
        win = self.help_win
        win.erase()
        h, w = win.getmaxyx()
        win.addnstr(0, 0, AboutInfo.get_program_name(), w - 1, curses.A_BOLD)
        for i, (key, text) in enumerate(HELP_LINES[:h - 4]):
            win.move(2 + i, 0)
            if key:
                win.addnstr(key, w - 1, curses.A_BOLD)
            y, x = win.getyx()
            win.addnstr(text, max(0, w - 1 - x))
        win.addnstr(h - 1, 0, _("configure macros in {}").format(BrowseConfig.default_path()), w - 1)
        curses.curs_set(0)
        win.noutrefresh()


class BrowseTUI:
    def __init__(self, stdscr, controller, updater):
        self.stdscr = stdscr
        self.controller = controller
        self.updater = updater

    def run(self):
        self.updater.update(self.controller)
        while not self.controller.quit:
            ch = self.stdscr.getch()

            if self.updater.process_resize():
                self.updater.renderer.draw(self.controller)

            if ch == -1 or ch == curses.KEY_RESIZE:
                continue

            self.controller.handle_key(ch)
            self.updater.update(self.controller)


def run(stdscr, config, runner, loader, catalog):
    renderer = CursesRenderer(stdscr)
    resize_flag = ResizeFlag()
    signal.signal(signal.SIGWINCH, resize_flag.request)

    controller = BrowseController(loader.load, renderer, runner, config.macros)
    controller.start(catalog)
    BrowseTUI(stdscr, controller, DisplayUpdater(renderer, resize_flag)).run()


def usage():
    print(AboutInfo.get_program_name() + " " + AboutInfo.get_version())
    print("")
    print(_("Usage:"))
    print(_("  luet-browse                  Launch the browser"))
    print(_("  luet-browse --config FILE    Read macros and settings from FILE"))
    print("")
    print(_("Press h inside the browser for the key bindings."))


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    config_path = None

    if argv:
        if argv[0] in ("-h", "--help"):
            usage()
            return 0
        elif argv[0] == "--version":
            print(AboutInfo.get_version())
            return 0
        elif argv[0] == "--config" and len(argv) > 1:
            config_path = argv[1]
        else:
            usage()
            return 2

    config = BrowseConfig.load(config_path)
    runner = CommandRunner(config.shell)
    loader = CatalogLoader(runner.run_sync, config.hidden)

    try:
        catalog = loader.load()
        curses.wrapper(run, config, runner, loader, catalog)
    except BrowseError as e:
        print(_("Error: {}").format(e), file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    sys.exit(main())
