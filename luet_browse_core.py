#!/usr/bin/env python3

import re
import enum
import functools
import gettext
import locale

# -------------------------
# Set up locale and translation
# -------------------------

try:
    locale.setlocale(locale.LC_ALL, '')
    localedir = '/usr/share/locale'
    gettext.bindtextdomain('luet_browse', localedir)
    gettext.textdomain('luet_browse')
    _ = gettext.gettext
    ngettext = gettext.ngettext
except Exception:
    print("Warning: Could not set up locale. Using fallback translations.")
    _ = lambda s: s
    ngettext = lambda s, p, n: s if n == 1 else p

# -------------------------
# Errors
# -------------------------

class BrowseError(Exception):
    """Base class for fatal errors of the browser."""


class CatalogLoadError(BrowseError):
    """The package catalog could not be read."""


class TerminalTooSmallError(BrowseError):
    """The terminal is below the minimum usable size."""

# -------------------------
# Application Metadata/About Info
# -------------------------
class AboutInfo:
    @staticmethod
    def get_program_name():
        return _("luet-browse: a keyboard driven Luet package browser")

    @staticmethod
    def get_version():
        return "0.3.0"

    @staticmethod
    def get_config_name():
        return "luet_browse/config.yaml"

# -------------------------
# Attributes
# -------------------------
class Attribute(enum.IntEnum):
    """Inspectable fields of a catalog entry, in display order. NONE ends the list."""
    NAME = 0
    CATEGORY = 1
    VERSION = 2
    DESCRIPTION = 3
    REPOSITORY = 4
    LICENSE = 5
    URI = 6
    INSTALLSTATE = 7
    NONE = 8


class AttributeInfo:
    """
    Maps attributes to their single character codes and display names.
    """

    _CHARS = {
        Attribute.NAME: "n",
        Attribute.CATEGORY: "c",
        Attribute.VERSION: "v",
        Attribute.DESCRIPTION: "d",
        Attribute.REPOSITORY: "r",
        Attribute.LICENSE: "l",
        Attribute.URI: "u",
        Attribute.INSTALLSTATE: "i",
    }

    _NAMES = {
        Attribute.NAME: "Name",
        Attribute.CATEGORY: "Category",
        Attribute.VERSION: "Version",
        Attribute.DESCRIPTION: "Description",
        Attribute.REPOSITORY: "Repository",
        Attribute.LICENSE: "License",
        Attribute.URI: "URI",
        Attribute.INSTALLSTATE: "Install state",
        Attribute.NONE: "None",
    }

    @staticmethod
    def all():
        """All real attributes in ordinal order (the sentinel is left out)."""
        return [a for a in Attribute if a != Attribute.NONE]

    @staticmethod
    def char_to_attr(c):
        for attr, ch in AttributeInfo._CHARS.items():
            if ch == c:
                return attr
        return Attribute.NONE

    @staticmethod
    def attr_to_char(attr):
        return AttributeInfo._CHARS.get(attr, "")

    @staticmethod
    def attr_name(attr):
        return _(AttributeInfo._NAMES[attr])

    @staticmethod
    def first_attr_in(text):
        """
        Return the first attribute named by a character of text.

        Characters that name no attribute are skipped.
        :return: An Attribute, NONE if no character maps to one
        """
        for c in text:
            attr = AttributeInfo.char_to_attr(c)
            if attr != Attribute.NONE:
                return attr
        return Attribute.NONE

# -------------------------
# Catalog entries
# -------------------------
class CatalogEntry:
    """
    One package of the catalog. Read only after construction.

    :param values: dict mapping Attribute to text; missing attributes read as ""
    """

    def __init__(self, values):
        self._values = {attr: str(values.get(attr) or "") for attr in AttributeInfo.all()}

    @property
    def name(self):
        return self._values[Attribute.NAME]

    @property
    def key(self):
        """Stable identity: category/name, or the bare name without a category."""
        category = self._values[Attribute.CATEGORY]
        if category:
            return f"{category}/{self.name}"
        return self.name

    def attribute(self, attr):
        return self._values.get(attr, "")

    def __repr__(self):
        return f"CatalogEntry({self.key!r})"

# -------------------------
# Filter engine
# -------------------------
class FilterEngine:
    """
    Holds the attributes that filter, search and colorcode operations look at,
    and the predicates used to drop entries from the view.

    Predicates are phrased as exclusions so that both a normal and a negated
    filter remove entries with the same loop.
    """

    DEFAULT_SELECTION = (Attribute.NAME, Attribute.DESCRIPTION)

    def __init__(self):
        self.selection = []
        self.reset_selection()

    def reset_selection(self):
        self.selection = list(self.DEFAULT_SELECTION)

    def set_selection(self, chars):
        self.selection = []
        for c in chars:
            attr = AttributeInfo.char_to_attr(c)
            if attr == Attribute.NONE or attr in self.selection:
                continue
            self.selection.append(attr)

    def matches_substring(self, entry, needle):
        lneedle = needle.lower()
        return any(lneedle in entry.attribute(attr).lower() for attr in self.selection)

    def matches_pattern(self, entry, regex):
        return any(regex.search(entry.attribute(attr)) for attr in self.selection)

    def excludes_substring(self, entry, needle):
        """True if no active attribute contains needle (case insensitive)."""
        return not self.matches_substring(entry, needle)

    def excludes_substring_negated(self, entry, needle):
        return self.matches_substring(entry, needle)

    def excludes_pattern(self, entry, regex):
        """True if regex finds nothing in any active attribute."""
        return not self.matches_pattern(entry, regex)

    def excludes_pattern_negated(self, entry, regex):
        return self.matches_pattern(entry, regex)

    @staticmethod
    def compare_by_attribute(a, b, attr):
        lhs, rhs = a.attribute(attr), b.attribute(attr)
        return (lhs > rhs) - (lhs < rhs)

    @staticmethod
    def sorted_by(entries, attr):
        return sorted(entries, key=functools.cmp_to_key(
            lambda a, b: FilterEngine.compare_by_attribute(a, b, attr)))

# -------------------------
# Operations
# -------------------------
class Operation(enum.Enum):
    FILTER = "/"
    SORT = "."
    SEARCH = "?"
    COLORCODE = ";"
    EXEC = "!"
    MACRO = "@"
    NONE = ""

    @property
    def prefix(self):
        return self.value

    @staticmethod
    def for_prefix(s):
        """Map a one character prefix to its operation, NONE for anything else."""
        for op in Operation:
            if op != Operation.NONE and op.value == s:
                return op
        return Operation.NONE


class Mode(enum.Enum):
    STANDARD = "standard"
    INPUT = "input"
    HELP = "help"

# -------------------------
# History
# -------------------------
class History:
    """Command recall for one operation kind."""

    def __init__(self):
        self.entries = []
        self.pos = 0

    def add(self, text):
        self.entries.append(text)

    def reset(self):
        self.pos = len(self.entries)

    def is_empty(self):
        return not self.entries

    def move_back(self):
        if self.pos > 0:
            self.pos -= 1
        if not self.entries:
            return ""
        return self.entries[self.pos]

    def move_forward(self):
        if self.pos < len(self.entries):
            self.pos += 1
        if self.pos == len(self.entries):
            return ""
        return self.entries[self.pos]

# -------------------------
# Input buffer
# -------------------------
class InputBuffer:
    def __init__(self):
        self.contents = ""
        self.pos = 0

    def set(self, text):
        self.contents = text
        self.pos = len(text)

    def clear(self):
        self.set("")

    def insert(self, s):
        self.contents = self.contents[:self.pos] + s + self.contents[self.pos:]
        self.pos += len(s)

    def delete(self):
        self.contents = self.contents[:self.pos] + self.contents[self.pos + 1:]

    def backspace(self):
        if self.pos > 0:
            self.contents = self.contents[:self.pos - 1] + self.contents[self.pos:]
            self.pos -= 1

    def move_left(self):
        self.pos = max(0, self.pos - 1)

    def move_right(self):
        self.pos = min(len(self.contents), self.pos + 1)

    def move_start(self):
        self.pos = 0

    def move_end(self):
        self.pos = len(self.contents)

# -------------------------
# List cursor
# -------------------------
class ListCursor:
    """
    Focus position over a list owned by someone else (the view or the queue).

    The list may change under the cursor; every access clamps the index first.
    """

    def __init__(self, items=None):
        self.items = items if items is not None else []
        self.index = 0
        self.focused = False

    def set_items(self, items):
        self.items = items
        self._clamp()

    def _clamp(self):
        self.index = max(0, min(self.index, len(self.items) - 1))

    def focused_index(self):
        self._clamp()
        return self.index

    def focused_item(self):
        if not self.items:
            return None
        return self.items[self.focused_index()]

    def move(self, delta):
        self.index += delta
        self._clamp()

    def move_abs(self, index):
        self.index = index
        self._clamp()

    def move_to_end(self):
        self.move_abs(len(self.items) - 1)

    def remove_selected(self):
        if self.items:
            del self.items[self.focused_index()]
            self._clamp()

# -------------------------
# Color coding
# -------------------------
class ColorCoder:
    """
    Assigns color slots to entries by the text of one attribute.

    Slot 0 is the default color and is used for empty text; distinct values get
    the remaining slots in order of first appearance, cycling when they run out.
    """

    SLOTS = 6

    @staticmethod
    def assign(entries, attr):
        """
        :return: dict mapping entry key to color slot
        """
        slots = {}
        by_value = {}
        for entry in entries:
            text = entry.attribute(attr)
            if not text:
                slots[entry.key] = 0
                continue
            if text not in by_value:
                by_value[text] = len(by_value) % (ColorCoder.SLOTS - 1) + 1
            slots[entry.key] = by_value[text]
        return slots

# -------------------------
# Input parsing helpers
# -------------------------
FILTER_PREFIX_RE = re.compile(r"^(([A-Za-z]*)(!?):)?(.*)$", re.DOTALL)
SEARCH_PREFIX_RE = re.compile(r"^([A-Za-z]*):(.*)$", re.DOTALL)
