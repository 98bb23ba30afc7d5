#!/usr/bin/env python3
"""
luet_browse_catalog.py — the collaborators the browser core talks to:
running commands, reading the luet package catalog and loading the YAML
configuration.
"""

import os
import sys
import json
import signal
import subprocess
import yaml

from packaging import version as pkg_version

from luet_browse_core import (
    Attribute,
    AboutInfo,
    CatalogEntry,
    CatalogLoadError,
    FilterEngine,
    _,
)

# -------------------------
# Command Runner
# -------------------------
class CommandRunner:
    """
    Runs catalog queries (captured) and user commands (attached to the terminal).
    """
    def __init__(self, shell="bash"):
        self.shell = shell

    def run_sync(self, cmd_list):
        """
        Runs a command synchronously and returns the result object.
        """
        try:
            return subprocess.run(list(cmd_list), text=True, stdout=subprocess.PIPE, stderr=subprocess.PIPE)
        except FileNotFoundError as e:
            return subprocess.CompletedProcess(list(cmd_list), 1, stdout="", stderr=str(e))

    def run_interactive(self, command, wait_for_return=True):
        """
        Runs command through an interactive shell on the real terminal and
        blocks until it exits.

        :param command: Shell command line
        :param wait_for_return: Ask the user to press return before coming back
        :return: The exit status of the shell
        """
        # the interactive shell takes the terminal; ignore SIGTTOU so we can
        # take it back without being stopped
        handler = signal.signal(signal.SIGTTOU, signal.SIG_IGN)
        try:
            try:
                returncode = subprocess.call([self.shell, "-ic", command])
            except OSError as e:
                print(_("Error executing command: {}").format(e), file=sys.stderr)
                returncode = -1
            try:
                os.tcsetpgrp(sys.stdin.fileno(), os.getpgrp())
            except OSError:
                pass
            if wait_for_return:
                try:
                    input(_("press return to continue..."))
                except EOFError:
                    pass
        finally:
            signal.signal(signal.SIGTTOU, handler)
        return returncode

# -------------------------
# PackageState Class
# -------------------------
class PackageState:
    INSTALLED = "installed"
    UPGRADABLE = "upgradable"
    NOT_INSTALLED = "not installed"

    @staticmethod
    def get_installed_packages(command_runner_sync):
        """Return a dict of installed packages and their versions."""
        try:
            res = command_runner_sync(["luet", "search", "--installed", "-o", "json"])
            if res.returncode != 0:
                return {}
            data = json.loads(res.stdout or "{}")
            pkgs = {}
            for pkg in data.get("packages") or []:
                key = f"{pkg.get('category')}/{pkg.get('name')}"
                pkgs[key] = pkg.get("version")
            return pkgs
        except Exception as e:
            print("Error fetching installed package list:", e, file=sys.stderr)
            return {}

    @staticmethod
    def describe(key, available_version, installed_packages):
        """Install state text of one package, as shown in the Install state attribute."""
        if key not in installed_packages:
            return PackageState.NOT_INSTALLED
        installed_version = installed_packages[key]
        if installed_version and available_version:
            try:
                if pkg_version.parse(available_version) > pkg_version.parse(installed_version):
                    return PackageState.UPGRADABLE
            except (pkg_version.InvalidVersion, TypeError):
                pass
        return PackageState.INSTALLED

# -------------------------
# Catalog Loader
# -------------------------
class CatalogLoader:
    """
    Builds the catalog from the synced luet repository trees.

    :param command_runner_sync: CommandRunner.run_sync or a compatible callable
    :param hidden: Keys ("category/name") or bare categories left out of the catalog
    """

    SEARCH_CMD = ["luet", "search", "-o", "json"]

    def __init__(self, command_runner_sync, hidden=None):
        self.run_sync = command_runner_sync
        self.hidden = set(hidden or [])

    def is_hidden(self, category, name):
        return category in self.hidden or f"{category}/{name}" in self.hidden

    def load(self):
        """
        :return: list of CatalogEntry sorted by name, one per package key
        :raises CatalogLoadError: if luet fails or prints something that is not JSON
        """
        print(_("Reading package repositories, please wait..."))
        try:
            res = self.run_sync(self.SEARCH_CMD)
        except Exception as e:
            raise CatalogLoadError(_("Error running search: {}").format(e))
        if res.returncode != 0:
            raise CatalogLoadError(_("Error executing the search command: {}").format((res.stderr or "").strip()))

        output = (res.stdout or "").strip()
        try:
            data = json.loads(output) if output else {}
        except json.JSONDecodeError:
            raise CatalogLoadError(_("Invalid JSON output"))

        packages = data.get("packages") if isinstance(data, dict) else None
        installed = PackageState.get_installed_packages(self.run_sync)

        entries = {}
        for pkg in packages or []:
            entry = self.make_entry(pkg, installed)
            if self.is_hidden(entry.attribute(Attribute.CATEGORY), entry.name):
                continue
            entries.setdefault(entry.key, entry)

        return FilterEngine.sorted_by(entries.values(), Attribute.NAME)

    @staticmethod
    def make_entry(pkg, installed_packages):
        category, name = pkg.get("category", ""), pkg.get("name", "")
        available = pkg.get("version", "")

        uri = pkg.get("uri") or pkg.get("source") or ""
        if isinstance(uri, list):
            uri = uri[0] if uri else ""

        license_ = pkg.get("license") or pkg.get("licenses") or ""
        if isinstance(license_, list):
            license_ = ", ".join(license_)

        repository = pkg.get("repository", "")
        if isinstance(repository, dict):
            repository = repository.get("name", "")

        return CatalogEntry({
            Attribute.NAME: name,
            Attribute.CATEGORY: category,
            Attribute.VERSION: available,
            Attribute.DESCRIPTION: pkg.get("description") or pkg.get("long_description") or "",
            Attribute.REPOSITORY: repository,
            Attribute.LICENSE: license_,
            Attribute.URI: uri,
            Attribute.INSTALLSTATE: PackageState.describe(f"{category}/{name}", available, installed_packages),
        })

# -------------------------
# Configuration
# -------------------------
class BrowseConfig:
    """
    User configuration, read from a YAML file:

        shell: bash
        hidden:
          - entity
          - repository/livecd
        macros:
          startup: ".n"
          1: "/n:bash"
          up: "!sudo luet install -y %p"
    """

    DEFAULT_HIDDEN = ["entity"]

    def __init__(self, macros=None, hidden=None, shell="bash"):
        self.macros = macros or {}
        self.hidden = list(self.DEFAULT_HIDDEN if hidden is None else hidden)
        self.shell = shell

    @staticmethod
    def default_path():
        env = os.environ.get("LUET_BROWSE_CONFIG")
        if env:
            return env
        base = os.environ.get("XDG_CONFIG_HOME") or os.path.join(os.path.expanduser("~"), ".config")
        return os.path.join(base, AboutInfo.get_config_name())

    @classmethod
    def load(cls, path=None):
        path = path or cls.default_path()
        if not os.path.exists(path):
            return cls()
        try:
            with open(path, 'r') as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            print(_("Warning: could not read {}: {}").format(path, e), file=sys.stderr)
            return cls()
        if not isinstance(data, dict):
            print(_("Warning: ignoring {}: not a mapping").format(path), file=sys.stderr)
            return cls()
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data):
        macros = data.get("macros") or {}
        if not isinstance(macros, dict):
            print(_("Warning: 'macros' must be a mapping, ignoring it"), file=sys.stderr)
            macros = {}
        # YAML reads an unquoted 1 as an int; macro names are looked up as text
        macros = {str(k): str(v) for k, v in macros.items() if v is not None}

        hidden = data.get("hidden")
        if hidden is not None and not isinstance(hidden, list):
            hidden = [str(hidden)]

        return cls(macros=macros, hidden=hidden, shell=str(data.get("shell") or "bash"))
