"""Path resolution for config files and host project assets.

Config lookup:

  Dev:        ./nvlink.toml
  Production: /etc/nvlink/nvlink.toml

Project layout follows the host's convention: assets live in an
``Assets`` directory directly under the project root.
"""

import os

ETC_DIR = "/etc/nvlink"
ASSETS_DIR = "Assets"


def resolve_config(name: str) -> str:
    """Resolve a config file name to an absolute path.

    If *name* contains a ``/``, it is treated as an explicit path and
    returned as-is (made absolute) after verifying it exists.

    If *name* is a bare filename, the current directory is searched
    first, then ``/etc/nvlink/``.  The first match is returned.

    Raises:
        FileNotFoundError: If the file cannot be found.
    """
    if "/" in name:
        path = os.path.abspath(name)
        if not os.path.isfile(path):
            raise FileNotFoundError("config file not found: %s" % path)
        return path

    local = os.path.abspath(name)
    if os.path.isfile(local):
        return local

    etc = os.path.join(ETC_DIR, name)
    if os.path.isfile(etc):
        return os.path.abspath(etc)

    raise FileNotFoundError(
        "config file '%s' not found in ./ or %s/" % (name, ETC_DIR)
    )


def asset_root(project: str) -> str:
    """Return the absolute asset directory of *project*."""
    return os.path.abspath(os.path.join(project, ASSETS_DIR))


def project_root(assets: str) -> str:
    """Return the absolute project root that contains *assets*."""
    return os.path.abspath(os.path.join(assets, ".."))


def asset_relative_path(assets: str, path: str) -> str | None:
    """Express *path* relative to the asset directory.

    Absolute paths are made relative to *assets*; relative paths are
    taken as already relative to it.  Returns None for an empty path or
    one that escapes the asset directory.

    Example:
        >>> asset_relative_path("/game/Assets", "/game/Assets/Scripts/Player.cs")
        'Scripts/Player.cs'
        >>> asset_relative_path("/game/Assets", "Scripts/Player.cs")
        'Scripts/Player.cs'
        >>> asset_relative_path("/game/Assets", "/etc/passwd") is None
        True
    """
    if not path:
        return None
    full = os.path.normpath(os.path.join(assets, path))
    rel = os.path.relpath(full, assets)
    if rel == os.curdir or rel == os.pardir or rel.startswith(os.pardir + os.sep):
        return None
    return rel
