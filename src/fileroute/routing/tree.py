"""
=============================================================================
ROUTE TREE
=============================================================================

The application directory IS the route table. Every folder is a path
segment; a folder named `[param]` matches any segment and binds it:

    app/
    ├── layout.html                 ← wraps every page
    ├── page.html                   → /
    ├── login/
    │   ├── page.html               → GET  /login   (form)
    │   └── +server.py              → POST /login   (API handler wins)
    ├── blog/
    │   ├── layout.html             ← wraps every page under /blog
    │   ├── loading.html            ← sent first while a blog page renders
    │   ├── error.html              ← shown when a blog page fails
    │   └── [slug]/
    │       └── page.html           → /blog/<slug>
    └── api/
        └── users/
            └── +server.py          → /api/users

=============================================================================
SNAPSHOT + PURE RESOLUTION
=============================================================================

Walking the filesystem on every request is slow and makes routing depend
on whatever the disk looks like mid-request. Instead the tree is scanned
once into an in-memory snapshot of RouteNodes, and resolution is a pure
function over that snapshot:

    tree = RouteTree.scan("app")
    resolve(tree, "blog/my-post")
        → Resolution(folders=[app, app/blog, app/blog/[slug]],
                     params={"slug": "my-post"},
                     kind=MatchKind.PAGE)

In debug mode the router rebuilds the snapshot when the tree's
fingerprint (directory and file modification times) changes.

=============================================================================
MATCHING RULES
=============================================================================

For each segment, in order:

    1. A literal child folder with exactly that name.
    2. Otherwise the first dynamic `[name]` child, in lexicographic order
       of the folder names, binding `name` → segment.
    3. Otherwise resolution fails (404).

At the last folder an API handler file beats a page file.

=============================================================================
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, List, Optional, Tuple
import logging
import os
import re

from ..http.request import iter_segments


logger = logging.getLogger(__name__)


# File names with routing meaning inside a route folder
API_FILE = "+server.py"
PAGE_FILE = "page.html"
LAYOUT_FILE = "layout.html"
LOADING_FILE = "loading.html"
ERROR_FILE = "error.html"

ROUTE_FILES = frozenset({API_FILE, PAGE_FILE, LAYOUT_FILE, LOADING_FILE, ERROR_FILE})

# "[slug]" → "slug"; at least one character between the brackets
DYNAMIC_SEGMENT = re.compile(r"^\[(.+)\]$")

# Folders that never take part in routing
IGNORED_DIRS = frozenset({"__pycache__"})


class MatchKind(Enum):
    """What the deepest matched folder offers for this request."""
    API = "api"
    PAGE = "page"
    NONE = "none"


@dataclass
class RouteNode:
    """
    One folder of the application tree.

    `dynamic` holds (param_name, node) pairs already sorted by folder
    name, so the first entry is the one that wins a tie.
    """

    name: str                      # folder name ("" for the root)
    path: str                      # absolute filesystem path
    relative: str                  # path relative to the tree root, "/"-joined
    files: frozenset = frozenset()
    literals: Dict[str, "RouteNode"] = field(default_factory=dict)
    dynamic: List[Tuple[str, "RouteNode"]] = field(default_factory=list)

    def has(self, filename: str) -> bool:
        return filename in self.files

    def file(self, filename: str) -> str:
        """Absolute path of a file in this folder."""
        return os.path.join(self.path, filename)

    def template(self, filename: str) -> str:
        """Template name of a file in this folder, relative to the tree root."""
        return f"{self.relative}/{filename}" if self.relative else filename

    def __repr__(self) -> str:
        return f"RouteNode({self.relative or '/'!r})"


@dataclass
class Resolution:
    """
    Result of resolving one path against a RouteTree.

    When `complete` is true, `folders` holds exactly one node per path
    segment plus the root, each a direct child of the one before.
    """

    folders: List[RouteNode]
    params: Dict[str, str]
    kind: MatchKind
    complete: bool = True

    @property
    def found(self) -> bool:
        return self.kind is not MatchKind.NONE

    @property
    def leaf(self) -> RouteNode:
        return self.folders[-1]

    def nearest(self, filename: str) -> Optional[RouteNode]:
        """Deepest matched folder containing `filename`, or None."""
        for node in reversed(self.folders):
            if node.has(filename):
                return node
        return None

    def collect(self, filename: str) -> List[RouteNode]:
        """Every matched folder containing `filename`, root to leaf."""
        return [node for node in self.folders if node.has(filename)]


class RouteTree:
    """
    In-memory snapshot of an application directory.

    Usage:
        tree = RouteTree.scan("/srv/app")
        for pattern, kind in tree.routes():
            print(pattern, kind)
    """

    def __init__(self, root: RouteNode, fingerprint: Tuple = ()):
        self.root = root
        self.fingerprint = fingerprint

    @property
    def root_dir(self) -> str:
        return self.root.path

    @classmethod
    def scan(cls, root_dir: str) -> "RouteTree":
        """
        Build a snapshot of `root_dir`.

        Raises:
            FileNotFoundError: if `root_dir` is not a directory
        """
        root_dir = os.path.abspath(root_dir)
        if not os.path.isdir(root_dir):
            raise FileNotFoundError(f"Application directory not found: {root_dir}")

        root = _scan_node(root_dir, name="", relative="")
        tree = cls(root, fingerprint=compute_fingerprint(root_dir))
        logger.debug(f"Scanned route tree at {root_dir}")
        return tree

    def is_stale(self) -> bool:
        """True when the directory changed since the snapshot was taken."""
        return compute_fingerprint(self.root_dir) != self.fingerprint

    def routes(self) -> Iterator[Tuple[str, MatchKind]]:
        """
        Yield (url pattern, kind) for every routable folder.

        Dynamic segments are shown as `[name]`: "/blog/[slug]".
        """
        stack = [self.root]
        while stack:
            node = stack.pop()
            pattern = "/" + node.relative
            if node.has(API_FILE):
                yield pattern, MatchKind.API
            if node.has(PAGE_FILE):
                yield pattern, MatchKind.PAGE
            children = list(node.literals.values()) + [child for _, child in node.dynamic]
            stack.extend(sorted(children, key=lambda n: n.relative, reverse=True))


def _scan_node(path: str, name: str, relative: str) -> RouteNode:
    files = set()
    subdirs = []
    with os.scandir(path) as entries:
        for entry in entries:
            if entry.is_dir():
                if entry.name.startswith(".") or entry.name in IGNORED_DIRS:
                    continue
                subdirs.append(entry.name)
            elif entry.name in ROUTE_FILES:
                files.add(entry.name)

    node = RouteNode(name=name, path=path, relative=relative, files=frozenset(files))

    # Sorted so that dynamic siblings have a deterministic priority
    for dirname in sorted(subdirs):
        child_relative = f"{relative}/{dirname}" if relative else dirname
        child = _scan_node(os.path.join(path, dirname), dirname, child_relative)
        match = DYNAMIC_SEGMENT.match(dirname)
        if match:
            node.dynamic.append((match.group(1), child))
        node.literals[dirname] = child

    return node


def compute_fingerprint(root_dir: str) -> Tuple:
    """Modification times of every folder and route file under root_dir."""
    stamps = []
    for dirpath, dirnames, filenames in os.walk(root_dir):
        dirnames[:] = sorted(
            d for d in dirnames if not d.startswith(".") and d not in IGNORED_DIRS
        )
        try:
            stamps.append((dirpath, os.stat(dirpath).st_mtime_ns))
            for filename in sorted(filenames):
                if filename in ROUTE_FILES:
                    full = os.path.join(dirpath, filename)
                    stamps.append((full, os.stat(full).st_mtime_ns))
        except FileNotFoundError:
            # Removed while walking; the next check sees the final state
            continue
    return tuple(stamps)


def resolve(tree: RouteTree, path: str) -> Resolution:
    """
    Resolve a normalized path against a tree snapshot.

    Pure: the same tree and path always give the same Resolution.

    Args:
        tree: Snapshot produced by RouteTree.scan
        path: Normalized request path ("blog/my-post", "" for the root)

    Returns:
        Resolution. On a miss, `kind` is MatchKind.NONE; `complete` tells
        whether every segment matched a folder.
    """
    node = tree.root
    folders = [node]
    params: Dict[str, str] = {}

    for segment in iter_segments(path):
        child = node.literals.get(segment)
        if child is None and node.dynamic:
            param_name, child = node.dynamic[0]
            params[param_name] = segment
        if child is None:
            return Resolution(folders=folders, params=params, kind=MatchKind.NONE, complete=False)
        node = child
        folders.append(node)

    if node.has(API_FILE):
        kind = MatchKind.API
    elif node.has(PAGE_FILE):
        kind = MatchKind.PAGE
    else:
        kind = MatchKind.NONE

    return Resolution(folders=folders, params=params, kind=kind)
