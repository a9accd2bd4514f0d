"""
Wrapper generator — an indirection script pinned to the legacy interpreter.

The toolkit's own interpreter directive cannot be trusted once the
system default is Python 3, so users invoke a generated wrapper
instead. At run time the wrapper:

    1. verifies the pinned interpreter resolves,
    2. tries each candidate location in order (``$HOME`` and globs
       are expanded by the wrapper's shell),
    3. falls back to a recursive search under known home roots,
    4. fails listing every location tried, or
    5. ``exec``s ``interpreter target "$@"`` so arguments and the exit
       code pass through untouched.
"""

from __future__ import annotations

import logging
import os
import shlex
import tempfile
from collections.abc import Sequence
from pathlib import Path

from volsetup import __version__
from volsetup.adapters.shell.filesystem import replace_symlink

logger = logging.getLogger(__name__)


_WRAPPER_TEMPLATE = """\
#!/bin/bash
# {name} wrapper, generated by volsetup {version}.
# Runs the toolkit under {interpreter} regardless of the system default.

INTERPRETER={interpreter_q}
ENTRY_NAME={entry_name_q}
ENTRY_GLOB={entry_glob_q}

if ! command -v "$INTERPRETER" >/dev/null 2>&1; then
    echo "Error: $INTERPRETER is not installed" >&2
    echo "{name} requires $INTERPRETER to run." >&2
    echo "Install it with: sudo apt-get install $INTERPRETER" >&2
    exit 1
fi

CANDIDATES=(
{candidates}
)

SEARCH_ROOTS=(
{search_roots}
)

TARGET=""
# Split on newlines only: globs still expand, spaces in $HOME survive
OLD_IFS=$IFS
IFS=$'\\n'
for loc in "${{CANDIDATES[@]}}"; do
    for file in $loc; do
        if [ -f "$file" ]; then
            TARGET="$file"
            break 2
        fi
    done
done
IFS=$OLD_IFS

# Roots are searched in their listed order
if [ -z "$TARGET" ]; then
    for root in "${{SEARCH_ROOTS[@]}}"; do
        TARGET=$(find "$root" -name "$ENTRY_NAME" -path "$ENTRY_GLOB" 2>/dev/null | sort | head -1)
        if [ -n "$TARGET" ]; then
            break
        fi
    done
fi

if [ -z "$TARGET" ]; then
    echo "Error: could not find the {name} installation" >&2
    echo "Locations tried:" >&2
    for loc in "${{CANDIDATES[@]}}"; do
        echo "  - $loc" >&2
    done
    echo "  - search for $ENTRY_GLOB under: ${{SEARCH_ROOTS[*]}}" >&2
    echo "Re-run the installer to restore it." >&2
    exit 1
fi

exec "$INTERPRETER" "$TARGET" "$@"
"""


def _double_quote(value: str) -> str:
    """Quote for bash so ``$VARS`` still expand but nothing else does."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("`", "\\`")
    return f'"{escaped}"'


def render_wrapper(
    interpreter: str,
    candidate_locations: Sequence[str],
    search_roots: Sequence[str],
    entry_point_name: str,
    entry_point_glob: str,
    name: str = "Volatility",
) -> str:
    """Render the wrapper script text.

    Args:
        interpreter: Pinned interpreter (``python2``).
        candidate_locations: Ordered path patterns; ``$HOME`` allowed.
        search_roots: Directories for the recursive fallback search.
        entry_point_name: File name of the entry point (``vol.py``).
        entry_point_glob: Path glob the search result must match.
        name: Toolkit name for diagnostics.
    """
    # Globs expand later, at the unquoted `for file in $loc`
    candidates = "\n".join(f"    {_double_quote(loc)}" for loc in candidate_locations)
    roots = "\n".join(f"    {shlex.quote(root)}" for root in search_roots)
    return _WRAPPER_TEMPLATE.format(
        name=name,
        version=__version__,
        interpreter=interpreter,
        interpreter_q=shlex.quote(interpreter),
        entry_name_q=shlex.quote(entry_point_name),
        entry_glob_q=shlex.quote(entry_point_glob),
        candidates=candidates,
        search_roots=roots,
    )


def generate_wrapper(
    output_path: str | Path,
    interpreter: str,
    candidate_locations: Sequence[str],
    search_roots: Sequence[str] = ("/root", "/home"),
    entry_point_name: str = "vol.py",
    entry_point_glob: str = "*/volatility/vol.py",
    name: str = "Volatility",
) -> Path:
    """Write an executable wrapper script to ``output_path``.

    The file is written to a temp file in the same directory and
    renamed into place, so a half-written wrapper is never visible.
    """
    output = Path(output_path)
    content = render_wrapper(
        interpreter,
        candidate_locations,
        search_roots,
        entry_point_name,
        entry_point_glob,
        name=name,
    )

    output.parent.mkdir(parents=True, exist_ok=True)
    if output.is_symlink():
        output.unlink()

    fd, tmp_name = tempfile.mkstemp(dir=output.parent, prefix=".wrapper_", suffix=".tmp")
    tmp = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.chmod(tmp, 0o755)
        os.replace(tmp, output)
    except Exception:
        tmp.unlink(missing_ok=True)
        raise

    logger.info("Wrapper written: %s", output)
    return output


def link_aliases(wrapper_path: str | Path, aliases: Sequence[str]) -> list[Path]:
    """Create alias symlinks next to the wrapper (``vol2.py``, ``volatility``)."""
    wrapper = Path(wrapper_path)
    created = []
    for alias in aliases:
        link = wrapper.parent / alias
        if link == wrapper:
            continue
        created.append(replace_symlink(wrapper, link))
        logger.info("Alias created: %s → %s", link, wrapper)
    return created
