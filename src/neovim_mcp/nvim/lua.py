"""Lua snippets run inside Neovim and decoding of their results.

Values returned by ``nvim_exec_lua`` arrive as an untyped tree (``LuaValue``).
The decoders here validate that tree element by element: a top-level value of
the wrong shape fails the whole call, while a malformed element is logged and
skipped so the well-formed ones are still returned.
"""

from collections.abc import Callable
from typing import Any, TypeAlias, TypeVar, cast

from loguru import logger

from neovim_mcp.errors import ResultShapeError, SearchError
from neovim_mcp.models.editor import Diagnostic, SearchMatch

LuaValue: TypeAlias = (
    bool | int | float | str | list["LuaValue"] | dict[str, "LuaValue"] | None
)

T = TypeVar("T")

_LUA_ESCAPES: dict[int, str] = {
    **{code: f"\\{code:03d}" for code in [*range(32), 127]},
    ord("\\"): "\\\\",
    ord('"'): '\\"',
    ord("\n"): "\\n",
    ord("\r"): "\\r",
}

_SEARCH_TEMPLATE = """\
local pattern, flags = {pattern}, {flags}
local results = {{}}
local pos = vim.fn.searchpos(pattern, 'w' .. flags)
local last = {{0, 0}}
while pos[1] ~= 0 do
  if pos[1] == last[1] and pos[2] == last[2] then
    break
  end
  table.insert(results, {{line = pos[1], col = pos[2], text = vim.fn.getline(pos[1])}})
  last = pos
  pos = vim.fn.searchpos(pattern, 'W' .. flags)
end
return results
"""

DIAGNOSTICS_SCRIPT = """\
local out = {}
for _, d in ipairs(vim.diagnostic.get(...)) do
  table.insert(out, {
    bufnr = d.bufnr,
    lnum = d.lnum,
    col = d.col,
    severity = d.severity,
    message = d.message,
    source = d.source or "",
  })
end
return out
"""

_SEVERITIES = {1: "error", 2: "warning", 3: "info", 4: "hint"}


class ValueDecodeError(ValueError):
    """A single element of a Lua result has the wrong shape."""


def lua_string_literal(value: str) -> str:
    """Quote ``value`` as a double-quoted Lua string literal.

    Backslashes, quotes, line breaks and control characters are escaped, so
    the literal is safe to splice into generated Lua source.
    """
    return '"' + value.translate(_LUA_ESCAPES) + '"'


def build_search_script(pattern: str, flags: str = "") -> str:
    """Return Lua that collects every ``searchpos`` match from the cursor on.

    The first call may wrap around the end of the buffer; later calls stop at
    the end, so the loop terminates when ``searchpos`` reports line 0.
    """
    return _SEARCH_TEMPLATE.format(
        pattern=lua_string_literal(pattern), flags=lua_string_literal(flags)
    )


def plain_value(value: Any) -> LuaValue:
    """Convert a decoded RPC value into plain JSON-friendly data.

    pynvim hands back ``Buffer``/``Window``/``Tabpage`` objects for handles
    and ``bytes`` for binary strings; those become integers and text.
    """
    if isinstance(value, dict):
        return {str(plain_value(k)): plain_value(v) for k, v in value.items()}
    if isinstance(value, list | tuple):
        return [plain_value(v) for v in value]
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if hasattr(value, "handle"):
        return int(value.handle)
    return cast(LuaValue, value)


def _as_array(raw: LuaValue) -> list[LuaValue] | None:
    # Lua cannot tell an empty table from an empty list.
    if isinstance(raw, list):
        return raw
    if isinstance(raw, dict) and not raw:
        return []
    return None


def _field(item: dict[str, LuaValue], key: str, kind: type[T]) -> T:
    value = item.get(key)
    if not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
        msg = f"{key!r} is {type(value).__name__}, expected {kind.__name__}"
        raise ValueDecodeError(msg)
    return value


def _decode_elements(
    items: list[LuaValue], decode: Callable[[dict[str, LuaValue]], T], what: str
) -> list[T]:
    decoded: list[T] = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            logger.debug("Skipping {} {}: {} is not a map", what, index, type(item).__name__)
            continue
        try:
            decoded.append(decode(item))
        except ValueDecodeError as e:
            logger.debug("Skipping {} {}: {}", what, index, e)
    return decoded


def _decode_match(item: dict[str, LuaValue]) -> SearchMatch:
    return SearchMatch(
        line=_field(item, "line", int),
        column=_field(item, "col", int),
        match_text=_field(item, "text", str),
    )


def decode_search_matches(raw: Any) -> list[SearchMatch]:
    """Decode the value returned by the search script."""
    items = _as_array(raw)
    if items is None:
        msg = f"search script returned {type(raw).__name__}, expected an array"
        raise SearchError(msg)
    return _decode_elements(items, _decode_match, "search result")


def _decode_diagnostic(item: dict[str, LuaValue]) -> Diagnostic:
    severity = _field(item, "severity", int)
    source = item.get("source")
    return Diagnostic(
        buffer=_field(item, "bufnr", int),
        line=_field(item, "lnum", int) + 1,
        column=_field(item, "col", int) + 1,
        severity=_SEVERITIES.get(severity, str(severity)),
        message=_field(item, "message", str),
        source=source if isinstance(source, str) else "",
    )


def decode_diagnostics(raw: Any) -> list[Diagnostic]:
    """Decode the value returned by ``DIAGNOSTICS_SCRIPT``."""
    items = _as_array(raw)
    if items is None:
        msg = f"diagnostics script returned {type(raw).__name__}, expected an array"
        raise ResultShapeError(msg)
    return _decode_elements(items, _decode_diagnostic, "diagnostic")
