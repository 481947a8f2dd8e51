"""Text-to-callable compiler for block source code.

Two entry points, both built on :mod:`ast` rather than text patterns:

* :func:`compile_scoped` -- scope-injected evaluation of a caller's default
  source text. The declared signature is inferred, positional arguments are
  bound over the caller's scope, and the body is re-hosted in a synthesized
  ``async def`` whose parameters are the scope's names.
* :func:`load_function` -- loads a complete function literal (persisted
  code, accepted corrections) and returns the callable itself.

Supported source forms::

    lambda p, q: p + q                  # expression-bodied
    def add(p, q=1, *rest, **kw): ...   # block-bodied (async def too)
    return a + b                        # bare block, names come from scope
    a + b                               # bare expression

No sandboxing: code runs with full builtins in a fresh namespace.
"""

from __future__ import annotations

import ast
import enum
import keyword
import logging
import textwrap
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from mend.exceptions import InvalidInputError

logger = logging.getLogger(__name__)

_SCOPED_NAME = "__mend_block__"


class ParamKind(str, enum.Enum):
    """How a declared parameter receives its value."""

    POSITIONAL = "positional"  # includes positional-only
    VAR_POSITIONAL = "var_positional"
    KEYWORD_ONLY = "keyword_only"
    VAR_KEYWORD = "var_keyword"


@dataclass(frozen=True)
class Param:
    """One declared parameter of a source-text function."""

    name: str
    kind: ParamKind = ParamKind.POSITIONAL
    default: ast.expr | None = None


@dataclass(frozen=True)
class ParsedSource:
    """Source text split into declared parameters and a function body.

    Attributes:
        params: Declared parameters in declaration order.
        body: Statements to host inside the synthesized function.
        tree: The parsed module (kept for line numbers in tracebacks).
    """

    params: tuple[Param, ...]
    body: list[ast.stmt]
    tree: ast.Module


def _parse(source: str) -> ast.Module:
    return ast.parse(textwrap.dedent(source).strip("\n"))


def _params_from(args: ast.arguments) -> tuple[Param, ...]:
    """Flatten an ast.arguments node into ordered Params."""
    positional = [*args.posonlyargs, *args.args]
    # defaults align with the *last* positional parameters
    defaults: list[ast.expr | None] = [None] * (len(positional) - len(args.defaults))
    defaults.extend(args.defaults)

    params = [
        Param(arg.arg, ParamKind.POSITIONAL, default)
        for arg, default in zip(positional, defaults)
    ]
    if args.vararg is not None:
        params.append(Param(args.vararg.arg, ParamKind.VAR_POSITIONAL))
    for arg, default in zip(args.kwonlyargs, args.kw_defaults):
        params.append(Param(arg.arg, ParamKind.KEYWORD_ONLY, default))
    if args.kwarg is not None:
        params.append(Param(args.kwarg.arg, ParamKind.VAR_KEYWORD))
    return tuple(params)


def _return(expr: ast.expr) -> ast.Return:
    return ast.copy_location(ast.Return(value=expr), expr)


def parse_source(source: str) -> ParsedSource:
    """Split source text into its declared parameters and body.

    A lone lambda or a lone (async) function definition contributes its
    signature. A lone expression becomes ``return <expr>``. Anything else is
    hosted verbatim with no parameters.

    Raises:
        SyntaxError: If the text does not parse.
    """
    tree = _parse(source)
    if len(tree.body) == 1:
        node = tree.body[0]
        if isinstance(node, ast.Expr) and isinstance(node.value, ast.Lambda):
            lam = node.value
            return ParsedSource(_params_from(lam.args), [_return(lam.body)], tree)
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
            return ParsedSource(_params_from(node.args), list(node.body), tree)
        if isinstance(node, ast.Expr):
            return ParsedSource((), [_return(node.value)], tree)
    return ParsedSource((), list(tree.body), tree)


def infer_parameters(source: str) -> list[str]:
    """Return declared parameter names, or [] if the signature is unresolvable."""
    try:
        parsed = parse_source(source)
    except SyntaxError:
        return []
    return [p.name for p in parsed.params]


def _eval_default(node: ast.expr, namespace: dict[str, Any], filename: str) -> Any:
    expr = ast.fix_missing_locations(ast.Expression(body=node))
    return eval(compile(expr, filename, "eval"), namespace)


def bind_arguments(
    params: Sequence[Param],
    args: Sequence[Any],
    scope: Mapping[str, Any],
    namespace: dict[str, Any] | None = None,
    filename: str = "<mend>",
) -> dict[str, Any]:
    """Build the execution scope for scope-injected evaluation.

    Positional args override scope entries of the same name, in declared
    order. A parameter with no matching argument keeps its scope value, else
    its declared default, else None. Extra args go to ``*args`` if declared
    and are dropped otherwise. A declared ``**kwargs`` binds ``{}``.
    """
    namespace = namespace if namespace is not None else {}
    bound = dict(scope)

    def fallback(param: Param) -> Any:
        if param.name in scope:
            return scope[param.name]
        if param.default is not None:
            return _eval_default(param.default, {**namespace, **bound}, filename)
        return None

    positional = [p for p in params if p.kind is ParamKind.POSITIONAL]
    for index, param in enumerate(positional):
        bound[param.name] = args[index] if index < len(args) else fallback(param)

    for param in params:
        if param.kind is ParamKind.VAR_POSITIONAL:
            bound[param.name] = tuple(args[len(positional):])
        elif param.kind is ParamKind.KEYWORD_ONLY:
            bound[param.name] = fallback(param)
        elif param.kind is ParamKind.VAR_KEYWORD:
            bound[param.name] = dict(scope.get(param.name) or {})
    return bound


def _check_names(names: Sequence[str]) -> None:
    bad = [
        n for n in names
        if not isinstance(n, str) or not n.isidentifier() or keyword.iskeyword(n)
    ]
    if bad:
        raise InvalidInputError(f"Scope names must be Python identifiers, got: {bad!r}")


def compile_scoped(
    source: str,
    scope: Mapping[str, Any] | None = None,
    args: Sequence[Any] = (),
    *,
    block_id: str = "block",
) -> Callable[[], Awaitable[Any]]:
    """Compile source text for scope-injected evaluation.

    Returns a zero-argument coroutine function; awaiting it runs the body
    with the bound scope. The body is always hosted in an ``async def`` so
    both plain returns and ``await`` work.

    Raises:
        SyntaxError: If the source does not parse or compile.
        InvalidInputError: If a scope name is not a valid identifier.
    """
    scope = dict(scope or {})
    _check_names(list(scope))
    filename = f"<mend:{block_id}>"
    namespace: dict[str, Any] = {"__name__": f"mend.blocks.{block_id}"}

    parsed = parse_source(source)
    bound = bind_arguments(parsed.params, args, scope, namespace, filename)
    names = list(bound)

    template = _parse(f"async def {_SCOPED_NAME}({', '.join(names)}):\n    pass\n")
    func_def = template.body[0]
    func_def.body = parsed.body or [ast.Pass()]
    code = compile(ast.fix_missing_locations(template), filename, "exec")
    exec(code, namespace)
    func = namespace[_SCOPED_NAME]
    values = [bound[name] for name in names]

    logger.debug("Compiled scoped block %s with names %s", block_id, names)
    return lambda: func(*values)


def find_entry_point(tree: ast.Module) -> ast.AST | None:
    """Return the node a function literal is loaded from.

    A single lambda expression, or else the last top-level (async) def.
    """
    if len(tree.body) == 1 and isinstance(tree.body[0], ast.Expr):
        value = tree.body[0].value
        return value if isinstance(value, ast.Lambda) else None
    entry = None
    for node in tree.body:
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
            entry = node
    return entry


def validate_syntax(source: str) -> None:
    """Parse-only check that source is a complete function literal.

    Nothing is executed.

    Raises:
        SyntaxError: If the text does not parse.
        ValueError: If it parses but defines no callable.
    """
    tree = _parse(source)
    if find_entry_point(tree) is None:
        raise ValueError(
            "code must be a lambda expression or define a top-level function"
        )


def load_function(source: str, *, block_id: str = "block") -> Callable[..., Any]:
    """Load a complete function literal and return the callable.

    A single expression is evaluated and must produce a callable. Otherwise
    the text runs as a module and its last top-level function is returned,
    so helpers and imports may precede it.

    Raises:
        SyntaxError: If the text does not parse.
        TypeError: If no callable can be obtained.
    """
    filename = f"<mend:{block_id}>"
    namespace: dict[str, Any] = {"__name__": f"mend.blocks.{block_id}"}
    tree = _parse(source)

    if len(tree.body) == 1 and isinstance(tree.body[0], ast.Expr):
        expr = ast.Expression(body=tree.body[0].value)
        func = eval(compile(expr, filename, "eval"), namespace)
    else:
        exec(compile(tree, filename, "exec"), namespace)
        entry = find_entry_point(tree)
        func = namespace.get(entry.name) if entry is not None else None

    if not callable(func):
        raise TypeError(f"Code for block '{block_id}' does not define a callable")
    return func
