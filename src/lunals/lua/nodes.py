"""Syntax tree for the Lua subset.

Every node records the 1-based line and column of its first token. Names
(identifier nodes) are linked to the ``Binding`` they resolve to; the
binding's ``scope_id`` is an interned integer, ``GLOBAL_SCOPE`` for globals.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Iterator, Optional, Union

GLOBAL_SCOPE = 0


class BindingKind(Enum):
    LOCAL = "local"
    PARAM = "param"
    LOOP = "loop"
    FUNCTION = "function"
    GLOBAL = "global"


@dataclass(eq=False)
class Binding:
    name: str
    scope_id: int
    kind: BindingKind
    declaration: Optional["Name"] = None
    type: str = "any"
    attrib: Optional[str] = None
    shadows: Optional["Binding"] = None
    reads: int = 0
    writes: int = 0

    @property
    def is_global(self) -> bool:
        return self.kind is BindingKind.GLOBAL


@dataclass(eq=False)
class Node:
    line: int
    column: int


# Expressions


@dataclass(eq=False)
class Expr(Node):
    pass


@dataclass(eq=False)
class Name(Expr):
    name: str
    binding: Optional[Binding] = field(default=None, repr=False)

    @property
    def length(self) -> int:
        return len(self.name)

    @property
    def scope_id(self) -> int:
        return self.binding.scope_id if self.binding is not None else GLOBAL_SCOPE


@dataclass(eq=False)
class Nil(Expr):
    pass


@dataclass(eq=False)
class Boolean(Expr):
    value: bool


@dataclass(eq=False)
class Number(Expr):
    value: Union[int, float]
    text: str
    is_float: bool = False


@dataclass(eq=False)
class String(Expr):
    value: str


@dataclass(eq=False)
class Vararg(Expr):
    pass


@dataclass(eq=False)
class FuncBody(Node):
    params: list[Name]
    is_vararg: bool
    body: "Block"


@dataclass(eq=False)
class Function(Expr):
    func: FuncBody


@dataclass(eq=False)
class TableField(Node):
    key: Optional[Expr]
    value: Expr


@dataclass(eq=False)
class Table(Expr):
    fields: list[TableField]


@dataclass(eq=False)
class BinOp(Expr):
    op: str
    left: Expr
    right: Expr


@dataclass(eq=False)
class UnOp(Expr):
    op: str
    operand: Expr


@dataclass(eq=False)
class Paren(Expr):
    expr: Expr


@dataclass(eq=False)
class Index(Expr):
    obj: Expr
    key: Expr


@dataclass(eq=False)
class Call(Expr):
    func: Expr
    args: list[Expr]


@dataclass(eq=False)
class MethodCall(Expr):
    obj: Expr
    method: str
    args: list[Expr]


# Statements


@dataclass(eq=False)
class Stmt(Node):
    pass


@dataclass(eq=False)
class Block(Node):
    stmts: list[Stmt]


@dataclass(eq=False)
class Local(Stmt):
    names: list[Name]
    attribs: list[Optional[str]]
    values: list[Expr]


@dataclass(eq=False)
class Assign(Stmt):
    targets: list[Expr]
    values: list[Expr]


@dataclass(eq=False)
class CallStat(Stmt):
    call: Expr


@dataclass(eq=False)
class Do(Stmt):
    body: Block


@dataclass(eq=False)
class While(Stmt):
    cond: Expr
    body: Block


@dataclass(eq=False)
class Repeat(Stmt):
    body: Block
    cond: Expr


@dataclass(eq=False)
class IfClause(Node):
    cond: Expr
    body: Block


@dataclass(eq=False)
class If(Stmt):
    clauses: list[IfClause]
    orelse: Optional[Block]


@dataclass(eq=False)
class NumericFor(Stmt):
    var: Name
    start: Expr
    stop: Expr
    step: Optional[Expr]
    body: Block


@dataclass(eq=False)
class GenericFor(Stmt):
    names: list[Name]
    values: list[Expr]
    body: Block


@dataclass(eq=False)
class FunctionStat(Stmt):
    target: Expr
    func: FuncBody
    is_method: bool = False


@dataclass(eq=False)
class LocalFunction(Stmt):
    name: Name
    func: FuncBody


@dataclass(eq=False)
class Return(Stmt):
    values: list[Expr]


@dataclass(eq=False)
class Break(Stmt):
    pass


@dataclass(eq=False)
class Goto(Stmt):
    label: str


@dataclass(eq=False)
class Label(Stmt):
    name: str


@dataclass(eq=False)
class Chunk(Node):
    body: Block
    uri: str = ""


def iter_children(node: Node) -> Iterator[Node]:
    """Yield direct children in source order."""
    for item in fields(node):
        if item.name == "binding":
            continue
        value = getattr(node, item.name)
        if isinstance(value, Node):
            yield value
        elif isinstance(value, list):
            for entry in value:
                if isinstance(entry, Node):
                    yield entry


def walk(node: Node) -> Iterator[Node]:
    """Pre-order, source-order traversal."""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(list(iter_children(current))))


class NodeVisitor:
    """Dispatch to ``visit_<NodeClass>``, like ``ast.NodeVisitor``."""

    def visit(self, node: Node) -> None:
        method = getattr(self, "visit_" + type(node).__name__, self.generic_visit)
        method(node)

    def generic_visit(self, node: Node) -> None:
        for child in iter_children(node):
            self.visit(child)
