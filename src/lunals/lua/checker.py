"""Static checks over a resolved chunk.

Produces ``CheckMessage`` records tagged with a short category. The session
decides severity from the tag; this module only reports what it finds.
"""

from __future__ import annotations

from typing import Optional

from lunals.contract import CheckMessage
from lunals.lua import nodes as n

BUILTINS: dict[str, str] = {
    "_G": "table",
    "_VERSION": "string",
    "arg": "table",
    "assert": "function",
    "collectgarbage": "function",
    "coroutine": "table",
    "debug": "table",
    "dofile": "function",
    "error": "function",
    "getmetatable": "function",
    "io": "table",
    "ipairs": "function",
    "load": "function",
    "loadfile": "function",
    "math": "table",
    "next": "function",
    "os": "table",
    "package": "table",
    "pairs": "function",
    "pcall": "function",
    "print": "function",
    "rawequal": "function",
    "rawget": "function",
    "rawlen": "function",
    "rawset": "function",
    "require": "function",
    "select": "function",
    "setmetatable": "function",
    "string": "table",
    "table": "table",
    "tonumber": "function",
    "tostring": "function",
    "type": "function",
    "utf8": "table",
    "xpcall": "function",
}

ARITHMETIC_OPS = frozenset({"+", "-", "*", "/", "//", "%", "^"})
BITWISE_OPS = frozenset({"&", "|", "~", "<<", ">>"})
COMPARISON_OPS = frozenset({"<", ">", "<=", ">=", "==", "~="})
NOT_ARITHMETIC = ("string", "boolean", "nil", "table")
NOT_CALLABLE = ("integer", "number", "string", "boolean", "nil")
NUMERIC = ("integer", "number")


def _is_function_type(type_name: str) -> bool:
    return type_name == "function" or type_name.startswith("function(")


def _base_type(type_name: str) -> str:
    return "function" if _is_function_type(type_name) else type_name


def _function_type(func: n.FuncBody) -> str:
    params = [param.name for param in func.params]
    if func.is_vararg:
        params.append("...")
    return f"function({', '.join(params)})"


def _article(type_name: str) -> str:
    return "an" if type_name[:1] in ("a", "e", "i", "o", "u") else "a"


def _describe(expr: n.Expr) -> str:
    if isinstance(expr, n.Name) and expr.binding is not None:
        scope = "global" if expr.binding.is_global else "local"
        return f" ({scope} '{expr.name}')"
    return ""


def _span(expr: n.Expr) -> int:
    return expr.length if isinstance(expr, n.Name) else 1


def _value_type(values: list[n.Expr], index: int) -> Optional[str]:
    """Base type of the value stored at ``index``, or None when it depends on other bindings."""
    if index >= len(values):
        if values and isinstance(values[-1], (n.Call, n.MethodCall, n.Vararg)):
            return None
        return "nil"
    expr = values[index]
    while isinstance(expr, n.Paren):
        expr = expr.expr
    if isinstance(expr, n.Nil):
        return "nil"
    if isinstance(expr, n.Boolean):
        return "boolean"
    if isinstance(expr, n.Number):
        return "number"
    if isinstance(expr, n.String):
        return "string"
    if isinstance(expr, n.Table):
        return "table"
    if isinstance(expr, n.Function):
        return "function"
    if isinstance(expr, n.BinOp):
        if expr.op in COMPARISON_OPS:
            return "boolean"
        if expr.op == "..":
            return "string"
        if expr.op in ARITHMETIC_OPS or expr.op in BITWISE_OPS:
            return "number"
    if isinstance(expr, n.UnOp):
        return "boolean" if expr.op == "not" else "number"
    return None


class Checker(n.NodeVisitor):
    def __init__(self, *, strict: bool = False, integer: bool = False, unused: bool = True):
        self.strict = strict
        self.integer = integer
        self.unused = unused
        self.messages: list[CheckMessage] = []
        self._locals: list[n.Binding] = []
        self._unsettled: set[n.Binding] = set()

    def check(self, chunk: n.Chunk) -> list[CheckMessage]:
        self._seed_globals(chunk)
        self._collect_writes(chunk)
        self.visit(chunk)
        if self.unused:
            self._report_unused()
        return sorted(self.messages, key=lambda message: (message.line, message.column))

    def _report(self, node: n.Node, tag: str, message: str, length: int = 1) -> None:
        self.messages.append(
            CheckMessage(line=node.line, column=node.column, tag=tag, message=message, length=length)
        )

    def _seed_globals(self, chunk: n.Chunk) -> None:
        for node in n.walk(chunk):
            if not isinstance(node, n.Name) or node.binding is None:
                continue
            binding = node.binding
            if binding.is_global and binding.type == "any" and node.name in BUILTINS:
                binding.type = BUILTINS[node.name]

    def _collect_writes(self, chunk: n.Chunk) -> None:
        # Types are flow-insensitive: a binding whose stored values disagree
        # is checked as any. Its declared type still shows on hover.
        stored: dict[n.Binding, list[Optional[str]]] = {}

        def record(name: n.Expr, value_type: Optional[str]) -> None:
            if isinstance(name, n.Name) and name.binding is not None:
                stored.setdefault(name.binding, []).append(value_type)

        for node in n.walk(chunk):
            if isinstance(node, n.Local):
                for index, name in enumerate(node.names):
                    record(name, _value_type(node.values, index))
            elif isinstance(node, n.Assign):
                for index, target in enumerate(node.targets):
                    record(target, _value_type(node.values, index))
            elif isinstance(node, n.LocalFunction):
                record(node.name, "function")
            elif isinstance(node, n.FunctionStat):
                record(node.target, "function")
        for binding, types in stored.items():
            if len(types) > 1 and (None in types or len(set(types)) > 1):
                self._unsettled.add(binding)

    # type inference

    def infer(self, expr: Optional[n.Expr]) -> str:
        if expr is None:
            return "any"
        if isinstance(expr, n.Nil):
            return "nil"
        if isinstance(expr, n.Boolean):
            return "boolean"
        if isinstance(expr, n.Number):
            return "number" if expr.is_float else "integer"
        if isinstance(expr, n.String):
            return "string"
        if isinstance(expr, n.Table):
            return "table"
        if isinstance(expr, n.Function):
            return _function_type(expr.func)
        if isinstance(expr, n.Paren):
            return self.infer(expr.expr)
        if isinstance(expr, n.Name) and expr.binding is not None:
            if expr.binding in self._unsettled:
                return "any"
            return expr.binding.type
        if isinstance(expr, n.UnOp):
            if expr.op == "not":
                return "boolean"
            if expr.op in ("#", "~"):
                return "integer"
            operand = self.infer(expr.operand)
            return operand if operand in NUMERIC else "number"
        if isinstance(expr, n.BinOp):
            return self._infer_binop(expr)
        return "any"

    def _infer_binop(self, expr: n.BinOp) -> str:
        if expr.op in COMPARISON_OPS:
            return "boolean"
        if expr.op == "..":
            return "string"
        if expr.op in BITWISE_OPS:
            return "integer"
        if expr.op in ARITHMETIC_OPS:
            left, right = self.infer(expr.left), self.infer(expr.right)
            if expr.op in ("/", "^"):
                return "number"
            if left == "integer" and right == "integer":
                return "integer"
            return "number"
        return "any"

    def _assign_types(self, names: list[n.Name], values: list[n.Expr]) -> None:
        for index, name in enumerate(names):
            binding = name.binding
            if binding is None:
                continue
            if index < len(values):
                binding.type = self.infer(values[index])
            elif values and isinstance(values[-1], (n.Call, n.MethodCall, n.Vararg)):
                binding.type = "any"
            else:
                binding.type = "nil" if values else "any"
                if not values and self.strict:
                    self._report(
                        name,
                        "any",
                        f"local '{name.name}' is declared without a value and has type any",
                        name.length,
                    )

    # statements

    def _declared(self, name: n.Name) -> None:
        binding = name.binding
        if binding is None:
            return
        self._locals.append(binding)
        shadowed = binding.shadows
        if shadowed is not None and name.name != "_":
            where = ""
            if shadowed.declaration is not None:
                where = f" on line {shadowed.declaration.line}"
            self._report(
                name,
                "mask",
                f"local '{name.name}' shadows a variable declared{where}",
                name.length,
            )

    def visit_Local(self, node: n.Local) -> None:
        for value in node.values:
            self.visit(value)
        self._assign_types(node.names, node.values)
        for name in node.names:
            self._declared(name)

    def visit_LocalFunction(self, node: n.LocalFunction) -> None:
        if node.name.binding is not None:
            node.name.binding.type = _function_type(node.func)
        self._declared(node.name)
        self.visit(node.func)

    def visit_FunctionStat(self, node: n.FunctionStat) -> None:
        target = node.target
        if isinstance(target, n.Name) and target.binding is not None:
            if target.binding.type in ("any", "nil"):
                target.binding.type = _function_type(node.func)
        else:
            self.visit(target)
        self.visit(node.func)

    def visit_Assign(self, node: n.Assign) -> None:
        for value in node.values:
            self.visit(value)
        for index, target in enumerate(node.targets):
            if isinstance(target, n.Name):
                binding = target.binding
                if (
                    binding is not None
                    and binding.type in ("any", "nil")
                    and index < len(node.values)
                    and not (binding.is_global and target.name in BUILTINS)
                ):
                    binding.type = self.infer(node.values[index])
            else:
                self.visit(target)

    def visit_NumericFor(self, node: n.NumericFor) -> None:
        self.visit(node.start)
        self.visit(node.stop)
        if node.step is not None:
            self.visit(node.step)
        bounds = [self.infer(node.start), self.infer(node.stop)]
        if node.step is not None:
            bounds.append(self.infer(node.step))
        if node.var.binding is not None:
            node.var.binding.type = "integer" if all(b == "integer" for b in bounds) else "number"
        self.visit(node.body)

    def visit_GenericFor(self, node: n.GenericFor) -> None:
        for value in node.values:
            self.visit(value)
        for name in node.names:
            if name.binding is not None:
                name.binding.type = "any"
        self.visit(node.body)

    def visit_FuncBody(self, node: n.FuncBody) -> None:
        for param in node.params:
            if param.binding is not None:
                param.binding.type = "any"
            self._declared(param)
        self.visit(node.body)

    # expressions

    def visit_Name(self, node: n.Name) -> None:
        binding = node.binding
        if binding is None or not binding.is_global or not self.strict:
            return
        if node.name not in BUILTINS and binding.writes == 0:
            self._report(node, "undefined", f"undefined global '{node.name}'", node.length)

    def visit_Number(self, node: n.Number) -> None:
        if self.integer and node.is_float:
            self._report(
                node, "integer", f"float literal '{node.text}' in integer mode", len(node.text)
            )

    def visit_BinOp(self, node: n.BinOp) -> None:
        self.visit(node.left)
        self.visit(node.right)
        if self.integer and node.op == "/":
            self._report(node, "integer", "float division '/' in integer mode, use '//'")
        if node.op in ARITHMETIC_OPS or node.op in BITWISE_OPS:
            verb = "perform arithmetic on" if node.op in ARITHMETIC_OPS else "perform bitwise operation on"
            self._check_operands(node, verb, NOT_ARITHMETIC)
        elif node.op == "..":
            self._check_operands(node, "concatenate", ("boolean", "nil", "table"))

    def _check_operands(self, node: n.BinOp, verb: str, invalid: tuple[str, ...]) -> None:
        for operand in (node.left, node.right):
            type_name = _base_type(self.infer(operand))
            if type_name in invalid or _is_function_type(type_name):
                self._report(
                    operand,
                    "type",
                    f"attempt to {verb} {_article(type_name)} {type_name} value{_describe(operand)}",
                    _span(operand),
                )

    def visit_UnOp(self, node: n.UnOp) -> None:
        self.visit(node.operand)
        if node.op == "-":
            type_name = _base_type(self.infer(node.operand))
            if type_name in NOT_ARITHMETIC or _is_function_type(type_name):
                self._report(
                    node.operand,
                    "type",
                    f"attempt to perform arithmetic on {_article(type_name)} {type_name} value{_describe(node.operand)}",
                    _span(node.operand),
                )

    def visit_Call(self, node: n.Call) -> None:
        self.visit(node.func)
        for arg in node.args:
            self.visit(arg)
        type_name = self.infer(node.func)
        if type_name in NOT_CALLABLE:
            self._report(
                node.func,
                "type",
                f"attempt to call {_article(type_name)} {type_name} value{_describe(node.func)}",
                _span(node.func),
            )

    # unused locals

    def _report_unused(self) -> None:
        for binding in self._locals:
            if binding.kind not in (n.BindingKind.LOCAL, n.BindingKind.FUNCTION):
                continue
            name = binding.declaration
            if name is None or binding.reads > 0 or name.name.startswith("_"):
                continue
            what = "function" if binding.kind is n.BindingKind.FUNCTION else "local"
            self._report(name, "unused", f"unused {what} '{name.name}'", name.length)


def check(
    chunk: n.Chunk,
    *,
    strict: bool = False,
    integer: bool = False,
    unused: bool = True,
) -> list[CheckMessage]:
    return Checker(strict=strict, integer=integer, unused=unused).check(chunk)
