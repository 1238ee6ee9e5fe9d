"""Recursive-descent parser for the Lua subset.

Names are resolved while parsing, the way the reference Lua compiler does
it: a list of active local bindings grows as declarations complete and is
truncated when a block closes. Every declaration (one ``local`` statement,
one parameter list, one loop header, one ``local function``) opens a new
scope and receives a fresh interned scope id, so ``local x = 1; local x = 2``
yields two distinct symbols named ``x``.
"""

from __future__ import annotations

from typing import Callable, Optional

from lunals.lua import nodes as n
from lunals.lua.lexer import LuaSyntaxError, Token, TokenKind, tokenize

# (left, right) binding power; right < left means right associative.
BINARY_PRIORITY = {
    "or": (1, 1),
    "and": (2, 2),
    "<": (3, 3), ">": (3, 3), "<=": (3, 3), ">=": (3, 3), "~=": (3, 3), "==": (3, 3),
    "|": (4, 4),
    "~": (5, 5),
    "&": (6, 6),
    "<<": (7, 7), ">>": (7, 7),
    "..": (9, 8),
    "+": (10, 10), "-": (10, 10),
    "*": (11, 11), "/": (11, 11), "//": (11, 11), "%": (11, 11),
    "^": (14, 13),
}
UNARY_PRIORITY = 12
UNARY_OPS = ("not", "-", "#", "~")
BLOCK_END = ("end", "else", "elseif", "until")


class Parser:
    def __init__(self, text: str, uri: str = ""):
        self.uri = uri
        self.tokens = tokenize(text)
        self.index = 0
        self._active: list[n.Binding] = []
        self._globals: dict[str, n.Binding] = {}
        self._scope_counter = 0

    # token helpers

    @property
    def tok(self) -> Token:
        return self.tokens[self.index]

    def _peek(self, offset: int = 1) -> Token:
        index = min(self.index + offset, len(self.tokens) - 1)
        return self.tokens[index]

    def _next(self) -> Token:
        token = self.tok
        if token.kind is not TokenKind.EOF:
            self.index += 1
        return token

    def _check(self, value: str) -> bool:
        return self.tok.is_(value)

    def _accept(self, value: str) -> bool:
        if self._check(value):
            self._next()
            return True
        return False

    def _error(self, message: str, token: Token | None = None) -> LuaSyntaxError:
        token = token or self.tok
        return LuaSyntaxError(token.line, token.column, f"{message} near '{token.near()}'")

    def _expect(self, value: str, opener: Token | None = None) -> Token:
        if self._check(value):
            return self._next()
        if opener is not None and opener.line != self.tok.line:
            raise self._error(
                f"'{value}' expected (to close '{opener.value}' at line {opener.line})"
            )
        raise self._error(f"'{value}' expected")

    def _expect_name(self) -> Token:
        if self.tok.kind is not TokenKind.NAME:
            raise self._error("<name> expected")
        return self._next()

    # scopes

    def _new_scope_id(self) -> int:
        self._scope_counter += 1
        return self._scope_counter

    def _lookup(self, name: str) -> Optional[n.Binding]:
        for binding in reversed(self._active):
            if binding.name == name:
                return binding
        return None

    def _declare(
        self,
        token: Token,
        kind: n.BindingKind,
        scope_id: int,
        attrib: Optional[str] = None,
    ) -> n.Name:
        node = n.Name(token.line, token.column, name=token.value)
        node.binding = n.Binding(
            name=token.value,
            scope_id=scope_id,
            kind=kind,
            declaration=node,
            attrib=attrib,
            shadows=self._lookup(token.value),
        )
        return node

    def _activate(self, names: list[n.Name]) -> None:
        for name in names:
            if name.binding is not None:
                self._active.append(name.binding)

    def _reference(self, token: Token) -> n.Name:
        node = n.Name(token.line, token.column, name=token.value)
        binding = self._lookup(token.value)
        if binding is None:
            binding = self._globals.get(token.value)
            if binding is None:
                binding = n.Binding(
                    name=token.value,
                    scope_id=n.GLOBAL_SCOPE,
                    kind=n.BindingKind.GLOBAL,
                    declaration=node,
                )
                self._globals[token.value] = binding
        binding.reads += 1
        node.binding = binding
        return node

    # blocks

    def parse_chunk(self) -> n.Chunk:
        first = self.tok
        body = self._block()
        if self.tok.kind is not TokenKind.EOF:
            raise self._error("'<eof>' expected")
        return n.Chunk(first.line, first.column, body=body, uri=self.uri)

    def _block(self, before_close: Callable[[], None] | None = None) -> n.Block:
        first = self.tok
        mark = len(self._active)
        stmts: list[n.Stmt] = []
        while not self._block_follow():
            if self._check("return"):
                stmts.append(self._return())
                break
            stmt = self._statement()
            if stmt is not None:
                stmts.append(stmt)
        if before_close is not None:
            before_close()
        del self._active[mark:]
        return n.Block(first.line, first.column, stmts=stmts)

    def _block_follow(self) -> bool:
        token = self.tok
        if token.kind is TokenKind.EOF:
            return True
        return token.kind is TokenKind.KEYWORD and token.value in BLOCK_END

    # statements

    def _statement(self) -> Optional[n.Stmt]:
        token = self.tok
        if token.is_(";"):
            self._next()
            return None
        if token.kind is TokenKind.KEYWORD:
            handler = {
                "if": self._if,
                "while": self._while,
                "do": self._do,
                "for": self._for,
                "repeat": self._repeat,
                "function": self._function_stat,
                "local": self._local,
                "break": self._break,
                "goto": self._goto,
            }.get(token.value)
            if handler is not None:
                return handler()
        if token.is_("::"):
            return self._label()
        return self._expr_stat()

    def _return(self) -> n.Return:
        token = self._next()
        values: list[n.Expr] = []
        if not self._block_follow() and not self._check(";"):
            values = self._expr_list()
        self._accept(";")
        return n.Return(token.line, token.column, values=values)

    def _if(self) -> n.If:
        opener = self._next()
        clauses = [self._if_clause(opener)]
        orelse = None
        while self._check("elseif"):
            clauses.append(self._if_clause(self._next()))
        if self._accept("else"):
            orelse = self._block()
        self._expect("end", opener)
        return n.If(opener.line, opener.column, clauses=clauses, orelse=orelse)

    def _if_clause(self, token: Token) -> n.IfClause:
        cond = self._expr()
        self._expect("then")
        body = self._block()
        return n.IfClause(token.line, token.column, cond=cond, body=body)

    def _while(self) -> n.While:
        opener = self._next()
        cond = self._expr()
        self._expect("do")
        body = self._block()
        self._expect("end", opener)
        return n.While(opener.line, opener.column, cond=cond, body=body)

    def _do(self) -> n.Do:
        opener = self._next()
        body = self._block()
        self._expect("end", opener)
        return n.Do(opener.line, opener.column, body=body)

    def _repeat(self) -> n.Repeat:
        opener = self._next()
        holder: dict[str, n.Expr] = {}

        def _until() -> None:
            # The condition sees the locals of the loop body.
            self._expect("until", opener)
            holder["cond"] = self._expr()

        body = self._block(before_close=_until)
        return n.Repeat(opener.line, opener.column, body=body, cond=holder["cond"])

    def _for(self) -> n.Stmt:
        opener = self._next()
        first = self._expect_name()
        scope_id = self._new_scope_id()
        if self._check("="):
            self._next()
            start = self._expr()
            self._expect(",")
            stop = self._expr()
            step = self._expr() if self._accept(",") else None
            var = self._declare(first, n.BindingKind.LOOP, scope_id)
            body = self._loop_body(opener, [var])
            return n.NumericFor(
                opener.line, opener.column, var=var, start=start, stop=stop, step=step, body=body
            )
        if self._check(",") or self._check("in"):
            tokens = [first]
            while self._accept(","):
                tokens.append(self._expect_name())
            self._expect("in")
            values = self._expr_list()
            names = [self._declare(token, n.BindingKind.LOOP, scope_id) for token in tokens]
            body = self._loop_body(opener, names)
            return n.GenericFor(opener.line, opener.column, names=names, values=values, body=body)
        raise self._error("'=' or 'in' expected")

    def _loop_body(self, opener: Token, names: list[n.Name]) -> n.Block:
        self._expect("do")
        mark = len(self._active)
        self._activate(names)
        body = self._block()
        del self._active[mark:]
        self._expect("end", opener)
        return body

    def _function_stat(self) -> n.FunctionStat:
        opener = self._next()
        target: n.Expr = self._reference(self._expect_name())
        is_method = False
        while self._check(".") or self._check(":"):
            is_method = self._next().value == ":"
            key = self._expect_name()
            target = n.Index(
                target.line, target.column, obj=target, key=n.String(key.line, key.column, value=key.value)
            )
            if is_method:
                break
        if isinstance(target, n.Name):
            target.binding.reads -= 1
            self._mark_written(target)
        func = self._func_body(opener, is_method=is_method)
        return n.FunctionStat(opener.line, opener.column, target=target, func=func, is_method=is_method)

    def _local(self) -> n.Stmt:
        opener = self._next()
        if self._check("function"):
            func_token = self._next()
            name_token = self._expect_name()
            name = self._declare(name_token, n.BindingKind.FUNCTION, self._new_scope_id())
            # Visible inside its own body so it can recurse.
            self._activate([name])
            func = self._func_body(func_token)
            return n.LocalFunction(opener.line, opener.column, name=name, func=func)
        scope_id = self._new_scope_id()
        declared: list[tuple[Token, Optional[str]]] = []
        while True:
            token = self._expect_name()
            attrib = None
            if self._accept("<"):
                attrib_token = self._expect_name()
                if attrib_token.value not in ("const", "close"):
                    raise self._error(f"unknown attribute '{attrib_token.value}'", attrib_token)
                attrib = attrib_token.value
                self._expect(">")
            declared.append((token, attrib))
            if not self._accept(","):
                break
        values = self._expr_list() if self._accept("=") else []
        names = [
            self._declare(token, n.BindingKind.LOCAL, scope_id, attrib)
            for token, attrib in declared
        ]
        self._activate(names)
        return n.Local(
            opener.line,
            opener.column,
            names=names,
            attribs=[attrib for _, attrib in declared],
            values=values,
        )

    def _break(self) -> n.Break:
        token = self._next()
        return n.Break(token.line, token.column)

    def _goto(self) -> n.Goto:
        token = self._next()
        label = self._expect_name()
        return n.Goto(token.line, token.column, label=label.value)

    def _label(self) -> n.Label:
        token = self._next()
        name = self._expect_name()
        self._expect("::")
        return n.Label(token.line, token.column, name=name.value)

    def _expr_stat(self) -> n.Stmt:
        first = self.tok
        expr = self._suffixed_expr()
        if self._check("=") or self._check(","):
            targets = [expr]
            while self._accept(","):
                targets.append(self._suffixed_expr())
            self._expect("=")
            for target in targets:
                if not isinstance(target, (n.Name, n.Index)):
                    raise self._error("syntax error", first)
                if isinstance(target, n.Name):
                    target.binding.reads -= 1
                    self._mark_written(target)
            values = self._expr_list()
            return n.Assign(first.line, first.column, targets=targets, values=values)
        if not isinstance(expr, (n.Call, n.MethodCall)):
            raise self._error("syntax error")
        return n.CallStat(first.line, first.column, call=expr)

    def _mark_written(self, name: n.Name) -> None:
        binding = name.binding
        if binding is None:
            return
        binding.writes += 1
        if binding.attrib in ("const", "close"):
            raise LuaSyntaxError(
                name.line,
                name.column,
                f"attempt to assign to const variable '{name.name}'",
            )

    # functions

    def _func_body(self, opener: Token, *, is_method: bool = False) -> n.FuncBody:
        paren = self._expect("(")
        scope_id = self._new_scope_id()
        params: list[n.Name] = []
        implicit: list[n.Binding] = []
        if is_method:
            # `self` has no token of its own, so it never shows up in the tree.
            implicit.append(
                n.Binding(
                    name="self",
                    scope_id=scope_id,
                    kind=n.BindingKind.PARAM,
                    shadows=self._lookup("self"),
                )
            )
        is_vararg = False
        if not self._check(")"):
            while True:
                if self._accept("..."):
                    is_vararg = True
                    break
                params.append(self._declare(self._expect_name(), n.BindingKind.PARAM, scope_id))
                if not self._accept(","):
                    break
        self._expect(")")
        mark = len(self._active)
        self._active.extend(implicit)
        self._activate(params)
        body = self._block()
        del self._active[mark:]
        self._expect("end", opener)
        return n.FuncBody(paren.line, paren.column, params=params, is_vararg=is_vararg, body=body)

    # expressions

    def _expr_list(self) -> list[n.Expr]:
        values = [self._expr()]
        while self._accept(","):
            values.append(self._expr())
        return values

    def _expr(self, limit: int = 0) -> n.Expr:
        token = self.tok
        if token.kind in (TokenKind.KEYWORD, TokenKind.SYMBOL) and token.value in UNARY_OPS:
            self._next()
            operand = self._expr(UNARY_PRIORITY)
            left: n.Expr = n.UnOp(token.line, token.column, op=token.value, operand=operand)
        else:
            left = self._simple_expr()
        while True:
            op = self.tok
            if op.kind not in (TokenKind.KEYWORD, TokenKind.SYMBOL):
                break
            priority = BINARY_PRIORITY.get(op.value)
            if priority is None or priority[0] <= limit:
                break
            self._next()
            right = self._expr(priority[1])
            left = n.BinOp(op.line, op.column, op=op.value, left=left, right=right)
        return left

    def _simple_expr(self) -> n.Expr:
        token = self.tok
        if token.kind is TokenKind.NUMBER:
            self._next()
            value: int | float = float(token.value) if token.is_float else int(token.value)
            return n.Number(token.line, token.column, value=value, text=token.text, is_float=token.is_float)
        if token.kind is TokenKind.STRING:
            self._next()
            return n.String(token.line, token.column, value=token.value)
        if token.is_("nil"):
            self._next()
            return n.Nil(token.line, token.column)
        if token.is_("true") or token.is_("false"):
            self._next()
            return n.Boolean(token.line, token.column, value=token.value == "true")
        if token.is_("..."):
            self._next()
            return n.Vararg(token.line, token.column)
        if token.is_("{"):
            return self._table()
        if token.is_("function"):
            self._next()
            return n.Function(token.line, token.column, func=self._func_body(token))
        return self._suffixed_expr()

    def _primary_expr(self) -> n.Expr:
        token = self.tok
        if token.kind is TokenKind.NAME:
            self._next()
            return self._reference(token)
        if token.is_("("):
            self._next()
            inner = self._expr()
            self._expect(")", token)
            return n.Paren(token.line, token.column, expr=inner)
        raise self._error("unexpected symbol")

    def _suffixed_expr(self) -> n.Expr:
        expr = self._primary_expr()
        while True:
            token = self.tok
            if token.is_("."):
                self._next()
                key = self._expect_name()
                expr = n.Index(
                    expr.line, expr.column, obj=expr, key=n.String(key.line, key.column, value=key.value)
                )
            elif token.is_("["):
                self._next()
                key_expr = self._expr()
                self._expect("]")
                expr = n.Index(expr.line, expr.column, obj=expr, key=key_expr)
            elif token.is_(":"):
                self._next()
                method = self._expect_name()
                args = self._call_args()
                expr = n.MethodCall(expr.line, expr.column, obj=expr, method=method.value, args=args)
            elif token.is_("(") or token.is_("{") or token.kind is TokenKind.STRING:
                args = self._call_args()
                expr = n.Call(expr.line, expr.column, func=expr, args=args)
            else:
                return expr

    def _call_args(self) -> list[n.Expr]:
        token = self.tok
        if token.kind is TokenKind.STRING:
            self._next()
            return [n.String(token.line, token.column, value=token.value)]
        if token.is_("{"):
            return [self._table()]
        opener = self._expect("(")
        args: list[n.Expr] = []
        if not self._check(")"):
            args = self._expr_list()
        self._expect(")", opener)
        return args

    def _table(self) -> n.Table:
        opener = self._expect("{")
        table_fields: list[n.TableField] = []
        while not self._check("}"):
            token = self.tok
            if token.is_("["):
                self._next()
                key: Optional[n.Expr] = self._expr()
                self._expect("]")
                self._expect("=")
                value = self._expr()
            elif token.kind is TokenKind.NAME and self._peek().is_("="):
                self._next()
                self._next()
                key = n.String(token.line, token.column, value=token.value)
                value = self._expr()
            else:
                key = None
                value = self._expr()
            table_fields.append(n.TableField(token.line, token.column, key=key, value=value))
            if not (self._accept(",") or self._accept(";")):
                break
        self._expect("}", opener)
        return n.Table(opener.line, opener.column, fields=table_fields)


def parse(text: str, uri: str = "") -> n.Chunk:
    return Parser(text, uri).parse_chunk()
