"""
LL(1) Grammar Analyzer - Core Data Structures, Set Computation and Predictive Parsing

This module reads a context-free grammar written one production per line,
computes the CAN-BE-EMPTY, FIRST, FOLLOW and LOOKAHEAD sets for it, checks the
LL(1) determinism condition, builds the predictive parsing table and drives a
table-driven top-down parser over whitespace separated tokens.
"""

from dataclasses import dataclass, field
from typing import List, Set, Dict, Tuple, Optional, Union, Any, FrozenSet, Sequence
from enum import Enum
import re
import sys


# Reserved token: as a right-hand side it denotes the empty production,
# as a table key it denotes "no more input".
EMPTY = "EMPTY"

Guard = FrozenSet[str]

_NO_GUARD: Guard = frozenset()


@dataclass(eq=False)
class GrammarError(Exception):
    """Base class for grammar construction and analysis errors."""
    code: str  # Machine-readable error kind
    technical: str  # Human-readable message

    def __str__(self) -> str:
        return self.technical


class NoRulesError(GrammarError):
    """Raised when the grammar text yields zero productions."""

    def __init__(self):
        super().__init__("no_rules", "No rules found in this grammar")


class UndeclaredVariableError(GrammarError):
    """Raised when a symbol is expanded as a nonterminal but has no rules."""

    def __init__(self, variable: str):
        super().__init__("undeclared_variable", f"Variable {variable} not found")
        self.variable = variable


class LeftRecursionError(GrammarError):
    """Raised when FIRST revisits a nonterminal it is already expanding."""

    def __init__(self, variable: str):
        super().__init__("left_recursion", f"Variable {variable} is left recursive")
        self.variable = variable


class CollisionError(GrammarError):
    """Raised when two alternatives of one nonterminal share a lookahead symbol."""

    def __init__(self, variable: str, symbol: str, first_rule: 'Rule', second_rule: 'Rule'):
        super().__init__(
            "collision",
            f"There is a collision on variable {variable}: "
            f"'{symbol}' selects both [{first_rule}] and [{second_rule}]"
        )
        self.variable = variable
        self.symbol = symbol
        self.first_rule = first_rule
        self.second_rule = second_rule


class Rule:
    """A single production: a nonterminal and the ordered symbols it rewrites to."""

    def __init__(self, name: str, rightside: str, grammar: 'Grammar'):
        self.name = name
        self.rightside: List[str] = [s for s in rightside.split() if s != EMPTY]
        self.grammar = grammar
        self._can_be_empty: Optional[bool] = None

    @property
    def is_empty(self) -> bool:
        return not self.rightside

    def can_be_empty(self, guard: Guard = _NO_GUARD) -> bool:
        return self.can_be_empty_with_cuts(guard)[0]

    def can_be_empty_with_cuts(self, guard: Guard = _NO_GUARD) -> Tuple[bool, Guard]:
        if self._can_be_empty is not None:
            return self._can_be_empty, _NO_GUARD

        result, cuts = self.grammar.can_be_empty_with_cuts(self.rightside, guard)

        # A false answer reached by cutting a cycle is not final
        if result or not cuts:
            self._can_be_empty = result
        return result, cuts

    def __str__(self) -> str:
        if self.is_empty:
            return f"{self.name} = {EMPTY}"
        return f"{self.name} = {' '.join(self.rightside)}"

    def __repr__(self) -> str:
        return f"Rule({self})"


class Grammar:
    """
    A context-free grammar together with its LL(1) analysis.

    The grammar is immutable once constructed. Set computations are memoized
    on the instance. The predictive table is built once, on first use, so
    LeftRecursionError and UndeclaredVariableError surface from the
    operation that needs the offending set rather than from the constructor.
    """

    def __init__(self, grammar_text: str):
        self.rules: List[Rule] = []
        self.rules_by_name: Dict[str, List[Rule]] = {}
        self.terminals: Set[str] = set()

        self._first_cache: Dict[str, FrozenSet[str]] = {}
        self._where_it_shows_cache: Dict[str, List[Tuple[Rule, Tuple[str, ...]]]] = {}
        self._follow_cache: Dict[str, FrozenSet[str]] = {}
        self._lookahead_cache: Dict[Rule, FrozenSet[str]] = {}
        self._can_be_empty_cache: Dict[str, bool] = {}

        for line in re.split(r'\r?\n', grammar_text):
            line = line.strip()
            if not line or '=' not in line:
                continue

            name, rightside = line.split('=', 1)
            name = name.strip()
            rightside = rightside.strip()

            if name and rightside:
                self.add_rule(name, Rule(name, rightside, self))

        if not self.rules:
            raise NoRulesError()

        self.initial = self.rules[0].name

        # Extract terminals
        for rules in self.rules_by_name.values():
            for rule in rules:
                for symbol in rule.rightside:
                    if symbol not in self.rules_by_name:
                        self.terminals.add(symbol)

        self._table: Optional[Dict[str, Dict[str, Rule]]] = None

    def __str__(self) -> str:
        lines = [f"Start Symbol: {self.initial}"]
        lines.append(f"Terminals: {sorted(self.terminals)}")
        lines.append(f"Non-terminals: {self.non_terminals}")
        lines.append("Rules:")
        for rule in self.rules:
            lines.append(f"  {rule}")
        return "\n".join(lines)

    @property
    def table(self) -> Dict[str, Dict[str, Rule]]:
        """Predictive table: nonterminal -> lookahead token -> rule."""
        if self._table is None:
            self._table = self.parser_table()
        return self._table

    @property
    def non_terminals(self) -> List[str]:
        """Declared nonterminals in declaration order."""
        return list(self.rules_by_name)

    def is_terminal(self, symbol: str) -> bool:
        return symbol in self.terminals

    def add_rule(self, variable: str, rule: Rule):
        self.rules_by_name.setdefault(variable, []).append(rule)
        self.rules.append(rule)

    def get_rules(self, variable: str) -> List[Rule]:
        rules = self.rules_by_name.get(variable)
        if not rules:
            raise UndeclaredVariableError(variable)
        return rules

    # ------------------------------------------------------------------
    # Set computation
    # ------------------------------------------------------------------

    def can_be_empty(self, variable: Union[str, Sequence[str]], guard: Guard = _NO_GUARD) -> bool:
        """
        Check whether a symbol, or every symbol of a sequence, derives the empty string.

        Args:
            variable: A single symbol or a sequence of symbols
            guard: Nonterminals currently being expanded

        Returns:
            True if the empty string can be derived
        """
        return self.can_be_empty_with_cuts(variable, guard)[0]

    def can_be_empty_with_cuts(self, variable: Union[str, Sequence[str]],
                               guard: Guard = _NO_GUARD) -> Tuple[bool, Guard]:
        """
        Same as ``can_be_empty``, also returning the guard variables the answer was cut at.

        A true answer is always final. A false answer is final, and cached,
        when it was not cut at any nonterminal still being expanded by a caller.
        """
        if not isinstance(variable, str):
            for symbol in variable:
                result, symbol_cuts = self.can_be_empty_with_cuts(symbol, guard)
                if not result:
                    return False, symbol_cuts
            return True, _NO_GUARD

        if self.is_terminal(variable):
            return False, _NO_GUARD

        # Cycle in progress, nothing proven yet
        if variable in guard:
            return False, frozenset([variable])

        cached = self._can_be_empty_cache.get(variable)
        if cached is not None:
            return cached, _NO_GUARD

        inner = guard | {variable}
        cuts: Set[str] = set()
        for rule in self.get_rules(variable):
            result, rule_cuts = rule.can_be_empty_with_cuts(inner)
            if result:
                self._can_be_empty_cache[variable] = True
                return True, _NO_GUARD
            cuts |= rule_cuts

        cuts.discard(variable)
        if not cuts:
            self._can_be_empty_cache[variable] = False
        return False, frozenset(cuts)

    def first(self, variables: Sequence[str], guard: Guard = _NO_GUARD) -> FrozenSet[str]:
        """
        Compute the terminals that can begin a derivation of a symbol sequence.

        Only FIRST of a single nonterminal is cached; the contribution of the
        rest of the sequence is added on every call.

        Raises:
            LeftRecursionError: if a nonterminal in ``guard`` is reached again
        """
        if not variables:
            return frozenset()

        variable = variables[0]

        if self.is_terminal(variable):
            return frozenset([variable])

        if variable in guard:
            raise LeftRecursionError(variable)

        result = self._first_cache.get(variable)
        if result is None:
            inner = guard | {variable}
            collected: Set[str] = set()
            for rule in self.get_rules(variable):
                collected |= self.first(rule.rightside, inner)
            result = frozenset(collected)
            self._first_cache[variable] = result

        if len(variables) > 1 and self.can_be_empty(variable):
            result = result | self.first(variables[1:], guard)

        return result

    def where_it_shows(self, variable: str) -> List[Tuple[Rule, Tuple[str, ...]]]:
        """List every (rule, symbols after the occurrence) pair where ``variable`` is used."""
        cached = self._where_it_shows_cache.get(variable)
        if cached is not None:
            return cached

        wheres = []
        for rule in self.rules:
            for index, symbol in enumerate(rule.rightside):
                if symbol == variable:
                    wheres.append((rule, tuple(rule.rightside[index + 1:])))

        self._where_it_shows_cache[variable] = wheres
        return wheres

    def follow(self, variable: str, guard: Guard = _NO_GUARD) -> FrozenSet[str]:
        """
        Compute the terminals that can appear immediately after ``variable``.

        FOLLOW of a nonterminal already in ``guard`` contributes nothing to
        the branch being computed.
        """
        return self.follow_with_cuts(variable, guard)[0]

    def follow_with_cuts(self, variable: str, guard: Guard = _NO_GUARD) -> Tuple[FrozenSet[str], Guard]:
        """
        Same as ``follow``, also returning the guard variables the result was cut at.

        A result is cached unless it was cut at a nonterminal that a caller
        is still expanding, since it may be missing that branch.
        """
        if variable in guard:
            return frozenset(), frozenset([variable])

        cached = self._follow_cache.get(variable)
        if cached is not None:
            return cached, _NO_GUARD

        inner = guard | {variable}
        collected: Set[str] = set()
        cuts: Set[str] = set()

        for rule, suffix in self.where_it_shows(variable):
            collected |= self.first(suffix)
            if self.can_be_empty(suffix):
                symbols, follow_cuts = self.follow_with_cuts(rule.name, inner)
                collected |= symbols
                cuts |= follow_cuts

        result = frozenset(collected)
        cuts.discard(variable)
        if not cuts:
            self._follow_cache[variable] = result
        return result, frozenset(cuts)

    def lookahead(self, rule: Rule) -> FrozenSet[str]:
        """Compute the set of tokens that select ``rule`` among its alternatives."""
        cached = self._lookahead_cache.get(rule)
        if cached is not None:
            return cached

        result = self.first(rule.rightside)
        if rule.can_be_empty():
            result = result | self.follow(rule.name)

        self._lookahead_cache[rule] = result
        return result

    def first_sets(self) -> Dict[str, FrozenSet[str]]:
        return {name: self.first([name]) for name in self.rules_by_name}

    def follow_sets(self) -> Dict[str, FrozenSet[str]]:
        return {name: self.follow(name) for name in self.rules_by_name}

    def lookahead_sets(self) -> List[Tuple[Rule, FrozenSet[str]]]:
        return [(rule, self.lookahead(rule)) for rule in self.rules]

    # ------------------------------------------------------------------
    # Determinism and table
    # ------------------------------------------------------------------

    def collisions(self) -> List[CollisionError]:
        """
        Find every lookahead symbol claimed by two alternatives of one nonterminal.

        Returns:
            One CollisionError per (nonterminal, symbol) pair, in declaration order
        """
        found = []
        for name, rules in self.rules_by_name.items():
            claimed: Dict[str, Rule] = {}
            for rule in rules:
                for look in sorted(self.lookahead(rule)):
                    if look in claimed:
                        found.append(CollisionError(name, look, claimed[look], rule))
                    else:
                        claimed[look] = rule
        return found

    def check_determinism(self):
        """
        Verify that the alternatives of every nonterminal have disjoint lookahead sets.

        Raises:
            CollisionError: for the first collision found
        """
        for name, rules in self.rules_by_name.items():
            claimed: Dict[str, Rule] = {}
            for rule in rules:
                for look in sorted(self.lookahead(rule)):
                    if look in claimed:
                        raise CollisionError(name, look, claimed[look], rule)
                    claimed[look] = rule

    def is_deterministic(self) -> bool:
        try:
            self.check_determinism()
        except CollisionError:
            return False
        return True

    def parser_table(self) -> Dict[str, Dict[str, Rule]]:
        """
        Build the predictive table without checking for collisions.

        A later alternative overwrites an earlier one under a shared
        lookahead symbol. Nullable alternatives are also registered under
        the EMPTY key, used once the input is exhausted.
        """
        table: Dict[str, Dict[str, Rule]] = {}

        for name, rules in self.rules_by_name.items():
            line: Dict[str, Rule] = {}
            table[name] = line

            for rule in rules:
                for look in self.lookahead(rule):
                    line[look] = rule

                if rule.can_be_empty():
                    line[EMPTY] = rule

        return table

    # ------------------------------------------------------------------
    # Parsing
    # ------------------------------------------------------------------

    def parse(self, text: str) -> bool:
        """
        Check whether ``text`` belongs to the language of this grammar.

        Rejected input never raises; the errors below are grammar errors.

        Raises:
            CollisionError: if the grammar is not LL(1)
            LeftRecursionError: if computing a LOOKAHEAD set hits left recursion
            UndeclaredVariableError: if a LOOKAHEAD set needs an undeclared variable
        """
        return self.parse_with_trace(text).success

    def parse_with_trace(self, text: str) -> 'ParseResult':
        """
        Parse ``text`` and record every step of the predictive parser.

        Raises:
            CollisionError: if the grammar is not LL(1)
            LeftRecursionError: if computing a LOOKAHEAD set hits left recursion
            UndeclaredVariableError: if a LOOKAHEAD set needs an undeclared variable
        """
        self.check_determinism()
        return PredictiveParsingEngine(self).parse_tokens(tokenize(text))


def construct(grammar_text: str) -> Grammar:
    """Build a Grammar from its source text."""
    return Grammar(grammar_text)


def tokenize(text: str) -> List[str]:
    """Split input text into tokens on any whitespace, dropping blanks."""
    return text.split()


class ParseActionType(Enum):
    """Enumeration of predictive parsing actions."""
    MATCH = "match"
    EXPAND = "expand"
    ACCEPT = "accept"
    ERROR = "error"


@dataclass
class ParseStep:
    """Represents a single step in the parsing trace."""
    step_number: int
    stack: List[str]  # Symbol stack, top of stack last
    input_buffer: List[str]  # Remaining input tokens
    action: ParseActionType
    rule_used: Optional[Rule] = None  # For expand actions

    def __str__(self) -> str:
        stack_str = ' '.join(reversed(self.stack))
        input_str = ' '.join(self.input_buffer[:5])
        if len(self.input_buffer) > 5:
            input_str += " ..."

        action_str = self.action.value
        if self.rule_used is not None:
            action_str += f" {self.rule_used}"
        return f"Step {self.step_number}: Stack=[{stack_str}] Input=[{input_str}] Action={action_str}"


@dataclass
class ParseResult:
    """Represents the result of a parsing operation."""
    success: bool
    error_message: str = ""
    error_position: int = -1  # Index of the offending token
    trace: List[ParseStep] = field(default_factory=list)

    def __str__(self) -> str:
        if self.success:
            return f"Parse successful in {len(self.trace)} steps"
        return f"Parse failed: {self.error_message} at token {self.error_position}"


class PredictiveParsingEngine:
    """
    Table-driven LL(1) parsing engine.

    The symbol stack starts with the start symbol. On each step the top of
    the stack is matched against the next token, or expanded through the
    predictive table. The input is accepted only when the stack and the
    input run out together.
    """

    def __init__(self, grammar: Grammar):
        self.grammar = grammar
        self.table = grammar.table

    def parse_tokens(self, tokens: List[str]) -> ParseResult:
        """
        Run the predictive parsing loop over a list of tokens.

        Args:
            tokens: Tokens to parse

        Returns:
            ParseResult with the verdict, failure detail and trace
        """
        stack = [self.grammar.initial]
        position = 0
        trace: List[ParseStep] = []

        def record(action: ParseActionType, rule: Optional[Rule] = None) -> ParseStep:
            step = ParseStep(
                step_number=len(trace) + 1,
                stack=stack.copy(),
                input_buffer=tokens[position:],
                action=action,
                rule_used=rule
            )
            trace.append(step)
            return step

        def fail(message: str) -> ParseResult:
            record(ParseActionType.ERROR)
            return ParseResult(
                success=False,
                error_message=message,
                error_position=position,
                trace=trace
            )

        while stack:
            top = stack[-1]
            token = tokens[position] if position < len(tokens) else None

            if token == EMPTY:
                return fail(f"Reserved symbol '{EMPTY}' is not a valid token")

            if top == token:
                record(ParseActionType.MATCH)
                stack.pop()
                position += 1

            elif self.grammar.is_terminal(top):
                if token is None:
                    return fail(f"Unexpected end of input, expected '{top}'")
                return fail(f"Unexpected symbol '{token}', expected '{top}'")

            else:
                line = self.table.get(top, {})
                rule = line.get(EMPTY if token is None else token)

                if rule is None:
                    expected = self._get_expected_symbols(top)
                    found = "end of input" if token is None else f"symbol '{token}'"
                    return fail(f"Unexpected {found} while expanding {top}. Expected one of: {expected}")

                record(ParseActionType.EXPAND, rule)
                stack.pop()
                stack.extend(reversed(rule.rightside))

        if position < len(tokens):
            return fail(f"Unexpected symbol '{tokens[position]}' after a complete derivation")

        record(ParseActionType.ACCEPT)
        return ParseResult(success=True, trace=trace)

    def _get_expected_symbols(self, variable: str) -> List[str]:
        """Tokens that have a table entry for ``variable``, end of input shown as $."""
        expected = []
        for look in sorted(self.table.get(variable, {})):
            expected.append('$' if look == EMPTY else look)
        return expected


class GrammarWorkflowManager:
    """
    Drives grammar analysis and input parsing for the HTTP service.

    Every method returns a JSON-safe dictionary with a ``success`` flag;
    grammar errors are reported with their ``error_type`` code instead of
    being raised.
    """

    def __init__(self, grammar_text: str):
        """
        Initialize the workflow manager with grammar text.

        Args:
            grammar_text: Grammar source, one production per line
        """
        self.grammar_text = grammar_text
        self.grammar: Optional[Grammar] = None
        self.workflow_state = "initial"

    def analyze_grammar(self) -> Dict[str, Any]:
        """
        Build the grammar, its sets and its predictive table.

        Returns:
            Dictionary containing the analysis or the error that stopped it
        """
        try:
            self.grammar = Grammar(self.grammar_text)
            first_sets = self.grammar.first_sets()
            follow_sets = self.grammar.follow_sets()
            lookahead_sets = self.grammar.lookahead_sets()
            collisions = self.grammar.collisions()
        except GrammarError as e:
            self.grammar = None
            return {
                'success': False,
                'error': f"Grammar analysis failed: {e}",
                'error_type': e.code
            }

        from visualization import VisualizationGenerator
        viz_generator = VisualizationGenerator()

        self.workflow_state = "grammar_analyzed"

        return {
            'success': True,
            'rules': [str(rule) for rule in self.grammar.rules],
            'start_symbol': self.grammar.initial,
            'terminals': sorted(self.grammar.terminals),
            'non_terminals': self.grammar.non_terminals,
            'first_sets': {name: sorted(symbols) for name, symbols in first_sets.items()},
            'follow_sets': {name: sorted(symbols) for name, symbols in follow_sets.items()},
            'lookahead_sets': [
                {'rule': str(rule), 'lookahead': sorted(symbols)}
                for rule, symbols in lookahead_sets
            ],
            'deterministic': not collisions,
            'collisions': [
                {'variable': c.variable, 'symbol': c.symbol, 'message': str(c)}
                for c in collisions
            ],
            'parse_table_html': viz_generator.generate_predictive_table_html(self.grammar),
            'sets_html': viz_generator.generate_sets_html(self.grammar),
            'collisions_html': viz_generator.format_collision_report(collisions)
        }

    def parse_input_string(self, input_string: str) -> Dict[str, Any]:
        """
        Parse an input string using the analyzed grammar.

        Args:
            input_string: Whitespace separated tokens

        Returns:
            Dictionary containing the verdict and the parsing trace
        """
        if self.workflow_state != "grammar_analyzed" or self.grammar is None:
            return {
                'success': False,
                'error': "Grammar must be analyzed before parsing input strings",
                'error_type': "workflow_error"
            }

        try:
            result = self.grammar.parse_with_trace(input_string)
        except CollisionError as e:
            return {
                'success': False,
                'error': f"{e}, so this grammar is not deterministic",
                'error_type': e.code
            }

        from visualization import VisualizationGenerator
        viz_generator = VisualizationGenerator()

        response = {
            'success': True,
            'accepted': result.success,
            'trace_html': viz_generator.generate_trace_html(result.trace),
            'trace_steps': len(result.trace),
            'input_string': input_string
        }
        if not result.success:
            response['error'] = result.error_message
            response['error_position'] = result.error_position
            response['error_html'] = viz_generator.format_error_message(
                result.error_message, result.error_position, tokenize(input_string)
            )
        return response


def main(argv: Optional[List[str]] = None) -> int:
    """Check a grammar file for determinism and parse an input file with it."""
    argv = sys.argv[1:] if argv is None else argv
    if len(argv) != 2:
        print("usage: ll1_parser.py GRAMMAR_FILE INPUT_FILE", file=sys.stderr)
        return 2

    grammar_path, input_path = argv
    with open(grammar_path, encoding="utf-8") as f:
        grammar_text = f.read()
    with open(input_path, encoding="utf-8") as f:
        input_text = f.read()

    try:
        grammar = Grammar(grammar_text)
        grammar.check_determinism()
    except CollisionError as e:
        print(f"{e}, so this grammar is not deterministic", file=sys.stderr)
        return 1
    except GrammarError as e:
        print(f"Grammar error [{e.code}]: {e}", file=sys.stderr)
        return 1

    print("Grammar is deterministic")

    from visualization import SetsFormatter
    print(SetsFormatter().format_sets_text(grammar), end="")

    ok = grammar.parse(input_text)
    print("Success" if ok else "Didn't parse")
    return 0


if __name__ == "__main__":
    sys.exit(main())
