from __future__ import annotations

import io
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path

from ll1_parser import (
    EMPTY,
    CollisionError,
    Grammar,
    GrammarError,
    GrammarWorkflowManager,
    LeftRecursionError,
    NoRulesError,
    ParseActionType,
    UndeclaredVariableError,
    construct,
    main,
    tokenize,
)


BALANCED = """
S = ( S ) S
S = EMPTY
"""

ANBN = """
S = a S b
S = EMPTY
"""

EXPRESSION = """
E = T E'
E' = + T E'
E' = EMPTY
T = F T'
T' = * F T'
T' = EMPTY
F = ( E )
F = id
"""

LEFT_RECURSIVE = """
E = E + T
E = T
T = id
"""

COLLIDING = """
S = x a
S = x b
"""


class GrammarConstructionTests(unittest.TestCase):
    def test_rules_are_indexed_in_declaration_order(self) -> None:
        grammar = construct(EXPRESSION)
        self.assertEqual(len(grammar.rules), 8)
        self.assertEqual(grammar.initial, "E")
        self.assertEqual(grammar.non_terminals, ["E", "E'", "T", "T'", "F"])
        self.assertEqual([str(r) for r in grammar.rules_by_name["F"]], ["F = ( E )", "F = id"])
        self.assertEqual(grammar.terminals, {"+", "*", "(", ")", "id"})

    def test_empty_marker_is_stripped(self) -> None:
        grammar = construct(BALANCED)
        empty_rule = grammar.rules[1]
        self.assertEqual(empty_rule.rightside, [])
        self.assertTrue(empty_rule.is_empty)
        self.assertEqual(str(empty_rule), "S = EMPTY")
        self.assertNotIn(EMPTY, grammar.terminals)

    def test_malformed_lines_are_skipped(self) -> None:
        source = "no equals sign here\n= a b\nA =\n\r\nA = a B\r\nB = b\n"
        grammar = construct(source)
        self.assertEqual([str(r) for r in grammar.rules], ["A = a B", "B = b"])
        self.assertEqual(grammar.terminals, {"a", "b"})

    def test_line_is_split_at_first_equals(self) -> None:
        grammar = construct("S = a = b")
        self.assertEqual(grammar.rules[0].rightside, ["a", "=", "b"])
        self.assertIn("=", grammar.terminals)

    def test_no_rules_is_an_error(self) -> None:
        for source in ["", "   \n\n", "just words", "= x"]:
            with self.assertRaises(NoRulesError) as ctx:
                Grammar(source)
            self.assertIsInstance(ctx.exception, GrammarError)
            self.assertEqual(ctx.exception.code, "no_rules")


class SetComputationTests(unittest.TestCase):
    def test_first_follow_and_emptiness_of_anbn(self) -> None:
        grammar = construct(ANBN)
        self.assertEqual(grammar.first(["S"]), {"a"})
        self.assertTrue(grammar.can_be_empty("S"))
        self.assertEqual(grammar.follow("S"), {"b"})

    def test_expression_grammar_sets(self) -> None:
        grammar = construct(EXPRESSION)
        self.assertEqual(grammar.first(["E"]), {"(", "id"})
        self.assertEqual(grammar.first(["E'"]), {"+"})
        self.assertEqual(grammar.follow("E"), {")"})
        self.assertEqual(grammar.follow("E'"), {")"})
        self.assertEqual(grammar.follow("T"), {"+", ")"})
        self.assertEqual(grammar.follow("T'"), {"+", ")"})
        self.assertEqual(grammar.follow("F"), {"*", "+", ")"})

    def test_mutual_emptiness(self) -> None:
        grammar = construct("A = B\nB = EMPTY")
        self.assertTrue(grammar.can_be_empty("A"))
        self.assertTrue(grammar.can_be_empty(["A", "B"]))
        self.assertTrue(grammar.can_be_empty([]))

    def test_direct_cycle_cannot_be_empty(self) -> None:
        grammar = construct("A = A")
        self.assertFalse(grammar.can_be_empty("A"))
        self.assertFalse(grammar.rules[0].can_be_empty())

    def test_emptiness_through_a_broken_cycle_is_not_cached_as_false(self) -> None:
        grammar = construct("A = B\nA = EMPTY\nB = A\nB = b")
        self.assertTrue(grammar.can_be_empty("A"))
        self.assertNotIn("B", grammar._can_be_empty_cache)
        self.assertTrue(grammar.can_be_empty("B"))

    def test_terminals_never_empty(self) -> None:
        grammar = construct(ANBN)
        self.assertFalse(grammar.can_be_empty("a"))
        self.assertFalse(grammar.can_be_empty(["S", "b"]))

    def test_first_of_sequence_does_not_leak_into_variable_cache(self) -> None:
        grammar = construct("S = A b\nA = a\nA = EMPTY")
        self.assertEqual(grammar.first(["A", "b"]), {"a", "b"})
        self.assertEqual(grammar.first(["A"]), {"a"})
        self.assertEqual(grammar.first(["S"]), {"a", "b"})
        self.assertEqual(grammar.first([]), set())

    def test_repeated_nullable_symbol_is_not_left_recursion(self) -> None:
        grammar = construct("S = B B c\nB = b\nB = EMPTY")
        self.assertEqual(grammar.first(["S"]), {"b", "c"})
        self.assertEqual(grammar.follow("B"), {"b", "c"})

    def test_where_it_shows_lists_every_occurrence(self) -> None:
        grammar = construct("S = A x A y\nA = a")
        rule = grammar.rules[0]
        self.assertEqual(grammar.where_it_shows("A"), [(rule, ("x", "A", "y")), (rule, ("y",))])
        self.assertEqual(grammar.follow("A"), {"x", "y"})

    def test_follow_propagates_through_mutual_recursion(self) -> None:
        source = """
S = A z
A = a B
B = b A
B = EMPTY
"""
        grammar = construct(source)
        self.assertEqual(grammar.follow("A"), {"z"})
        self.assertEqual(grammar.follow("B"), {"z"})

    def test_lookahead_sets(self) -> None:
        grammar = construct(BALANCED)
        paren_rule, empty_rule = grammar.rules
        self.assertEqual(grammar.lookahead(paren_rule), {"("})
        self.assertEqual(grammar.lookahead(empty_rule), {")"})

    def test_repeated_queries_return_the_cached_result(self) -> None:
        grammar = construct(EXPRESSION)
        rule = grammar.rules[2]
        self.assertIs(grammar.first(["T"]), grammar.first(["T"]))
        self.assertIs(grammar.follow("T'"), grammar.follow("T'"))
        self.assertIs(grammar.lookahead(rule), grammar.lookahead(rule))
        self.assertEqual(grammar.can_be_empty("E'"), grammar.can_be_empty("E'"))

    def test_emptiness_of_a_deep_chain_caches_every_variable(self) -> None:
        depth = 40
        lines = []
        for i in range(depth):
            lines.append(f"A{i} = A{i + 1} x{i}")
            lines.append(f"A{i} = A{i + 2} y{i}")
        lines += [f"A{depth} = z", f"A{depth + 1} = z"]
        grammar = construct("\n".join(lines))
        self.assertFalse(grammar.can_be_empty("A0"))
        for i in range(depth + 2):
            self.assertIn(f"A{i}", grammar._can_be_empty_cache)

    def test_follow_of_a_deep_chain_caches_every_variable(self) -> None:
        depth = 40
        lines = ["S = A0 end"]
        for i in range(depth):
            lines.append(f"A{i} = x{i} A{i + 1}")
            lines.append(f"A{i} = y{i} A{i + 2}")
        lines += [f"A{depth} = z", f"A{depth + 1} = z"]
        grammar = construct("\n".join(lines))
        self.assertEqual(grammar.follow(f"A{depth}"), {"end"})
        for i in range(depth + 1):
            self.assertIn(f"A{i}", grammar._follow_cache)

    def test_whole_grammar_set_reports(self) -> None:
        grammar = construct(ANBN)
        self.assertEqual(grammar.first_sets(), {"S": {"a"}})
        self.assertEqual(grammar.follow_sets(), {"S": {"b"}})
        self.assertEqual(
            [(str(rule), set(looks)) for rule, looks in grammar.lookahead_sets()],
            [("S = a S b", {"a"}), ("S = EMPTY", {"b"})],
        )

    def test_undeclared_variable(self) -> None:
        grammar = construct(ANBN)
        with self.assertRaises(UndeclaredVariableError) as ctx:
            grammar.first(["Z"])
        self.assertEqual(ctx.exception.variable, "Z")
        self.assertEqual(ctx.exception.code, "undeclared_variable")
        with self.assertRaises(UndeclaredVariableError):
            grammar.can_be_empty("Z")


class LeftRecursionTests(unittest.TestCase):
    def test_left_recursion_detected_on_first(self) -> None:
        grammar = construct(LEFT_RECURSIVE)
        with self.assertRaises(LeftRecursionError) as ctx:
            grammar.first(["E"])
        self.assertEqual(ctx.exception.variable, "E")
        self.assertEqual(ctx.exception.code, "left_recursion")

    def test_left_recursion_detected_without_determinism_check(self) -> None:
        grammar = construct(LEFT_RECURSIVE)
        with self.assertRaises(LeftRecursionError):
            grammar.lookahead(grammar.rules[0])
        with self.assertRaises(LeftRecursionError):
            grammar.table

    def test_indirect_left_recursion(self) -> None:
        grammar = construct("A = B a\nB = A b\nB = c")
        with self.assertRaises(LeftRecursionError):
            grammar.first(["A"])

    def test_left_recursion_through_nullable_prefix(self) -> None:
        grammar = construct("A = N A x\nA = y\nN = EMPTY")
        with self.assertRaises(LeftRecursionError):
            grammar.first(["A"])


class DeterminismTests(unittest.TestCase):
    def test_collision_names_the_variable(self) -> None:
        grammar = construct(COLLIDING)
        with self.assertRaises(CollisionError) as ctx:
            grammar.check_determinism()
        err = ctx.exception
        self.assertEqual(err.variable, "S")
        self.assertEqual(err.symbol, "x")
        self.assertEqual(err.code, "collision")
        self.assertIs(err.first_rule, grammar.rules[0])
        self.assertIs(err.second_rule, grammar.rules[1])
        self.assertFalse(grammar.is_deterministic())

    def test_collision_with_follow_set(self) -> None:
        grammar = construct("S = A a\nA = a\nA = EMPTY")
        with self.assertRaises(CollisionError) as ctx:
            grammar.check_determinism()
        self.assertEqual(ctx.exception.variable, "A")

    def test_colliding_table_keeps_later_alternative(self) -> None:
        grammar = construct(COLLIDING)
        self.assertIs(grammar.table["S"]["x"], grammar.rules[1])

    def test_collisions_lists_every_shared_symbol(self) -> None:
        grammar = construct("S = x a\nS = x b\nS = y\nT = y\nT = y z")
        found = [(c.variable, c.symbol) for c in grammar.collisions()]
        self.assertEqual(found, [("S", "x"), ("T", "y")])

    def test_deterministic_grammar_has_disjoint_table(self) -> None:
        grammar = construct(EXPRESSION)
        grammar.check_determinism()
        self.assertTrue(grammar.is_deterministic())
        self.assertEqual(grammar.collisions(), [])

        for name, rules in grammar.rules_by_name.items():
            seen = set()
            expected_entries = 0
            for rule in rules:
                looks = grammar.lookahead(rule)
                self.assertFalse(seen & looks)
                seen |= looks
                expected_entries += len(looks)
                for look in looks:
                    self.assertIs(grammar.table[name][look], rule)
                if rule.can_be_empty():
                    expected_entries += 1
                    self.assertIs(grammar.table[name][EMPTY], rule)
            self.assertEqual(len(grammar.table[name]), expected_entries)

    def test_table_is_built_once(self) -> None:
        grammar = construct(BALANCED)
        table = grammar.table
        grammar.parse("( )")
        self.assertIs(grammar.table, table)


class ParserTests(unittest.TestCase):
    def test_balanced_parentheses(self) -> None:
        grammar = construct(BALANCED)
        self.assertTrue(grammar.parse("( ( ) ) ( )"))
        self.assertFalse(grammar.parse("( ("))
        self.assertFalse(grammar.parse(")"))
        self.assertTrue(grammar.parse(""))
        self.assertTrue(grammar.parse("(\n)\n\n(\t)"))

    def test_anbn(self) -> None:
        grammar = construct(ANBN)
        self.assertTrue(grammar.parse("a a b b"))
        self.assertFalse(grammar.parse("a b b"))
        self.assertFalse(grammar.parse("a a b"))
        self.assertFalse(grammar.parse("b a"))

    def test_expression_grammar(self) -> None:
        grammar = construct(EXPRESSION)
        self.assertTrue(grammar.parse("id + id * id"))
        self.assertTrue(grammar.parse("( id + id ) * id"))
        self.assertFalse(grammar.parse("id +"))
        self.assertFalse(grammar.parse("id id"))
        self.assertFalse(grammar.parse("id - id"))

    def test_reserved_marker_is_not_a_token(self) -> None:
        grammar = construct(BALANCED)
        self.assertFalse(grammar.parse(EMPTY))

    def test_trace_of_accepted_input(self) -> None:
        grammar = construct(ANBN)
        result = grammar.parse_with_trace("a b")
        self.assertTrue(result.success)
        self.assertEqual(result.error_position, -1)
        actions = [step.action for step in result.trace]
        self.assertEqual(
            actions,
            [
                ParseActionType.EXPAND,
                ParseActionType.MATCH,
                ParseActionType.EXPAND,
                ParseActionType.MATCH,
                ParseActionType.ACCEPT,
            ],
        )
        self.assertIs(result.trace[0].rule_used, grammar.rules[0])
        self.assertEqual(result.trace[0].stack, ["S"])
        self.assertEqual(result.trace[1].stack, ["b", "S", "a"])
        self.assertEqual(result.trace[1].input_buffer, ["a", "b"])
        self.assertIs(result.trace[2].rule_used, grammar.rules[1])

    def test_leftover_input_is_rejected(self) -> None:
        grammar = construct(BALANCED)
        result = grammar.parse_with_trace(")")
        self.assertFalse(result.success)
        self.assertEqual(result.error_position, 0)
        self.assertIn("after a complete derivation", result.error_message)
        self.assertEqual(result.trace[-1].action, ParseActionType.ERROR)

    def test_exhausted_input_is_rejected(self) -> None:
        grammar = construct(BALANCED)
        result = grammar.parse_with_trace("( (")
        self.assertFalse(result.success)
        self.assertEqual(result.error_position, 2)
        self.assertIn("end of input", result.error_message)

    def test_missing_table_entry_lists_expected_symbols(self) -> None:
        grammar = construct(EXPRESSION)
        result = grammar.parse_with_trace("+ id")
        self.assertFalse(result.success)
        self.assertEqual(result.error_position, 0)
        self.assertIn("while expanding E", result.error_message)
        self.assertIn("'('", result.error_message)
        self.assertIn("'id'", result.error_message)

    def test_parse_requires_a_deterministic_grammar(self) -> None:
        grammar = construct(COLLIDING)
        with self.assertRaises(CollisionError):
            grammar.parse("x a")
        with self.assertRaises(CollisionError):
            grammar.parse_with_trace("x b")

    def test_parse_surfaces_left_recursion(self) -> None:
        grammar = construct(LEFT_RECURSIVE)
        with self.assertRaises(LeftRecursionError):
            grammar.parse("id")
        with self.assertRaises(LeftRecursionError):
            grammar.parse_with_trace("id + id")

    def test_tokenize(self) -> None:
        self.assertEqual(tokenize("  a b\r\n c\t\td \n"), ["a", "b", "c", "d"])
        self.assertEqual(tokenize(""), [])


class WorkflowManagerTests(unittest.TestCase):
    def test_analyze_and_parse(self) -> None:
        manager = GrammarWorkflowManager(BALANCED)
        analysis = manager.analyze_grammar()
        self.assertTrue(analysis["success"])
        self.assertTrue(analysis["deterministic"])
        self.assertEqual(analysis["rules"], ["S = ( S ) S", "S = EMPTY"])
        self.assertEqual(analysis["first_sets"], {"S": ["("]})
        self.assertEqual(analysis["follow_sets"], {"S": [")"]})
        self.assertEqual(manager.workflow_state, "grammar_analyzed")

        accepted = manager.parse_input_string("( )")
        self.assertTrue(accepted["success"])
        self.assertTrue(accepted["accepted"])

        rejected = manager.parse_input_string("(")
        self.assertTrue(rejected["success"])
        self.assertFalse(rejected["accepted"])
        self.assertEqual(rejected["error_position"], 1)

    def test_parse_before_analysis(self) -> None:
        manager = GrammarWorkflowManager(BALANCED)
        result = manager.parse_input_string("( )")
        self.assertFalse(result["success"])
        self.assertEqual(result["error_type"], "workflow_error")

    def test_grammar_errors_become_error_types(self) -> None:
        cases = [("nothing", "no_rules"), (LEFT_RECURSIVE, "left_recursion")]
        for source, code in cases:
            result = GrammarWorkflowManager(source).analyze_grammar()
            self.assertFalse(result["success"])
            self.assertEqual(result["error_type"], code)

    def test_collision_is_reported_then_blocks_parsing(self) -> None:
        manager = GrammarWorkflowManager(COLLIDING)
        analysis = manager.analyze_grammar()
        self.assertTrue(analysis["success"])
        self.assertFalse(analysis["deterministic"])
        self.assertEqual(analysis["collisions"][0]["variable"], "S")

        result = manager.parse_input_string("x a")
        self.assertFalse(result["success"])
        self.assertEqual(result["error_type"], "collision")


class CommandLineTests(unittest.TestCase):
    def _run(self, grammar_text: str, input_text: str) -> tuple[int, str, str]:
        with tempfile.TemporaryDirectory() as tmp:
            grammar_path = Path(tmp) / "grammar"
            input_path = Path(tmp) / "example"
            grammar_path.write_text(grammar_text, encoding="utf-8")
            input_path.write_text(input_text, encoding="utf-8")
            out, err = io.StringIO(), io.StringIO()
            with redirect_stdout(out), redirect_stderr(err):
                code = main([str(grammar_path), str(input_path)])
        return code, out.getvalue(), err.getvalue()

    def test_success(self) -> None:
        code, out, _ = self._run(BALANCED, "( ( ) )\n( )\n")
        self.assertEqual(code, 0)
        self.assertIn("Grammar is deterministic", out)
        self.assertIn("FIRST(S) = { ( }", out)
        self.assertIn("LOOKAHEAD(S = EMPTY) = { ) }", out)
        self.assertIn("Success", out)

    def test_rejection(self) -> None:
        code, out, _ = self._run(BALANCED, "( (")
        self.assertEqual(code, 0)
        self.assertIn("Didn't parse", out)

    def test_collision(self) -> None:
        code, out, err = self._run(COLLIDING, "x a")
        self.assertEqual(code, 1)
        self.assertEqual(out, "")
        self.assertIn("so this grammar is not deterministic", err)

    def test_grammar_error(self) -> None:
        code, _, err = self._run(LEFT_RECURSIVE, "id")
        self.assertEqual(code, 1)
        self.assertIn("left_recursion", err)

    def test_usage(self) -> None:
        err = io.StringIO()
        with redirect_stderr(err):
            code = main([])
        self.assertEqual(code, 2)
        self.assertIn("usage", err.getvalue())


if __name__ == "__main__":
    unittest.main()
