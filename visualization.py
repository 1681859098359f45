"""
Visualization and Output Formatting Module

This module provides HTML and text rendering for the LL(1) analyzer: the
predictive parsing table, the FIRST/FOLLOW/LOOKAHEAD sets, parsing traces,
parse errors and collision reports.
"""

from typing import Dict, List, Optional
from dataclasses import dataclass
import html

from ll1_parser import EMPTY, Grammar, ParseActionType


# Column label used for the end-of-input entry of the predictive table
END_MARKER_LABEL = "$"


@dataclass
class VisualizationConfig:
    """Configuration options for visualization output."""
    table_css_classes: str = "parse-table"
    sets_css_classes: str = "grammar-sets"
    trace_css_classes: str = "parsing-trace"
    error_css_classes: str = "error-message"
    include_inline_styles: bool = True
    max_trace_input_tokens: int = 10


class HTMLTableGenerator:
    """Generates HTML tables for LL(1) predictive parsing tables."""

    def __init__(self, config: Optional[VisualizationConfig] = None):
        self.config = config or VisualizationConfig()

    def generate_predictive_table_html(self, grammar: Grammar) -> str:
        """
        Generate the HTML predictive table, one row per nonterminal.

        Args:
            grammar: Grammar whose table is rendered

        Returns:
            HTML string containing the parsing table
        """
        if not grammar.table:
            return self._generate_empty_table_html("No parsing table entries found")

        sorted_terminals = sorted(grammar.terminals)
        columns = sorted_terminals + [EMPTY]

        html_lines = []

        if self.config.include_inline_styles:
            html_lines.append(self._generate_table_styles())

        html_lines.append(f'<table class="grammar-table {self.config.table_css_classes}" role="table" aria-label="LL(1) predictive parsing table">')
        html_lines.append(self._generate_table_header(sorted_terminals))

        html_lines.append('<tbody>')
        for name in grammar.non_terminals:
            html_lines.append(self._generate_table_row(name, columns, grammar.table.get(name, {})))
        html_lines.append('</tbody>')

        html_lines.append('</table>')

        return '\n'.join(html_lines)

    def _generate_table_header(self, sorted_terminals: List[str]) -> str:
        lines = ['<thead>', '<tr>']
        lines.append('<th class="grammar-table-header grammar-table-header-primary" scope="col">Nonterminal</th>')
        for terminal in sorted_terminals:
            lines.append(f'<th class="grammar-table-header" scope="col">{html.escape(terminal)}</th>')
        lines.append(f'<th class="grammar-table-header end-marker" scope="col">{END_MARKER_LABEL}</th>')
        lines.append('</tr>')
        lines.append('</thead>')
        return '\n'.join(lines)

    def _generate_table_row(self, name: str, columns: List[str], line: Dict) -> str:
        lines = ['<tr>']
        lines.append(f'<td class="grammar-table-cell grammar-table-cell-primary">{html.escape(name)}</td>')
        for column in columns:
            rule = line.get(column)
            if rule is None:
                lines.append('<td class="grammar-table-cell empty-cell"></td>')
            else:
                lines.append(f'<td class="grammar-table-cell"><span class="expand-action">{html.escape(str(rule))}</span></td>')
        lines.append('</tr>')
        return '\n'.join(lines)

    def _generate_empty_table_html(self, message: str) -> str:
        """Generate HTML for empty table."""
        return f'<div class="{self.config.error_css_classes}"><p>{html.escape(message)}</p></div>'

    def _generate_table_styles(self) -> str:
        """Generate inline CSS styles for the table."""
        return """
<style>
.parse-table { border-collapse: collapse; font-family: monospace; font-size: 12px; }
.parse-table th, .parse-table td { border: 1px solid #9ca3af; padding: 4px 8px; text-align: center; }
.parse-table .grammar-table-cell-primary { font-weight: bold; text-align: left; }
.parse-table .end-marker { color: #6b7280; }
.expand-action { white-space: nowrap; }
</style>
"""


class SetsFormatter:
    """Formats the FIRST, FOLLOW and LOOKAHEAD sets of a grammar."""

    def __init__(self, config: Optional[VisualizationConfig] = None):
        self.config = config or VisualizationConfig()

    def generate_sets_html(self, grammar: Grammar) -> str:
        """
        Generate HTML tables for the FIRST/FOLLOW sets and the per-rule LOOKAHEAD sets.

        Args:
            grammar: Grammar whose sets are rendered

        Returns:
            HTML string with one table per kind of set
        """
        first_sets = grammar.first_sets()
        follow_sets = grammar.follow_sets()

        html_lines = [f'<div class="{self.config.sets_css_classes}">']

        html_lines.append('<table class="grammar-table sets-table" role="table" aria-label="FIRST and FOLLOW sets">')
        html_lines.append('<thead><tr>')
        html_lines.append('<th class="grammar-table-header" scope="col">Nonterminal</th>')
        html_lines.append('<th class="grammar-table-header" scope="col">Can be empty</th>')
        html_lines.append('<th class="grammar-table-header" scope="col">FIRST</th>')
        html_lines.append('<th class="grammar-table-header" scope="col">FOLLOW</th>')
        html_lines.append('</tr></thead>')
        html_lines.append('<tbody>')
        for name in grammar.non_terminals:
            html_lines.append('<tr>')
            html_lines.append(f'<td class="grammar-table-cell grammar-table-cell-primary">{html.escape(name)}</td>')
            html_lines.append(f'<td class="grammar-table-cell">{"yes" if grammar.can_be_empty(name) else "no"}</td>')
            html_lines.append(f'<td class="grammar-table-cell">{html.escape(self._format_set(first_sets[name]))}</td>')
            html_lines.append(f'<td class="grammar-table-cell">{html.escape(self._format_set(follow_sets[name]))}</td>')
            html_lines.append('</tr>')
        html_lines.append('</tbody>')
        html_lines.append('</table>')

        html_lines.append('<table class="grammar-table lookahead-table" role="table" aria-label="LOOKAHEAD sets">')
        html_lines.append('<thead><tr>')
        html_lines.append('<th class="grammar-table-header" scope="col">Rule</th>')
        html_lines.append('<th class="grammar-table-header" scope="col">LOOKAHEAD</th>')
        html_lines.append('</tr></thead>')
        html_lines.append('<tbody>')
        for rule, symbols in grammar.lookahead_sets():
            html_lines.append('<tr>')
            html_lines.append(f'<td class="grammar-table-cell grammar-table-cell-primary">{html.escape(str(rule))}</td>')
            html_lines.append(f'<td class="grammar-table-cell">{html.escape(self._format_set(symbols))}</td>')
            html_lines.append('</tr>')
        html_lines.append('</tbody>')
        html_lines.append('</table>')

        html_lines.append('</div>')
        return '\n'.join(html_lines)

    def format_sets_text(self, grammar: Grammar) -> str:
        """Plain text listing, e.g. ``FIRST(S) = { a }``."""
        lines = ["FIRST sets"]
        for name, symbols in grammar.first_sets().items():
            lines.append(f"  FIRST({name}) = {self._format_set(symbols)}")
        lines.append("")
        lines.append("FOLLOW sets")
        for name, symbols in grammar.follow_sets().items():
            lines.append(f"  FOLLOW({name}) = {self._format_set(symbols)}")
        lines.append("")
        lines.append("LOOKAHEAD sets")
        for rule, symbols in grammar.lookahead_sets():
            lines.append(f"  LOOKAHEAD({rule}) = {self._format_set(symbols)}")
        return "\n".join(lines) + "\n"

    def _format_set(self, symbols) -> str:
        if not symbols:
            return "{ }"
        return "{ " + ", ".join(sorted(symbols)) + " }"


class ParseTraceFormatter:
    """Formats parsing traces as HTML with step-by-step details."""

    def __init__(self, config: Optional[VisualizationConfig] = None):
        self.config = config or VisualizationConfig()

    def generate_trace_html(self, trace_steps: List, title: str = "Parsing Trace") -> str:
        """
        Generate HTML representation of parsing trace.

        Args:
            trace_steps: List of ParseStep objects
            title: Title for the trace

        Returns:
            HTML string showing step-by-step parsing
        """
        if not trace_steps:
            return self._generate_empty_trace_html("No parsing steps recorded")

        html_lines = []

        html_lines.append(f'<div class="{self.config.trace_css_classes}">')
        html_lines.append(f'<h3>{html.escape(title)}</h3>')

        html_lines.append('<table class="grammar-table trace-table" role="table" aria-label="Step-by-step parsing trace">')
        html_lines.append('<thead>')
        html_lines.append('<tr>')
        html_lines.append('<th class="grammar-table-header grammar-table-header-primary" scope="col">Step</th>')
        html_lines.append('<th class="grammar-table-header" scope="col">Stack</th>')
        html_lines.append('<th class="grammar-table-header" scope="col">Input</th>')
        html_lines.append('<th class="grammar-table-header" scope="col">Action</th>')
        html_lines.append('<th class="grammar-table-header" scope="col">Rule</th>')
        html_lines.append('</tr>')
        html_lines.append('</thead>')
        html_lines.append('<tbody>')

        for step in trace_steps:
            html_lines.append(self._format_trace_step(step))

        html_lines.append('</tbody>')
        html_lines.append('</table>')
        html_lines.append('</div>')

        return '\n'.join(html_lines)

    def _format_trace_step(self, step) -> str:
        """Format a single parsing step as HTML table row."""
        lines = []

        lines.append(f'<tr class="{self._get_action_css_class(step.action)}">')
        lines.append(f'<td class="grammar-table-cell grammar-table-cell-primary step-number">{step.step_number}</td>')

        # Top of stack first
        stack_display = ' '.join(reversed(step.stack))
        if len(stack_display) > 60:
            stack_display = stack_display[:57] + "..."
        lines.append(f'<td class="grammar-table-cell stack">{html.escape(stack_display)}</td>')

        input_tokens = list(step.input_buffer[:self.config.max_trace_input_tokens])
        if len(step.input_buffer) > self.config.max_trace_input_tokens:
            input_tokens.append("...")
        input_tokens.append(END_MARKER_LABEL)
        lines.append(f'<td class="grammar-table-cell input">{html.escape(" ".join(input_tokens))}</td>')

        action_str = html.escape(step.action.value)
        lines.append(f'<td class="grammar-table-cell action"><span class="grammar-action-{action_str}">{action_str}</span></td>')

        rule_str = html.escape(str(step.rule_used)) if step.rule_used is not None else ""
        lines.append(f'<td class="grammar-table-cell production">{rule_str}</td>')

        lines.append('</tr>')

        return '\n'.join(lines)

    def _get_action_css_class(self, action: ParseActionType) -> str:
        """Get CSS class name for an action type."""
        return f'{action.value}-step'

    def _generate_empty_trace_html(self, message: str) -> str:
        """Generate HTML for empty trace."""
        html_lines = []
        html_lines.append(f'<div class="{self.config.error_css_classes}">')
        html_lines.append(f'<p>{html.escape(message)}</p>')
        html_lines.append('</div>')
        return '\n'.join(html_lines)


class ErrorMessageFormatter:
    """Formats error messages with proper styling and context."""

    def __init__(self, config: Optional[VisualizationConfig] = None):
        self.config = config or VisualizationConfig()

    def format_parse_error(self, error_message: str, error_position: int = -1,
                           tokens: Optional[List[str]] = None, context_length: int = 5) -> str:
        """
        Format a parsing error message with context.

        Args:
            error_message: The error message
            error_position: Index of the token where the error occurred
            tokens: The tokens being parsed
            context_length: Number of tokens to show around error position

        Returns:
            Formatted HTML error message
        """
        html_lines = []

        if self.config.include_inline_styles:
            html_lines.append(self._generate_error_styles())

        html_lines.append(f'<div class="{self.config.error_css_classes}">')
        html_lines.append('<h4>Parse Error</h4>')
        html_lines.append(f'<p class="error-text">{html.escape(error_message)}</p>')

        if error_position >= 0 and tokens is not None:
            html_lines.append(self._generate_error_context(tokens, error_position, context_length))

        html_lines.append('</div>')

        return '\n'.join(html_lines)

    def format_collision_report(self, collisions: List) -> str:
        """
        Format a collision report as HTML.

        Args:
            collisions: List of CollisionError objects

        Returns:
            Formatted HTML collision report
        """
        if not collisions:
            return '<div class="no-conflicts">No collisions detected, the grammar is LL(1).</div>'

        html_lines = []

        if self.config.include_inline_styles:
            html_lines.append(self._generate_error_styles())

        html_lines.append('<div class="conflict-report">')
        html_lines.append(f'<h4>Grammar Collisions ({len(collisions)} found)</h4>')

        for i, collision in enumerate(collisions, 1):
            html_lines.append('<div class="conflict-item">')
            html_lines.append(f'<h5>Collision {i}: variable {html.escape(collision.variable)}</h5>')
            html_lines.append(f'<p><strong>Symbol:</strong> {html.escape(collision.symbol)}</p>')
            html_lines.append('<p><strong>Competing Rules:</strong></p>')
            html_lines.append('<ul>')
            html_lines.append(f'<li>{html.escape(str(collision.first_rule))}</li>')
            html_lines.append(f'<li>{html.escape(str(collision.second_rule))}</li>')
            html_lines.append('</ul>')
            html_lines.append('</div>')

        html_lines.append('</div>')

        return '\n'.join(html_lines)

    def _generate_error_context(self, tokens: List[str], error_position: int,
                                context_length: int) -> str:
        """Generate HTML showing error context in the token stream."""
        start_pos = max(0, error_position - context_length)
        end_pos = min(len(tokens), error_position + context_length + 1)

        before_error = ' '.join(tokens[start_pos:error_position])
        error_token = tokens[error_position] if error_position < len(tokens) else END_MARKER_LABEL
        after_error = ' '.join(tokens[error_position + 1:end_pos])

        html_lines = []
        html_lines.append('<div class="error-context">')
        html_lines.append('<p><strong>Context:</strong></p>')
        html_lines.append('<pre class="context-display">')

        if start_pos > 0:
            html_lines.append('...')

        html_lines.append(html.escape(before_error))
        html_lines.append(f'<span class="error-position">{html.escape(error_token)}</span>')
        html_lines.append(html.escape(after_error))

        if end_pos < len(tokens):
            html_lines.append('...')

        html_lines.append('</pre>')
        html_lines.append(f'<p class="position-info">Error at token {error_position}</p>')
        html_lines.append('</div>')

        return '\n'.join(html_lines)

    def _generate_error_styles(self) -> str:
        """Generate inline CSS styles for error messages."""
        return """
<style>
.error-message { color: #b91c1c; background: #fef2f2; border: 1px solid #b91c1c; padding: 8px; }
.error-text { font-weight: bold; }
.error-context .context-display { font-family: monospace; background: #fff; padding: 6px; }
.error-position { background: #b91c1c; color: #fff; padding: 0 2px; }
.position-info { font-size: 11px; color: #555; }
.conflict-report { background: #fffbeb; border: 1px solid #d97706; padding: 8px; }
.conflict-item { border-left: 3px solid #d97706; padding-left: 6px; }
</style>
"""


class VisualizationGenerator:
    """Main visualization generator that combines all formatting capabilities."""

    def __init__(self, config: Optional[VisualizationConfig] = None):
        self.config = config or VisualizationConfig()
        self.table_generator = HTMLTableGenerator(self.config)
        self.sets_formatter = SetsFormatter(self.config)
        self.trace_formatter = ParseTraceFormatter(self.config)
        self.error_formatter = ErrorMessageFormatter(self.config)

    def generate_predictive_table_html(self, grammar: Grammar) -> str:
        """Generate HTML for the predictive parsing table."""
        return self.table_generator.generate_predictive_table_html(grammar)

    def generate_sets_html(self, grammar: Grammar) -> str:
        """Generate HTML for FIRST, FOLLOW and LOOKAHEAD sets."""
        return self.sets_formatter.generate_sets_html(grammar)

    def generate_trace_html(self, trace_steps: List, title: str = "Parsing Trace") -> str:
        """Generate HTML for parsing trace."""
        return self.trace_formatter.generate_trace_html(trace_steps, title)

    def format_error_message(self, error_message: str, error_position: int = -1,
                             tokens: Optional[List[str]] = None) -> str:
        """Format an error message."""
        return self.error_formatter.format_parse_error(error_message, error_position, tokens)

    def format_collision_report(self, collisions: List) -> str:
        """Format a collision report."""
        return self.error_formatter.format_collision_report(collisions)
